from .neptune_client import NeptuneStreamClient, StreamCursor, StreamPosition, StreamRecord

__all__ = ["NeptuneStreamClient", "StreamCursor", "StreamPosition", "StreamRecord"]
