from .base import RecordSink
from .aggregating import AggregatingSink

__all__ = ["RecordSink", "AggregatingSink"]
