"""
Stream processing: checkpointing, acknowledgments and the worker loop.
"""

from .acknowledgements import AcknowledgementSet
from .cancellation import CancellationToken, StreamRunContext
from .checkpoint import DataStreamPartitionCheckpoint
from .worker import StreamWorker, StreamWorkerConfig
from .scheduler import StreamScheduler

__all__ = [
    "AcknowledgementSet",
    "CancellationToken",
    "StreamRunContext",
    "DataStreamPartitionCheckpoint",
    "StreamWorker",
    "StreamWorkerConfig",
    "StreamScheduler",
]
