"""
Exception hierarchy for stream ingestion and aggregation.
"""

from typing import Optional, Sequence


class GraphStreamError(Exception):
    """Base exception for graphstream errors."""
    pass


class LeaseConflictError(GraphStreamError):
    """Partition ownership was lost; another worker holds the lease."""

    def __init__(self, partition_key: str, message: Optional[str] = None):
        self.partition_key = partition_key
        super().__init__(message or f"Lease on partition {partition_key} is no longer held")


class CheckpointError(GraphStreamError):
    """Error saving/loading partition progress."""
    pass


class ResumeTokenError(GraphStreamError):
    """Resume token was expired or rejected by the stream source."""
    pass


class StreamSourceError(GraphStreamError):
    """Non-retryable error returned by the stream endpoint."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class AcknowledgmentError(GraphStreamError):
    """A batch was negatively acknowledged or its acknowledgment timed out."""
    pass


class SequenceIntegrityError(GraphStreamError):
    """Commit or operation numbers in an aggregation window are not contiguous."""

    def __init__(self, message: str, commit_num: Optional[int] = None, sequence: Sequence[int] = ()):
        self.commit_num = commit_num
        self.sequence = list(sequence)
        super().__init__(message)
