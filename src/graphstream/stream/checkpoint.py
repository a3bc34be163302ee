"""
Checkpoint manager for an owned stream partition.

Owns the read/modify/persist cycle of the partition's StreamProgressState.
Every save goes through the partition coordinator together with a lease
extension, so checkpointing is also what keeps ownership alive.
"""

import logging
from datetime import timedelta
from typing import Optional

from prometheus_client import Counter

from ..coordination.coordinator import PartitionCoordinator
from ..coordination.partition import GlobalState, StreamPartition
from ..coordination.state import StreamCheckpoint, StreamLoadStatus, StreamProgressState
from ..errors import LeaseConflictError
from .cancellation import StreamRunContext

logger = logging.getLogger(__name__)

checkpoint_saves_total = Counter(
    'graphstream_checkpoint_saves_total',
    'Total stream partition progress saves',
    ['operation', 'status']
)


class DataStreamPartitionCheckpoint:
    """
    Progress and lease bookkeeping for one stream partition.

    Thread Safety: NO. Owned by the single worker processing the partition.

    Persistence failures are raised to the caller unchanged. A
    LeaseConflictError from a save means another worker took the partition;
    the caller must stop emitting records.

    Example:
        >>> checkpoint = DataStreamPartitionCheckpoint(coordinator, partition, context)
        >>> checkpoint.checkpoint(StreamCheckpoint(resume_token="12:3", record_count=100))
    """

    STREAM_PREFIX = "STREAM-"
    CHECKPOINT_OWNERSHIP_TIMEOUT_INCREASE = timedelta(minutes=5)

    def __init__(
        self,
        coordinator: PartitionCoordinator,
        stream_partition: StreamPartition,
        context: Optional[StreamRunContext] = None
    ):
        self.coordinator = coordinator
        self.stream_partition = stream_partition
        self.context = context or StreamRunContext()
        self.released = False

        # Always has a state.
        if self.stream_partition.get_progress_state() is None:
            self.stream_partition.set_progress_state(StreamProgressState())

    @property
    def partition_key(self) -> str:
        return self.stream_partition.partition_key

    def get_progress_state(self) -> StreamProgressState:
        return self.stream_partition.get_progress_state()

    def _set_progress_state(self, progress: StreamCheckpoint) -> None:
        self.get_progress_state().update_from_checkpoint(progress)

    def _save(self, operation: str, ownership_timeout: timedelta) -> None:
        try:
            self.coordinator.save_progress_state_for_partition(self.stream_partition, ownership_timeout)
        except LeaseConflictError:
            checkpoint_saves_total.labels(operation=operation, status='lease_conflict').inc()
            logger.error(
                f"Lost ownership of stream partition {self.partition_key}",
                extra={"partition_key": self.partition_key, "operation": operation}
            )
            raise
        except Exception:
            checkpoint_saves_total.labels(operation=operation, status='error').inc()
            raise
        checkpoint_saves_total.labels(operation=operation, status='success').inc()

    def checkpoint(self, progress: StreamCheckpoint) -> None:
        """
        Record the latest processed resume position and extend the lease.

        Must be called regularly even when the resume token has not moved,
        since the save is also what extends the lease.

        Raises:
            LeaseConflictError: ownership was lost
        """
        logger.debug(
            f"Checkpoint stream partition with record number {progress.record_count}",
            extra={"partition_key": self.partition_key, "record_count": progress.record_count}
        )
        self._set_progress_state(progress)
        self._save('checkpoint', self.CHECKPOINT_OWNERSHIP_TIMEOUT_INCREASE)

    def extend_lease(self) -> None:
        """Persist unchanged progress to push the lease expiry out."""
        logger.debug("Extending lease of stream partition", extra={"partition_key": self.partition_key})
        self._save('extend_lease', self.CHECKPOINT_OWNERSHIP_TIMEOUT_INCREASE)

    def update_partition_for_acknowledgment_wait(self, acknowledgment_set_timeout: timedelta) -> None:
        """Extend the lease to cover a wait for downstream acknowledgment."""
        logger.debug(
            "Extending lease of stream partition for acknowledgment wait",
            extra={
                "partition_key": self.partition_key,
                "timeout_seconds": acknowledgment_set_timeout.total_seconds()
            }
        )
        self._save('acknowledgment_wait', acknowledgment_set_timeout)

    def reset_checkpoint(self) -> None:
        """
        Reset progress after the stream position became invalid.

        The partition is given up immediately; the next owner starts from the
        export snapshot. If the change stream is still invalid the cycle
        repeats.
        """
        logger.info("Resetting checkpoint stream partition", extra={"partition_key": self.partition_key})
        self._set_progress_state(StreamCheckpoint.empty_progress())
        self._release()

    def give_up_partition(self) -> None:
        """Release ownership keeping progress, for graceful shutdown."""
        logger.info("Giving up stream partition", extra={"partition_key": self.partition_key})
        self._release()

    def _release(self) -> None:
        try:
            self.coordinator.give_up_partition(self.stream_partition)
        except LeaseConflictError:
            # Already reassigned by the store; nothing left to release.
            logger.warning(
                f"Stream partition {self.partition_key} was already reassigned",
                extra={"partition_key": self.partition_key}
            )
        finally:
            self.released = True
            self.context.stop_scanning.reset()

    def get_global_stream_load_status(self) -> Optional[StreamLoadStatus]:
        """Read the export completion marker, or None if export has not finished."""
        partition = self.coordinator.get_partition(self.STREAM_PREFIX + self.partition_key)
        if partition is None:
            return None
        if not isinstance(partition, GlobalState):
            raise TypeError(f"Expected global state partition, got {type(partition).__name__}")
        return partition.stream_load_status()
