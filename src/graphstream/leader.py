"""
Leader election and one-time partition creation.

Exactly one service instance holds the LEADER partition at a time. On first
acquisition it creates the stream partition (gated on bulk export when export
is enabled) and marks itself initialized, so later leaders only keep the
lease alive.
"""

import logging
from datetime import timedelta
from typing import Optional

from .coordination.coordinator import PartitionCoordinator
from .coordination.partition import GlobalState, LeaderPartition, PartitionType, StreamPartition
from .coordination.state import LeaderProgressState, StreamLoadStatus, StreamProgressState
from .errors import LeaseConflictError
from .stream.cancellation import StreamRunContext
from .stream.checkpoint import DataStreamPartitionCheckpoint

logger = logging.getLogger(__name__)


def record_export_completion(coordinator: PartitionCoordinator, stream_partition_key: str,
                             export_end_timestamp: int) -> bool:
    """
    Publish the process-wide marker that bulk export has finished.

    Stream workers gated on export poll for this marker before streaming.
    Returns False if the marker already exists.
    """
    status = StreamLoadStatus(export_end_timestamp=export_end_timestamp)
    global_state = GlobalState(
        DataStreamPartitionCheckpoint.STREAM_PREFIX + stream_partition_key,
        status.to_map()
    )
    created = coordinator.create_partition(global_state)
    logger.info(
        "Recorded export completion",
        extra={
            "partition_key": stream_partition_key,
            "export_end_timestamp": export_end_timestamp,
            "created": created
        }
    )
    return created


class LeaderScheduler:
    """
    Runs the leader loop: acquire, initialize once, keep the lease alive.

    Example:
        >>> leader = LeaderScheduler(coordinator, stream_partition_key="my-cluster", export_enabled=True)
        >>> leader.run(context)
    """

    DEFAULT_EXTEND_LEASE = timedelta(minutes=3)
    DEFAULT_LEASE_INTERVAL_SECONDS = 60

    def __init__(
        self,
        coordinator: PartitionCoordinator,
        stream_partition_key: str,
        export_enabled: bool = False,
        lease_interval_seconds: float = DEFAULT_LEASE_INTERVAL_SECONDS
    ):
        self.coordinator = coordinator
        self.stream_partition_key = stream_partition_key
        self.export_enabled = export_enabled
        self.lease_interval_seconds = lease_interval_seconds
        self.leader_partition: Optional[LeaderPartition] = None

    def run(self, context: StreamRunContext) -> None:
        """Loop until shutdown is requested (blocking call)."""
        logger.info("Leader scheduler started")
        try:
            while not context.shutdown.is_cancelled:
                self.run_once()
                context.shutdown.wait(self.lease_interval_seconds)
        finally:
            self._give_up()
        logger.info("Leader scheduler stopped")

    def run_once(self) -> None:
        """One leader iteration: acquire if not leader, initialize, extend the lease."""
        if self.leader_partition is None:
            partition = self.coordinator.acquire_available_partition(PartitionType.LEADER)
            if partition is None:
                return
            if not isinstance(partition, LeaderPartition):
                raise TypeError(f"Expected leader partition, got {type(partition).__name__}")
            logger.info("Acquired leader partition")
            self.leader_partition = partition

        progress = self.leader_partition.get_progress_state()
        if progress is None:
            progress = LeaderProgressState()
            self.leader_partition.set_progress_state(progress)

        if not progress.initialized:
            self._init()
            progress.initialized = True

        try:
            self.coordinator.save_progress_state_for_partition(self.leader_partition, self.DEFAULT_EXTEND_LEASE)
        except LeaseConflictError:
            logger.warning("Lost leader partition to another instance")
            self.leader_partition = None

    def _init(self) -> None:
        stream_partition = StreamPartition(
            self.stream_partition_key,
            StreamProgressState(should_wait_for_export=self.export_enabled)
        )
        created = self.coordinator.create_partition(stream_partition)
        logger.info(
            "Created stream partition" if created else "Stream partition already exists",
            extra={"partition_key": self.stream_partition_key, "wait_for_export": self.export_enabled}
        )

    def _give_up(self) -> None:
        if self.leader_partition is None:
            return
        try:
            self.coordinator.give_up_partition(self.leader_partition)
        except LeaseConflictError:
            logger.warning("Leader partition was already reassigned")
        self.leader_partition = None
