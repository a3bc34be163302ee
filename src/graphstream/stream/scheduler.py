"""
Long-lived loop assigning stream partitions to worker attempts.
"""

import logging
from typing import Optional

from prometheus_client import Counter

from ..coordination.coordinator import PartitionCoordinator
from ..coordination.partition import PartitionType, StreamPartition
from ..utils.logging import PartitionLogContext
from .cancellation import StreamRunContext
from .checkpoint import DataStreamPartitionCheckpoint
from .worker import StreamWorker

logger = logging.getLogger(__name__)

stream_attempts_total = Counter(
    'graphstream_stream_attempts_total',
    'Total stream worker attempts',
    ['outcome']
)


class StreamScheduler:
    """
    Acquires STREAM partitions and runs one worker attempt per partition.

    Every attempt ends with the partition given up (unless the worker already
    released it on reset), so a crash-free shutdown never leaves a lease to
    expire. After a failed attempt the loop backs off before acquiring again.
    """

    def __init__(
        self,
        coordinator: PartitionCoordinator,
        worker: StreamWorker,
        acquire_wait_seconds: float = 15,
        failure_backoff_seconds: float = 30
    ):
        self.coordinator = coordinator
        self.worker = worker
        self.acquire_wait_seconds = acquire_wait_seconds
        self.failure_backoff_seconds = failure_backoff_seconds

    def run(self, context: StreamRunContext) -> None:
        """Loop until shutdown is requested (blocking call)."""
        logger.info("Stream scheduler started")
        while not context.shutdown.is_cancelled:
            partition = self.coordinator.acquire_available_partition(PartitionType.STREAM)
            if partition is None:
                context.shutdown.wait(self.acquire_wait_seconds)
                continue

            if not isinstance(partition, StreamPartition):
                raise TypeError(f"Expected stream partition, got {type(partition).__name__}")

            failed = self.run_attempt(partition, context)
            if failed:
                context.shutdown.wait(self.failure_backoff_seconds)
        logger.info("Stream scheduler stopped")

    def run_attempt(self, partition: StreamPartition, context: StreamRunContext) -> bool:
        """
        Process one acquired partition. Returns True if the attempt failed.
        """
        checkpoint = DataStreamPartitionCheckpoint(self.coordinator, partition, context)
        error: Optional[Exception] = None

        with PartitionLogContext(partition.partition_key):
            logger.info("Acquired stream partition", extra={"partition_key": partition.partition_key})
            try:
                self.worker.process_stream(checkpoint, context)
            except Exception as e:
                error = e
                logger.error(
                    f"Stream worker failed: {e}",
                    exc_info=True,
                    extra={"partition_key": partition.partition_key, "error_type": type(e).__name__}
                )
            if not checkpoint.released:
                try:
                    checkpoint.give_up_partition()
                except Exception as e:
                    # The lease will expire on its own.
                    error = error or e
                    logger.error(
                        f"Failed to give up stream partition: {e}",
                        extra={"partition_key": partition.partition_key}
                    )

        stream_attempts_total.labels(outcome='failure' if error else 'success').inc()
        return error is not None
