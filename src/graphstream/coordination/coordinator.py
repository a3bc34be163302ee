"""
Interface of the partition coordination service.

The lease store itself lives outside this package; workers only depend on the
operations below. Implementations must refuse to save progress for a caller
that no longer holds the lease, and must never hand out a partition that is
leased to another live owner.
"""

from datetime import timedelta
from typing import Optional, Protocol, runtime_checkable

from .partition import PartitionType, SourcePartition


@runtime_checkable
class PartitionCoordinator(Protocol):
    """Protocol every partition coordination backend must satisfy."""

    def acquire_available_partition(self, partition_type: PartitionType) -> Optional[SourcePartition]:
        """Take ownership of an unowned (or expired) partition of the given type."""
        ...

    def get_partition(self, partition_key: str) -> Optional[SourcePartition]:
        """Read a partition without taking ownership."""
        ...

    def save_progress_state_for_partition(
        self,
        partition: SourcePartition,
        ownership_timeout: Optional[timedelta]
    ) -> None:
        """
        Persist the partition's progress state and push its lease expiry out
        by ``ownership_timeout``.

        Raises:
            LeaseConflictError: the caller no longer owns the partition
        """
        ...

    def give_up_partition(self, partition: SourcePartition) -> None:
        """
        Persist the partition's progress state and release ownership now.

        Raises:
            LeaseConflictError: the partition was already reassigned
        """
        ...

    def create_partition(self, partition: SourcePartition) -> bool:
        """Create an unowned partition; False when the key already exists."""
        ...
