"""
Partition coordination: progress states, typed partitions, coordinator interface.
"""

from .state import (
    ProgressState, DataQueryProgressState, StreamProgressState, StreamCheckpoint,
    LeaderProgressState, StreamLoadStatus, S3PartitionStatus
)
from .partition import (
    PartitionType, PartitionStatus, SourcePartitionStoreItem, SourcePartition,
    DataQueryPartition, StreamPartition, LeaderPartition, GlobalState,
    partition_from_store_item
)
from .coordinator import PartitionCoordinator

__all__ = [
    "ProgressState",
    "DataQueryProgressState",
    "StreamProgressState",
    "StreamCheckpoint",
    "LeaderProgressState",
    "StreamLoadStatus",
    "S3PartitionStatus",
    "PartitionType",
    "PartitionStatus",
    "SourcePartitionStoreItem",
    "SourcePartition",
    "DataQueryPartition",
    "StreamPartition",
    "LeaderPartition",
    "GlobalState",
    "partition_from_store_item",
    "PartitionCoordinator",
]
