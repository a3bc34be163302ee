"""
Typed partitions binding a partition key to its progress state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Generic, Optional, Type, TypeVar

from pydantic import ValidationError

from ..errors import CheckpointError
from .state import (
    DataQueryProgressState,
    LeaderProgressState,
    ProgressState,
    StreamLoadStatus,
    StreamProgressState,
)


class PartitionType(str, Enum):
    """Partition kinds known to the coordinator."""
    DATA_QUERY = "DATA_QUERY"
    STREAM = "STREAM"
    GLOBAL = "GLOBAL"
    LEADER = "LEADER"


class PartitionStatus(str, Enum):
    """Ownership status of a stored partition."""
    UNASSIGNED = "UNASSIGNED"
    ASSIGNED = "ASSIGNED"
    COMPLETED = "COMPLETED"
    CLOSED = "CLOSED"


@dataclass
class SourcePartitionStoreItem:
    """Row of the partition coordination store, as handed to this package."""
    partition_type: PartitionType
    partition_key: str
    progress_state: Optional[Dict[str, Any]] = None
    partition_owner: Optional[str] = None
    ownership_timeout: Optional[datetime] = None
    status: PartitionStatus = PartitionStatus.UNASSIGNED
    closed_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


StateT = TypeVar("StateT")


class SourcePartition(Generic[StateT]):
    """
    A named, independently ownable unit of ingestion work.

    Subclasses declare their partition type and state class. A partition is
    built either fresh (for creation) or from the store item returned by the
    coordinator, in which case the store item is kept so the coordinator can
    match ownership on save.
    """

    partition_type: ClassVar[PartitionType]
    state_class: ClassVar[Optional[Type[ProgressState]]] = None

    def __init__(
        self,
        partition_key: str,
        progress_state: Optional[StateT] = None,
        store_item: Optional[SourcePartitionStoreItem] = None
    ):
        if not partition_key:
            raise ValueError("partition_key must be non-empty")
        self.partition_key = partition_key
        self._progress_state = progress_state
        self.store_item = store_item

    @classmethod
    def from_store_item(cls, item: SourcePartitionStoreItem) -> "SourcePartition":
        if item.partition_type != cls.partition_type:
            raise ValueError(
                f"Store item {item.partition_key} is not a {cls.partition_type.value} partition"
            )
        state = None
        if item.progress_state is not None:
            try:
                state = cls.convert_state(item.progress_state)
            except ValidationError as e:
                raise CheckpointError(f"Corrupted progress state for partition {item.partition_key}: {e}") from e
        return cls(item.partition_key, state, store_item=item)

    @classmethod
    def convert_state(cls, data: Dict[str, Any]) -> Any:
        return cls.state_class.from_map(data)

    def get_progress_state(self) -> Optional[StateT]:
        return self._progress_state

    def set_progress_state(self, progress_state: Optional[StateT]) -> None:
        self._progress_state = progress_state

    def progress_state_map(self) -> Optional[Dict[str, Any]]:
        """Serialized progress state, or None when the partition has none."""
        if self._progress_state is None:
            return None
        return self._progress_state.to_map()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(partition_key={self.partition_key!r})"


class DataQueryPartition(SourcePartition[DataQueryProgressState]):
    """Bulk export query partition keyed as ``<collection>|<query>``."""

    partition_type = PartitionType.DATA_QUERY
    state_class = DataQueryProgressState

    @property
    def collection(self) -> str:
        return self.partition_key.split("|")[0]

    @property
    def query(self) -> str:
        return self.partition_key


class StreamPartition(SourcePartition[StreamProgressState]):
    """Change-stream partition."""

    partition_type = PartitionType.STREAM
    state_class = StreamProgressState


class LeaderPartition(SourcePartition[LeaderProgressState]):
    """Single partition owned by the node that creates the other partitions."""

    partition_type = PartitionType.LEADER
    state_class = LeaderProgressState
    DEFAULT_PARTITION_KEY = "GLOBAL"

    def __init__(self, partition_key: str = DEFAULT_PARTITION_KEY, progress_state=None, store_item=None):
        super().__init__(partition_key, progress_state, store_item)


class GlobalState(SourcePartition[Dict[str, Any]]):
    """
    Non-owned, read-mostly status record shared by all workers.

    Its state is kept as a raw map since different collaborators store
    different status shapes under it.
    """

    partition_type = PartitionType.GLOBAL

    @classmethod
    def convert_state(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        return dict(data)

    def progress_state_map(self) -> Optional[Dict[str, Any]]:
        if self._progress_state is None:
            return None
        return dict(self._progress_state)

    def stream_load_status(self) -> Optional[StreamLoadStatus]:
        state = self.get_progress_state()
        if not state or "exportEndTimestamp" not in state:
            return None
        return StreamLoadStatus.from_map(state)


_PARTITION_CLASSES: Dict[PartitionType, Type[SourcePartition]] = {
    PartitionType.DATA_QUERY: DataQueryPartition,
    PartitionType.STREAM: StreamPartition,
    PartitionType.GLOBAL: GlobalState,
    PartitionType.LEADER: LeaderPartition,
}


def partition_from_store_item(item: SourcePartitionStoreItem) -> SourcePartition:
    """Rebuild the typed partition for a store item."""
    try:
        partition_class = _PARTITION_CLASSES[PartitionType(item.partition_type)]
    except (KeyError, ValueError) as e:
        raise ValueError(f"Unknown partition type: {item.partition_type}") from e
    return partition_class.from_store_item(item)
