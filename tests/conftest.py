"""Shared fixtures: an in-memory partition store with per-worker coordinator views."""

import copy
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from graphstream.coordination import (
    PartitionStatus,
    PartitionType,
    SourcePartition,
    SourcePartitionStoreItem,
    partition_from_store_item,
)
from graphstream.errors import LeaseConflictError
from graphstream.stream.cancellation import StreamRunContext


class InMemoryPartitionStore:
    """Lease store shared by every coordinator view; time is advanced by hand."""

    DEFAULT_LEASE = timedelta(minutes=10)

    def __init__(self):
        self.items: Dict[str, SourcePartitionStoreItem] = {}
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def advance(self, delta: timedelta) -> None:
        self.now += delta

    def lease_expired(self, item: SourcePartitionStoreItem) -> bool:
        return item.ownership_timeout is None or item.ownership_timeout <= self.now

    def coordinator(self, owner_id: str) -> "InMemoryCoordinator":
        return InMemoryCoordinator(self, owner_id)


class InMemoryCoordinator:
    """PartitionCoordinator view of one worker over an InMemoryPartitionStore."""

    def __init__(self, store: InMemoryPartitionStore, owner_id: str):
        self.store = store
        self.owner_id = owner_id
        self.saves: List[Optional[timedelta]] = []

    def acquire_available_partition(self, partition_type: PartitionType) -> Optional[SourcePartition]:
        for item in self.store.items.values():
            if item.partition_type != partition_type or item.status == PartitionStatus.CLOSED:
                continue
            if item.status == PartitionStatus.ASSIGNED and not self.store.lease_expired(item):
                continue
            item.partition_owner = self.owner_id
            item.status = PartitionStatus.ASSIGNED
            item.ownership_timeout = self.store.now + self.store.DEFAULT_LEASE
            return partition_from_store_item(copy.deepcopy(item))
        return None

    def get_partition(self, partition_key: str) -> Optional[SourcePartition]:
        item = self.store.items.get(partition_key)
        if item is None:
            return None
        return partition_from_store_item(copy.deepcopy(item))

    def _owned_item(self, partition: SourcePartition) -> SourcePartitionStoreItem:
        item = self.store.items.get(partition.partition_key)
        if (item is None or item.partition_owner != self.owner_id
                or item.status != PartitionStatus.ASSIGNED or self.store.lease_expired(item)):
            raise LeaseConflictError(partition.partition_key)
        return item

    def save_progress_state_for_partition(self, partition: SourcePartition,
                                          ownership_timeout: Optional[timedelta]) -> None:
        item = self._owned_item(partition)
        item.progress_state = copy.deepcopy(partition.progress_state_map())
        if ownership_timeout is not None:
            item.ownership_timeout = self.store.now + ownership_timeout
        self.saves.append(ownership_timeout)

    def give_up_partition(self, partition: SourcePartition) -> None:
        item = self._owned_item(partition)
        item.progress_state = copy.deepcopy(partition.progress_state_map())
        item.partition_owner = None
        item.ownership_timeout = None
        item.status = PartitionStatus.UNASSIGNED

    def create_partition(self, partition: SourcePartition) -> bool:
        if partition.partition_key in self.store.items:
            return False
        self.store.items[partition.partition_key] = SourcePartitionStoreItem(
            partition_type=partition.partition_type,
            partition_key=partition.partition_key,
            progress_state=copy.deepcopy(partition.progress_state_map()),
        )
        return True


@pytest.fixture
def partition_store():
    """Empty shared partition store."""
    return InMemoryPartitionStore()


@pytest.fixture
def coordinator(partition_store):
    """Coordinator view of worker-1."""
    return partition_store.coordinator("worker-1")


@pytest.fixture
def other_coordinator(partition_store):
    """Coordinator view of worker-2 over the same store."""
    return partition_store.coordinator("worker-2")


@pytest.fixture
def run_context():
    """Fresh run context."""
    return StreamRunContext()


def _pg_record(commit_num: int, op_num: int, entity_id: str = "v1", record_type: str = "vl",
              value: str = "person", key: str = None, op: str = "ADD") -> dict:
    """Build a property-graph Neptune stream record."""
    data = {"id": entity_id, "type": record_type, "value": {"value": value, "dataType": "String"}}
    if key is not None:
        data["key"] = key
    return {
        "commitTimestamp": 1700000000000,
        "eventId": {"commitNum": commit_num, "opNum": op_num},
        "data": data,
        "op": op,
    }


@pytest.fixture
def pg_record():
    """Factory for property-graph stream records."""
    return _pg_record
