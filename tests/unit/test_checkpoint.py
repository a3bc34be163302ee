"""Unit tests for the stream partition checkpoint manager."""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from graphstream.coordination import (
    GlobalState,
    PartitionCoordinator,
    PartitionType,
    StreamCheckpoint,
    StreamPartition,
    StreamProgressState,
)
from graphstream.errors import LeaseConflictError
from graphstream.stream.checkpoint import DataStreamPartitionCheckpoint


@pytest.fixture
def stream_partition(coordinator):
    """Stream partition created in the store and acquired by worker-1."""
    coordinator.create_partition(StreamPartition("cluster-1", StreamProgressState()))
    return coordinator.acquire_available_partition(PartitionType.STREAM)


@pytest.fixture
def checkpoint(coordinator, stream_partition, run_context):
    """Checkpoint manager for the acquired partition."""
    return DataStreamPartitionCheckpoint(coordinator, stream_partition, run_context)


class TestDataStreamPartitionCheckpoint:
    """Test DataStreamPartitionCheckpoint."""

    def test_checkpoint_persists_position(self, checkpoint, partition_store, coordinator):
        """Test checkpoint writes resume token and count with a 5 minute lease."""
        checkpoint.checkpoint(StreamCheckpoint(resume_token="100:3", record_count=42))

        item = partition_store.items["cluster-1"]
        assert item.progress_state["resumeToken"] == "100:3"
        assert item.progress_state["recordCount"] == 42
        assert coordinator.saves[-1] == timedelta(minutes=5)
        assert item.ownership_timeout == partition_store.now + timedelta(minutes=5)

    def test_restart_resumes_from_checkpoint(self, checkpoint, partition_store, other_coordinator):
        """Test a new owner sees exactly the last checkpointed position."""
        checkpoint.checkpoint(StreamCheckpoint(resume_token="100:3", record_count=42))
        checkpoint.give_up_partition()

        partition = other_coordinator.acquire_available_partition(PartitionType.STREAM)
        successor = DataStreamPartitionCheckpoint(other_coordinator, partition)
        progress = successor.get_progress_state()
        assert progress.resume_token == "100:3"
        assert progress.record_count == 42

    def test_checkpoint_after_lease_loss_fails(self, checkpoint, partition_store, other_coordinator):
        """Test saving after another worker took the partition raises LeaseConflictError."""
        partition_store.advance(timedelta(minutes=11))
        assert other_coordinator.acquire_available_partition(PartitionType.STREAM) is not None

        with pytest.raises(LeaseConflictError):
            checkpoint.checkpoint(StreamCheckpoint(resume_token="200:1", record_count=1))
        assert partition_store.items["cluster-1"].partition_owner == "worker-2"

    def test_extend_lease_keeps_progress(self, checkpoint, partition_store):
        """Test extending the lease does not move the position."""
        checkpoint.checkpoint(StreamCheckpoint(resume_token="7:1", record_count=3))
        partition_store.advance(timedelta(minutes=4))
        checkpoint.extend_lease()

        item = partition_store.items["cluster-1"]
        assert item.progress_state["resumeToken"] == "7:1"
        assert item.ownership_timeout == partition_store.now + timedelta(minutes=5)

    def test_acknowledgment_wait_extends_lease(self, checkpoint, partition_store, coordinator):
        """Test the acknowledgment wait uses the requested timeout."""
        checkpoint.update_partition_for_acknowledgment_wait(timedelta(hours=2))
        assert coordinator.saves[-1] == timedelta(hours=2)
        assert partition_store.items["cluster-1"].ownership_timeout == partition_store.now + timedelta(hours=2)

    def test_reset_checkpoint(self, checkpoint, partition_store, run_context, other_coordinator):
        """Test reset clears progress, releases the partition and clears stop-scanning."""
        checkpoint.checkpoint(StreamCheckpoint(resume_token="100:3", record_count=42))
        run_context.stop_scanning.cancel()

        checkpoint.reset_checkpoint()

        assert checkpoint.released
        assert not run_context.stop_scanning.is_cancelled
        item = partition_store.items["cluster-1"]
        assert item.partition_owner is None
        assert item.progress_state["resumeToken"] is None
        assert item.progress_state["recordCount"] == 0

        partition = other_coordinator.acquire_available_partition(PartitionType.STREAM)
        assert partition.get_progress_state().resume_token is None

    def test_give_up_after_reassignment_is_tolerated(self, checkpoint, partition_store, other_coordinator):
        """Test giving up a partition already taken by another worker does not raise."""
        partition_store.advance(timedelta(minutes=11))
        other_coordinator.acquire_available_partition(PartitionType.STREAM)

        checkpoint.give_up_partition()

        assert checkpoint.released
        assert partition_store.items["cluster-1"].partition_owner == "worker-2"

    def test_store_errors_propagate(self, stream_partition):
        """Test non-lease persistence failures are raised unchanged."""
        coordinator = Mock(spec=PartitionCoordinator)
        coordinator.save_progress_state_for_partition.side_effect = ConnectionError("store down")
        checkpoint = DataStreamPartitionCheckpoint(coordinator, stream_partition)

        with pytest.raises(ConnectionError):
            checkpoint.checkpoint(StreamCheckpoint(resume_token="1:1", record_count=1))

    def test_missing_state_is_initialized(self, coordinator):
        """Test a partition without state gets an empty one."""
        checkpoint = DataStreamPartitionCheckpoint(coordinator, StreamPartition("k"))
        assert checkpoint.get_progress_state() == StreamProgressState()


class TestGlobalStreamLoadStatus:
    """Test reading the export completion marker."""

    def test_absent_before_export(self, checkpoint):
        """Test no marker means export has not finished."""
        assert checkpoint.get_global_stream_load_status() is None

    def test_present_after_export(self, checkpoint, coordinator):
        """Test the marker is read from STREAM-<partition key>."""
        coordinator.create_partition(GlobalState("STREAM-cluster-1", {"exportEndTimestamp": 1234}))
        status = checkpoint.get_global_stream_load_status()
        assert status.export_end_timestamp == 1234

    def test_global_state_is_read_only(self, checkpoint, coordinator, partition_store):
        """Test reading the marker takes no ownership."""
        coordinator.create_partition(GlobalState("STREAM-cluster-1", {"exportEndTimestamp": 1}))
        checkpoint.get_global_stream_load_status()
        assert partition_store.items["STREAM-cluster-1"].partition_owner is None
