"""
Progress state models persisted with each partition.

Every state serializes to a flat key/value map using the literal keys stored
by the partition coordinator, and rebuilds from that map unchanged. The map is
the resume contract across process restarts.
"""

import time
from typing import Any, Dict, List, Optional, TypeVar, Type
from pydantic import BaseModel, ConfigDict, Field


StateT = TypeVar("StateT", bound="ProgressState")


def current_time_millis() -> int:
    return int(time.time() * 1000)


class ProgressState(BaseModel):
    """Base class for persisted progress states."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_map(self) -> Dict[str, Any]:
        """Serialize to the persisted key/value map."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_map(cls: Type[StateT], data: Optional[Dict[str, Any]]) -> StateT:
        """Rebuild from a persisted key/value map."""
        return cls.model_validate(data or {})


class DataQueryProgressState(ProgressState):
    """Progress of one bulk data query partition."""

    executed_queries: int = Field(default=0, alias="executedQueries", ge=0)
    loaded_records: int = Field(default=0, alias="loadedRecords", ge=0)
    start_time: int = Field(default=0, alias="exportStartTime")


class StreamCheckpoint(BaseModel):
    """Delta applied to a stream partition on checkpoint."""

    model_config = ConfigDict(frozen=True)

    resume_token: Optional[str] = None
    record_count: int = 0

    @classmethod
    def empty_progress(cls) -> "StreamCheckpoint":
        return cls(resume_token=None, record_count=0)


class StreamProgressState(ProgressState):
    """Progress of a stream partition."""

    resume_token: Optional[str] = Field(default=None, alias="resumeToken")
    record_count: int = Field(default=0, alias="recordCount", ge=0)
    last_checkpoint_time: int = Field(default=0, alias="lastCheckpointTime")
    should_wait_for_export: bool = Field(default=False, alias="waitForExport")

    def update_from_checkpoint(self, checkpoint: StreamCheckpoint) -> None:
        """Apply a checkpoint delta in place."""
        self.resume_token = checkpoint.resume_token
        self.record_count = checkpoint.record_count
        self.last_checkpoint_time = current_time_millis()


class LeaderProgressState(ProgressState):
    """Progress of the leader partition."""

    initialized: bool = Field(default=False, alias="initialized")


class StreamLoadStatus(ProgressState):
    """Process-wide marker recording when bulk export completed."""

    export_end_timestamp: int = Field(alias="exportEndTimestamp")


class S3PartitionStatus(ProgressState):
    """Ordered folder partitions listed for the export collaborator."""

    partitions: List[str] = Field(default_factory=list, alias="partitions")
