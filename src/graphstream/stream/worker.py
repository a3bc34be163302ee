"""
Stream worker: consumes the Neptune change stream of one owned partition.

Must implement:
1. Wait for bulk export completion when the partition is gated on it
2. Resume from the persisted resume token (or the stream start)
3. Decode each record and hand it to the output sink
4. Checkpoint every N records or every T seconds, whichever comes first
5. Wait for downstream acknowledgment before checkpointing (when enabled)
6. Reset the checkpoint when the source rejects the resume position
"""

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from prometheus_client import Counter
from tenacity import Retrying, retry_if_result, wait_fixed

from ..config.settings import StreamSettings
from ..converter.record_converter import NeptuneRecordConverter, RecordConversionError
from ..coordination.state import StreamCheckpoint, StreamLoadStatus
from ..errors import AcknowledgmentError, ResumeTokenError
from ..sink.base import RecordSink
from ..source.neptune_client import NeptuneStreamClient, StreamCursor
from .acknowledgements import AcknowledgementSet
from .cancellation import StreamRunContext
from .checkpoint import DataStreamPartitionCheckpoint

logger = logging.getLogger(__name__)

stream_records_total = Counter(
    'graphstream_stream_records_total',
    'Total stream records processed',
    ['status']
)


@dataclass
class StreamWorkerConfig:
    """Configuration for the stream worker."""
    checkpoint_record_interval: int = 1000  # Max records between checkpoints
    checkpoint_interval_seconds: float = 60  # Max seconds between checkpoints
    idle_wait_seconds: float = 1.0  # Sleep when the stream has nothing new
    export_poll_interval_seconds: float = 30
    acknowledgments: bool = False
    acknowledgment_timeout_seconds: float = 7200
    acknowledgment_poll_seconds: float = 1.0

    def __post_init__(self):
        """Validate configuration values."""
        if self.checkpoint_record_interval <= 0:
            raise ValueError("checkpoint_record_interval must be positive")
        if self.checkpoint_interval_seconds <= 0:
            raise ValueError("checkpoint_interval_seconds must be positive")
        lease_seconds = DataStreamPartitionCheckpoint.CHECKPOINT_OWNERSHIP_TIMEOUT_INCREASE.total_seconds()
        if self.checkpoint_interval_seconds >= lease_seconds:
            raise ValueError(
                f"checkpoint_interval_seconds must be shorter than the checkpoint lease ({lease_seconds:.0f}s)"
            )
        if self.idle_wait_seconds < 0:
            raise ValueError("idle_wait_seconds must be non-negative")
        if self.export_poll_interval_seconds < 0:
            raise ValueError("export_poll_interval_seconds must be non-negative")
        if self.acknowledgment_timeout_seconds <= 0:
            raise ValueError("acknowledgment_timeout_seconds must be positive")

    @classmethod
    def from_settings(cls, settings: StreamSettings) -> "StreamWorkerConfig":
        return cls(
            checkpoint_record_interval=settings.checkpoint_record_interval,
            checkpoint_interval_seconds=settings.checkpoint_interval_seconds,
            idle_wait_seconds=settings.idle_wait_seconds,
            export_poll_interval_seconds=settings.export_poll_interval_seconds,
            acknowledgments=settings.acknowledgments,
            acknowledgment_timeout_seconds=settings.partition_acknowledgment_timeout_seconds,
        )


class StreamWorker:
    """
    Process the change stream of one partition per call.

    Thread Safety: NOT thread-safe. One worker per partition at a time; the
    scheduler runs a fresh attempt for every acquired partition.

    Example:
        >>> worker = StreamWorker(sink, client_factory, NeptuneRecordConverter(), StreamWorkerConfig())
        >>> worker.process_stream(checkpoint, context)
    """

    def __init__(
        self,
        sink: RecordSink,
        client_factory: Callable[[], NeptuneStreamClient],
        converter: NeptuneRecordConverter,
        config: StreamWorkerConfig,
        clock: Callable[[], float] = time.monotonic
    ):
        if not isinstance(sink, RecordSink):
            raise TypeError("sink must implement write_record and flush")
        self.sink = sink
        self.client_factory = client_factory
        self.converter = converter
        self.config = config
        self._clock = clock

    def process_stream(self, checkpoint: DataStreamPartitionCheckpoint, context: StreamRunContext) -> None:
        """
        Consume the stream until shutdown is requested (blocking call).

        Raises:
            LeaseConflictError: ownership was lost; stop emitting immediately
            AcknowledgmentError: a batch was not acknowledged
            requests.RequestException: transport failure, unchanged
        """
        progress = checkpoint.get_progress_state()

        if progress.should_wait_for_export:
            load_status = self._wait_for_export(checkpoint, context)
            if load_status is None:
                logger.info(
                    "Shutdown requested while waiting for export",
                    extra={"partition_key": checkpoint.partition_key}
                )
                return
            logger.info(
                "Export completed, starting stream",
                extra={
                    "partition_key": checkpoint.partition_key,
                    "export_end_timestamp": load_status.export_end_timestamp
                }
            )
            progress.should_wait_for_export = False

        client = self.client_factory()
        try:
            cursor = client.open_cursor(progress.resume_token)
            self._consume(cursor, checkpoint, context, progress.resume_token, progress.record_count)
        except ResumeTokenError as e:
            logger.warning(
                f"Resume token rejected by stream source, resetting checkpoint: {e}",
                extra={"partition_key": checkpoint.partition_key}
            )
            checkpoint.reset_checkpoint()
        finally:
            client.close()

    def _wait_for_export(
        self,
        checkpoint: DataStreamPartitionCheckpoint,
        context: StreamRunContext
    ) -> Optional[StreamLoadStatus]:
        """Poll for export completion, keeping the lease alive meanwhile."""

        def poll() -> Optional[StreamLoadStatus]:
            status = checkpoint.get_global_stream_load_status()
            if status is None:
                checkpoint.extend_lease()
            return status

        retryer = Retrying(
            retry=retry_if_result(lambda status: status is None),
            wait=wait_fixed(self.config.export_poll_interval_seconds),
            stop=lambda retry_state: context.shutdown.is_cancelled,
            sleep=context.shutdown.wait,
            retry_error_callback=lambda retry_state: None,
            before_sleep=lambda retry_state: logger.debug(
                "Waiting for export to complete",
                extra={"partition_key": checkpoint.partition_key, "attempt": retry_state.attempt_number}
            )
        )
        return retryer(poll)

    def _consume(
        self,
        cursor: StreamCursor,
        checkpoint: DataStreamPartitionCheckpoint,
        context: StreamRunContext,
        resume_token: Optional[str],
        record_count: int
    ) -> None:
        records_since_checkpoint = 0
        last_checkpoint = self._clock()
        acknowledgement_set = self._new_acknowledgement_set()

        while not context.shutdown.is_cancelled:
            try:
                record = cursor.try_next()
            except RecordConversionError as e:
                # No position to advance to; the cursor already dropped it
                stream_records_total.labels(status='failure').inc()
                logger.error(f"Skipping stream record without a position: {e}")
                continue

            if record is not None:
                resume_token = record.resume_token
                self._write(record.data, acknowledgement_set)
                record_count += 1
                records_since_checkpoint += 1
            else:
                context.shutdown.wait(self.config.idle_wait_seconds)

            if (records_since_checkpoint >= self.config.checkpoint_record_interval
                    or self._clock() - last_checkpoint >= self.config.checkpoint_interval_seconds):
                if not self._checkpoint(checkpoint, context, resume_token, record_count,
                                        records_since_checkpoint, acknowledgement_set):
                    return
                records_since_checkpoint = 0
                last_checkpoint = self._clock()
                acknowledgement_set = self._new_acknowledgement_set()

        if records_since_checkpoint:
            self._checkpoint(checkpoint, context, resume_token, record_count,
                             records_since_checkpoint, acknowledgement_set)
        logger.info(
            "Stream worker stopped",
            extra={"partition_key": checkpoint.partition_key, "record_count": record_count}
        )

    def _new_acknowledgement_set(self) -> Optional[AcknowledgementSet]:
        return AcknowledgementSet() if self.config.acknowledgments else None

    def _write(self, data, acknowledgement_set: Optional[AcknowledgementSet]) -> None:
        try:
            document = self.converter.convert(data)
        except RecordConversionError as e:
            stream_records_total.labels(status='failure').inc()
            logger.error(f"Failed to convert stream record: {e}", extra={"event_id": data.get("eventId")})
            return

        if acknowledgement_set is not None:
            acknowledgement_set.add()
        self.sink.write_record(document, acknowledgement_set)
        stream_records_total.labels(status='success').inc()

    def _checkpoint(
        self,
        checkpoint: DataStreamPartitionCheckpoint,
        context: StreamRunContext,
        resume_token: Optional[str],
        record_count: int,
        new_records: int,
        acknowledgement_set: Optional[AcknowledgementSet]
    ) -> bool:
        """
        Flush the sink and persist progress. Returns False if shutdown
        interrupted an acknowledgment wait and nothing was checkpointed.
        """
        self.sink.flush()

        if not new_records:
            checkpoint.extend_lease()
            return True

        if acknowledgement_set is not None:
            acknowledgement_set.complete()
            checkpoint.update_partition_for_acknowledgment_wait(
                timedelta(seconds=self.config.acknowledgment_timeout_seconds)
            )
            if not self._await_acknowledgment(acknowledgement_set, context):
                return False

        checkpoint.checkpoint(StreamCheckpoint(resume_token=resume_token, record_count=record_count))
        logger.info(
            f"Checkpointed {new_records} records",
            extra={"partition_key": checkpoint.partition_key, "record_count": record_count}
        )
        return True

    def _await_acknowledgment(self, acknowledgement_set: AcknowledgementSet, context: StreamRunContext) -> bool:
        """
        Block until the batch is acknowledged.

        Raises:
            AcknowledgmentError: negative acknowledgment or timeout
        """
        deadline = self._clock() + self.config.acknowledgment_timeout_seconds
        while True:
            result = acknowledgement_set.wait(self.config.acknowledgment_poll_seconds)
            if result is True:
                return True
            if result is False:
                raise AcknowledgmentError("Batch was negatively acknowledged")
            if context.shutdown.is_cancelled:
                logger.info("Shutdown requested while waiting for acknowledgment")
                return False
            if self._clock() >= deadline:
                raise AcknowledgmentError(
                    f"Batch not acknowledged within {self.config.acknowledgment_timeout_seconds}s"
                )
