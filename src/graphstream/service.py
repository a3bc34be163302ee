"""
Service wiring: runs the leader and stream schedulers on a fixed-size pool.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from .config.settings import Settings, get_settings
from .converter.record_converter import NeptuneRecordConverter
from .coordination.coordinator import PartitionCoordinator
from .leader import LeaderScheduler
from .sink.aggregating import AggregatingSink
from .sink.base import RecordSink
from .source.neptune_client import NeptuneStreamClient
from .stream.cancellation import StreamRunContext
from .stream.scheduler import StreamScheduler
from .stream.worker import StreamWorker, StreamWorkerConfig
from .utils.logging import configure_logging

logger = logging.getLogger(__name__)


class GraphStreamService:
    """
    Long-running ingestion service.

    Each scheduler is one long-lived task on the pool; within a partition all
    processing is sequential. ``shutdown()`` cancels the shared run context
    and every loop exits at its next boundary, flushing and giving up owned
    partitions on the way out.

    Example:
        >>> service = GraphStreamService(coordinator, sink)
        >>> service.start()
        >>> service.shutdown()
    """

    def __init__(
        self,
        coordinator: PartitionCoordinator,
        sink: RecordSink,
        settings: Optional[Settings] = None,
        client_factory: Optional[Callable[[], NeptuneStreamClient]] = None
    ):
        self.coordinator = coordinator
        self.sink = sink
        self.settings = settings or get_settings()
        self.client_factory = client_factory or (lambda: NeptuneStreamClient.from_settings(self.settings.neptune))
        self.context = StreamRunContext()
        self.executor: Optional[ThreadPoolExecutor] = None
        self.futures: List[Future] = []

    @classmethod
    def with_aggregation(
        cls,
        coordinator: PartitionCoordinator,
        callback: Callable[[List[Dict[str, Any]]], None],
        settings: Optional[Settings] = None,
        client_factory: Optional[Callable[[], NeptuneStreamClient]] = None
    ) -> "GraphStreamService":
        """
        Service whose stream events pass through the aggregation stage.

        Consolidated per-entity records are handed to ``callback`` once per
        aggregation window.
        """
        settings = settings or get_settings()
        sink = AggregatingSink.from_settings(callback, settings.aggregation)
        return cls(coordinator, sink, settings=settings, client_factory=client_factory)

    @property
    def stream_partition_key(self) -> str:
        return self.settings.neptune.host

    def build_leader_scheduler(self) -> LeaderScheduler:
        return LeaderScheduler(
            self.coordinator,
            stream_partition_key=self.stream_partition_key,
            export_enabled=self.settings.neptune.export
        )

    def build_stream_scheduler(self) -> StreamScheduler:
        stream_settings = self.settings.stream
        worker = StreamWorker(
            sink=self.sink,
            client_factory=self.client_factory,
            converter=NeptuneRecordConverter(self.settings.neptune.stream_type),
            config=StreamWorkerConfig.from_settings(stream_settings)
        )
        return StreamScheduler(
            self.coordinator,
            worker,
            acquire_wait_seconds=stream_settings.acquire_wait_seconds,
            failure_backoff_seconds=stream_settings.failure_backoff_seconds
        )

    def start(self) -> None:
        if self.executor is not None:
            raise RuntimeError("Service already started")

        configure_logging(self.settings.log_level)
        tasks = [self.build_leader_scheduler().run]
        if self.settings.neptune.stream:
            tasks.append(self.build_stream_scheduler().run)

        logger.info(
            "Starting graphstream service",
            extra={
                "endpoint": self.settings.neptune.endpoint,
                "environment": self.settings.environment,
                "schedulers": len(tasks)
            }
        )
        self.executor = ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="graphstream")
        for task in tasks:
            future = self.executor.submit(task, self.context)
            future.add_done_callback(self._on_scheduler_exit)
            self.futures.append(future)

    def _on_scheduler_exit(self, future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"Scheduler exited with error: {error}", exc_info=error)

    def shutdown(self, wait: bool = True) -> None:
        """Stop all schedulers; with ``wait`` block until they have exited."""
        if self.executor is None:
            return
        logger.info("Shutting down graphstream service")
        self.context.shutdown.cancel()
        self.executor.shutdown(wait=wait)
        self.executor = None
