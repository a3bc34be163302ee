"""
Grouping stage hosting the aggregation engine.

Buffers decoded events into an aggregation window, concludes the window after
a fixed duration or on flush, and forwards the consolidated records to a
downstream callback. Acknowledgment handles attached to the buffered events
are released only once the window's output was handed downstream.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from ..aggregation.aggregator import NeptuneAggregateAction
from ..aggregation.models import AggregationBuffer
from ..config.settings import AggregationSettings
from ..converter.document import OpenSearchDocument
from ..stream.acknowledgements import AcknowledgementSet

logger = logging.getLogger(__name__)


class AggregatingSink:
    """
    RecordSink that emits one consolidated record per entity per commit.

    Thread Safety: YES (windows are swapped under a lock).

    Example:
        >>> sink = AggregatingSink(callback=write_batch, group_duration_seconds=10)
        >>> sink.write_record(document)
        >>> sink.flush()
    """

    def __init__(
        self,
        callback: Callable[[List[Dict[str, Any]]], None],
        group_duration_seconds: float = 10.0,
        action: Optional[NeptuneAggregateAction] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        if group_duration_seconds <= 0:
            raise ValueError("group_duration_seconds must be positive")
        self.callback = callback
        self.group_duration_seconds = group_duration_seconds
        self.action = action or NeptuneAggregateAction()
        self._clock = clock
        self._lock = threading.Lock()
        self._group_state: Optional[AggregationBuffer] = None
        self._acknowledgements: List[AcknowledgementSet] = []
        self._window_started: float = 0.0

    @classmethod
    def from_settings(
        cls,
        callback: Callable[[List[Dict[str, Any]]], None],
        settings: AggregationSettings
    ) -> "AggregatingSink":
        return cls(callback, group_duration_seconds=settings.group_duration_seconds)

    def write_record(
        self,
        document: OpenSearchDocument,
        acknowledgement_set: Optional[AcknowledgementSet] = None
    ) -> None:
        with self._lock:
            if self._group_state is None:
                self._group_state = self.action.new_group_state()
                self._window_started = self._clock()
            if acknowledgement_set is not None:
                self._acknowledgements.append(acknowledgement_set)

            try:
                self.action.handle_event(document, self._group_state)
            except Exception:
                self._abort_window()
                raise

            if self._clock() - self._window_started >= self.group_duration_seconds:
                self._conclude_window()

    def flush(self) -> None:
        """Conclude the current window, if any."""
        with self._lock:
            self._conclude_window()

    def _take_window(self):
        group_state, acknowledgements = self._group_state, self._acknowledgements
        self._group_state = None
        self._acknowledgements = []
        return group_state, acknowledgements

    def _abort_window(self) -> None:
        group_state, acknowledgements = self._take_window()
        logger.error(
            "Aborting aggregation window",
            extra={"events": len(group_state) if group_state else 0}
        )
        for acknowledgement_set in acknowledgements:
            acknowledgement_set.release(False)

    def _conclude_window(self) -> None:
        if self._group_state is None:
            return
        group_state, acknowledgements = self._take_window()
        try:
            records = self.action.conclude_group(group_state)
            if records:
                self.callback([record.to_event() for record in records])
        except Exception:
            for acknowledgement_set in acknowledgements:
                acknowledgement_set.release(False)
            raise

        for acknowledgement_set in acknowledgements:
            acknowledgement_set.release(True)
        logger.debug(
            f"Delivered {len(records)} aggregated records",
            extra={"events": len(group_state), "records": len(records)}
        )
