"""
Cooperative cancellation passed into worker run contexts.
"""

import threading
from dataclasses import dataclass, field


class CancellationToken:
    """Flag checked by long-running loops at their boundaries."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if cancelled meanwhile."""
        return self._event.wait(timeout)


@dataclass
class StreamRunContext:
    """
    State shared by the schedulers and workers of one service instance.

    ``shutdown`` stops every loop. ``stop_scanning`` tells the export scan to
    halt; releasing a stream partition clears it so a successor restarts
    cleanly from the export snapshot.
    """
    shutdown: CancellationToken = field(default_factory=CancellationToken)
    stop_scanning: CancellationToken = field(default_factory=CancellationToken)
