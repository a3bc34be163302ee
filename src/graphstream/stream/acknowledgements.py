"""
Acknowledgment sets for at-least-once delivery.

The worker attaches one set to every record of a batch. The downstream
pipeline releases each handle with a success flag once the record is durably
delivered; the worker only checkpoints a batch after its set is fully,
positively acknowledged.
"""

import threading
from typing import Optional


class AcknowledgementSet:
    """
    Tracks outstanding deliveries of one batch.

    Thread Safety: YES. Handles are released from downstream threads.
    """

    def __init__(self):
        self._condition = threading.Condition()
        self._outstanding = 0
        self._completed = False
        self._failed = False

    def add(self) -> None:
        """Register one more record carrying this set."""
        with self._condition:
            if self._completed:
                raise RuntimeError("Cannot add records to a completed acknowledgement set")
            self._outstanding += 1

    def release(self, result: bool) -> None:
        """Acknowledge one record; ``result`` False marks the whole set failed."""
        with self._condition:
            if self._outstanding == 0:
                raise RuntimeError("Released more records than were added")
            self._outstanding -= 1
            if not result:
                self._failed = True
            self._condition.notify_all()

    def complete(self) -> None:
        """Mark that no more records will be added."""
        with self._condition:
            self._completed = True
            self._condition.notify_all()

    @property
    def is_done(self) -> bool:
        with self._condition:
            return self._failed or (self._completed and self._outstanding == 0)

    @property
    def result(self) -> Optional[bool]:
        """True/False once done, None while deliveries are outstanding."""
        with self._condition:
            if self._failed:
                return False
            if self._completed and self._outstanding == 0:
                return True
            return None

    def wait(self, timeout: float) -> Optional[bool]:
        """Block up to ``timeout`` seconds for the result."""
        with self._condition:
            self._condition.wait_for(
                lambda: self._failed or (self._completed and self._outstanding == 0),
                timeout=timeout
            )
        return self.result
