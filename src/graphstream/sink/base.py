"""Record sink protocol used by the stream worker."""

from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from ..converter.document import OpenSearchDocument

if TYPE_CHECKING:
    from ..stream.acknowledgements import AcknowledgementSet


@runtime_checkable
class RecordSink(Protocol):
    """Protocol that every output sink must satisfy."""

    def write_record(
        self,
        document: OpenSearchDocument,
        acknowledgement_set: Optional["AcknowledgementSet"] = None
    ) -> None:
        """
        Hand one decoded event to the pipeline.

        When an acknowledgement set is given, the sink (or whatever stage
        it forwards to) must release it once for this record.
        """
        ...

    def flush(self) -> None:
        """Deliver anything buffered before the caller checkpoints."""
        ...
