from .document import (
    OpenSearchDocument, OpenSearchDocumentPredicate, Operation, DocumentType,
    VERTEX_ID_PREFIX, EDGE_ID_PREFIX
)
from .record_converter import NeptuneRecordConverter, RecordConversionError, event_id

__all__ = [
    "OpenSearchDocument",
    "OpenSearchDocumentPredicate",
    "Operation",
    "DocumentType",
    "VERTEX_ID_PREFIX",
    "EDGE_ID_PREFIX",
    "NeptuneRecordConverter",
    "RecordConversionError",
    "event_id",
]
