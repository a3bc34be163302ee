"""
Decode Neptune stream records into mutation event documents.

Property graph records (PG_JSON) carry one vertex label, vertex property,
edge or edge property change each. SPARQL records (NQUADS) carry one
N-Quads statement.
"""

import re
from typing import Any, Dict, Mapping, Optional, Tuple

from .document import (
    EDGE_ID_PREFIX,
    VERTEX_ID_PREFIX,
    DocumentType,
    OpenSearchDocument,
    OpenSearchDocumentPredicate,
    Operation,
)

RDF_TYPE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#type"

# Neptune stream op -> document op
_OPERATIONS = {
    "ADD": Operation.ADD,
    "REMOVE": Operation.DELETE,
}

_IRI = r"<[^>]*>"
_BLANK = r"_:\S+"
_LITERAL = r'"(?:[^"\\]|\\.)*"(?:@[A-Za-z0-9-]+|\^\^<[^>]*>)?'
_STATEMENT = re.compile(
    rf"^\s*(?P<subject>{_IRI}|{_BLANK})\s+"
    rf"(?P<predicate>{_IRI})\s+"
    rf"(?P<object>{_IRI}|{_BLANK}|{_LITERAL})"
    rf"(?:\s+(?P<graph>{_IRI}|{_BLANK}))?\s*\.\s*$"
)
_LITERAL_PARTS = re.compile(r'^"(?P<value>(?:[^"\\]|\\.)*)"(?:@(?P<language>[A-Za-z0-9-]+)|\^\^<[^>]*>)?$')
_ESCAPES = {'\\"': '"', "\\\\": "\\", "\\n": "\n", "\\r": "\r", "\\t": "\t"}


class RecordConversionError(ValueError):
    """Stream record could not be decoded."""
    pass


def event_id(record: Mapping[str, Any]) -> Tuple[int, int]:
    """(commitNum, opNum) of a stream record."""
    try:
        ids = record["eventId"]
        return int(ids["commitNum"]), int(ids["opNum"])
    except (KeyError, TypeError, ValueError) as e:
        raise RecordConversionError(f"Record has no valid eventId: {record!r}") from e


def _term(term: str) -> str:
    if term.startswith("<") and term.endswith(">"):
        return term[1:-1]
    return term


def _unescape(value: str) -> str:
    return re.sub(r'\\["\\nrt]', lambda m: _ESCAPES[m.group(0)], value)


class NeptuneRecordConverter:
    """
    Converts raw stream records of one stream type into documents.

    Example:
        >>> converter = NeptuneRecordConverter("propertygraph")
        >>> doc = converter.convert(record)
    """

    def __init__(self, stream_type: str = "propertygraph"):
        if stream_type not in ("propertygraph", "sparql"):
            raise ValueError(f"Unsupported stream type: {stream_type}")
        self.stream_type = stream_type

    def convert(self, record: Mapping[str, Any]) -> OpenSearchDocument:
        commit_num, op_num = event_id(record)
        op = _OPERATIONS.get(record.get("op"))
        if op is None:
            raise RecordConversionError(f"Unsupported stream operation: {record.get('op')!r}")
        data = record.get("data")
        if not isinstance(data, Mapping):
            raise RecordConversionError("Record has no data section")

        if self.stream_type == "sparql":
            fields = self._convert_statement(data)
        else:
            fields = self._convert_property_graph(data)

        return OpenSearchDocument(op=op, commit_num=commit_num, op_num=op_num, **fields)

    def _convert_property_graph(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        change_type = data.get("type")
        entity = data.get("id")
        key = data.get("key")
        value = self._property_value(data.get("value"))
        if not entity:
            raise RecordConversionError("Property graph record has no id")
        if change_type in ("vp", "ep") and not key:
            raise RecordConversionError(f"Property record {entity} has no key")

        if change_type == "vl":
            return {
                "entity_id": VERTEX_ID_PREFIX + entity,
                "document_type": DocumentType.VERTEX,
                "entity_type": (value,) if value is not None else (),
            }
        if change_type == "vp":
            return {
                "entity_id": VERTEX_ID_PREFIX + entity,
                "document_type": DocumentType.VERTEX,
                "predicates": {key: [OpenSearchDocumentPredicate(value=value)]},
            }
        if change_type == "e":
            return {
                "entity_id": EDGE_ID_PREFIX + entity,
                "document_type": DocumentType.EDGE,
                "entity_type": (value,) if value is not None else (),
            }
        if change_type == "ep":
            return {
                "entity_id": EDGE_ID_PREFIX + entity,
                "document_type": DocumentType.EDGE,
                "predicates": {key: [OpenSearchDocumentPredicate(value=value)]},
            }
        raise RecordConversionError(f"Unsupported property graph change type: {change_type!r}")

    @staticmethod
    def _property_value(value: Any) -> Optional[str]:
        if isinstance(value, Mapping):
            value = value.get("value")
        if value is None:
            return None
        if isinstance(value, bool):
            return str(value).lower()
        return str(value)

    def _convert_statement(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        stmt = data.get("stmt")
        match = _STATEMENT.match(stmt or "")
        if not match:
            raise RecordConversionError(f"Malformed N-Quads statement: {stmt!r}")

        subject = _term(match.group("subject"))
        predicate = _term(match.group("predicate"))
        graph = _term(match.group("graph")) if match.group("graph") else None
        obj = match.group("object")

        language = None
        literal = _LITERAL_PARTS.match(obj)
        if literal:
            value = _unescape(literal.group("value"))
            language = literal.group("language")
        else:
            value = _term(obj)

        if predicate == RDF_TYPE:
            return {
                "entity_id": subject,
                "document_type": DocumentType.RDF_RESOURCE,
                "entity_type": (value,),
            }
        return {
            "entity_id": subject,
            "document_type": DocumentType.RDF_RESOURCE,
            "predicates": {
                predicate: [OpenSearchDocumentPredicate(value=value, graph=graph, language=language)]
            },
        }
