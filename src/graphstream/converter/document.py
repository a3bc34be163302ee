"""
Mutation event documents decoded from the Neptune stream.

A document describes one stream record against one graph entity: vertex or
edge for property graphs, RDF subject for SPARQL. Documents are immutable;
`merge` returns a new document.
"""

from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

VERTEX_ID_PREFIX = "v://"
EDGE_ID_PREFIX = "e://"


class Operation(str, Enum):
    """Stream operation applied to an entity."""
    ADD = "ADD"
    DELETE = "DELETE"


class DocumentType(str, Enum):
    """Classification of the entity a document describes."""
    VERTEX = "vertex"
    EDGE = "edge"
    RDF_RESOURCE = "rdf-resource"


class OpenSearchDocumentPredicate(BaseModel):
    """One predicate value with its optional graph and language qualifiers."""

    model_config = ConfigDict(frozen=True)

    value: Optional[str] = None
    graph: Optional[str] = None
    language: Optional[str] = None


def _unique(items: Iterable[Any]) -> Tuple[Any, ...]:
    # Set semantics with first-seen order, so serialized output is stable.
    return tuple(dict.fromkeys(items))


class OpenSearchDocument(BaseModel):
    """
    One mutation event.

    Fields:
    - op: operation for the entity (ADD or DELETE)
    - commit_num: commit number in the database
    - op_num: operation number within the commit
    - entity_id: vertex/edge id (prefixed) or RDF subject URI
    - entity_type: vertex/edge labels or rdf:type objects
    - document_type: vertex, edge or rdf-resource
    - predicates: predicate key -> set of values
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    op: Operation
    commit_num: int = Field(..., ge=0)
    op_num: int = Field(..., ge=0)
    entity_id: str
    entity_type: Tuple[str, ...] = ()
    document_type: Optional[DocumentType] = None
    predicates: Dict[str, Tuple[OpenSearchDocumentPredicate, ...]] = Field(default_factory=dict)

    @field_validator("entity_type", mode="before")
    @classmethod
    def _dedupe_entity_type(cls, v: Any) -> Tuple[str, ...]:
        if v is None:
            return ()
        if isinstance(v, str):
            return (v,)
        return _unique(v)

    @field_validator("predicates", mode="before")
    @classmethod
    def _dedupe_predicates(cls, v: Any) -> Dict[str, Tuple[Any, ...]]:
        if v is None:
            return {}
        predicates = {}
        for key, values in v.items():
            if isinstance(values, (Mapping, OpenSearchDocumentPredicate)):
                values = [values]
            predicates[key] = _unique(
                value if isinstance(value, OpenSearchDocumentPredicate) else OpenSearchDocumentPredicate(**value)
                for value in values
            )
        return predicates

    def merge(self, other: "OpenSearchDocument") -> "OpenSearchDocument":
        """
        Merge two documents describing the same entity.

        For example
            d1: <s1> rdf:type Person. <s1> <knows> "Mohamed".
            d2: <s1> rdf:type Human. <s1> <knows> "Andreas". <s1> <plays> "Football".
        merge to
            {entity_type: [Person, Human], predicates: {knows: [Mohamed, Andreas], plays: [Football]}}

        Entity ids are compared case-insensitively. A document for a
        different entity is ignored and this document is returned unchanged.
        """
        if self.entity_id.lower() != other.entity_id.lower():
            return self

        predicates = dict(self.predicates)
        for key, values in other.predicates.items():
            predicates[key] = _unique(predicates.get(key, ()) + values)

        return self.model_copy(update={
            "entity_type": _unique(self.entity_type + other.entity_type),
            "predicates": predicates,
        })

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> "OpenSearchDocument":
        """Build a document from a flat event map."""
        return cls.model_validate(dict(event))

    def to_event(self) -> Dict[str, Any]:
        """Flat, JSON-compatible event map."""
        return self.model_dump(mode="json")
