"""
Aggregation window state and consolidated entity records.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict

from ..converter.document import OpenSearchDocument, Operation


class AggregatedEntityRecord(BaseModel):
    """Consolidated change of one entity within one commit."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    entity_types_to_add: Tuple[str, ...] = ()
    entity_types_to_delete: Tuple[str, ...] = ()
    predicates_to_add: Tuple[Dict[str, Any], ...] = ()
    predicates_to_delete: Tuple[Dict[str, Any], ...] = ()

    def to_event(self) -> Dict[str, Any]:
        """JSON-compatible output map."""
        return self.model_dump(mode="json")


@dataclass
class AggregationBuffer:
    """
    Events of one aggregation window keyed by commit number, then op number.

    Created once per window and passed by reference to every handle and
    conclude call of that window.
    """
    events: Dict[int, Dict[int, OpenSearchDocument]] = field(default_factory=dict)

    def __len__(self) -> int:
        return sum(len(ops) for ops in self.events.values())

    @property
    def is_empty(self) -> bool:
        return not self.events


@dataclass
class _EntityAccumulator:
    entity_id: str
    types_to_add: Dict[str, None] = field(default_factory=dict)
    types_to_delete: Dict[str, None] = field(default_factory=dict)
    predicates_to_add: List[Dict[str, Any]] = field(default_factory=list)
    predicates_to_delete: List[Dict[str, Any]] = field(default_factory=list)

    def add(self, document: OpenSearchDocument) -> None:
        adding = document.op == Operation.ADD

        if document.entity_type:
            types = self.types_to_add if adding else self.types_to_delete
            types.update(dict.fromkeys(document.entity_type))

        # Predicates are appended per statement, not unioned: graph and
        # language qualifiers of each statement stay distinguishable.
        if document.predicates:
            snapshots = self.predicates_to_add if adding else self.predicates_to_delete
            for key, values in document.predicates.items():
                snapshots.append({
                    "key": key,
                    "value": [value.model_dump() for value in values],
                })

    def build(self) -> AggregatedEntityRecord:
        return AggregatedEntityRecord(
            entity_id=self.entity_id,
            entity_types_to_add=tuple(self.types_to_add),
            entity_types_to_delete=tuple(self.types_to_delete),
            predicates_to_add=tuple(self.predicates_to_add),
            predicates_to_delete=tuple(self.predicates_to_delete),
        )
