"""
Ordered event aggregation: one consolidated record per entity per commit.
"""

from .models import AggregatedEntityRecord, AggregationBuffer
from .aggregator import NeptuneAggregateAction, validate_contiguous

__all__ = [
    "AggregatedEntityRecord",
    "AggregationBuffer",
    "NeptuneAggregateAction",
    "validate_contiguous",
]
