"""
Per-commit entity aggregation of Neptune stream events.

Events of one window are buffered by commit number and op number. At
conclusion the commit numbers, and the op numbers within each commit, must
form contiguous ascending runs; a gap means records were lost or reordered
upstream and the whole window is rejected. Each commit then yields one
consolidated record per entity, in first-seen order.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from prometheus_client import Counter

from ..converter.document import OpenSearchDocument
from ..errors import SequenceIntegrityError
from .models import AggregatedEntityRecord, AggregationBuffer, _EntityAccumulator

logger = logging.getLogger(__name__)

aggregated_records_total = Counter(
    'graphstream_aggregated_records_total',
    'Total consolidated entity records emitted'
)

integrity_faults_total = Counter(
    'graphstream_aggregation_integrity_faults_total',
    'Total aggregation windows rejected for non-contiguous sequences',
    ['level']
)


def validate_contiguous(sequence: Sequence[int], commit_num: Optional[int] = None) -> None:
    """
    Check that ``sequence`` ascends by exactly one from its first value.

    Raises:
        SequenceIntegrityError: the sequence has a gap or is out of order
    """
    if not sequence:
        return
    expected = sequence[0]
    for number in sequence:
        if number != expected:
            level = "commit" if commit_num is None else f"op in commit {commit_num}"
            raise SequenceIntegrityError(
                f"Missing {level} sequence number {expected}, found {number}",
                commit_num=commit_num,
                sequence=sequence
            )
        expected += 1


class NeptuneAggregateAction:
    """
    Combines Neptune stream events of one window into entity-level records.

    Never blocks: driven by ``handle_event`` per arriving event and by
    ``conclude_group`` when the hosting grouping stage closes the window.

    Example:
        >>> action = NeptuneAggregateAction()
        >>> state = action.new_group_state()
        >>> action.handle_event(document, state)
        >>> records = action.conclude_group(state)
    """

    @staticmethod
    def new_group_state() -> AggregationBuffer:
        return AggregationBuffer()

    def handle_event(
        self,
        event: Union[OpenSearchDocument, Mapping[str, Any]],
        group_state: AggregationBuffer
    ) -> None:
        """
        Buffer one event.

        Raises:
            SequenceIntegrityError: a different event was already buffered
                under the same (commit_num, op_num)
        """
        document = event if isinstance(event, OpenSearchDocument) else OpenSearchDocument.from_event(event)
        ops = group_state.events.setdefault(document.commit_num, {})

        existing = ops.get(document.op_num)
        if existing is not None:
            if existing == document:
                logger.debug(
                    "Ignoring redelivered stream event",
                    extra={"commit_num": document.commit_num, "op_num": document.op_num}
                )
                return
            integrity_faults_total.labels(level='duplicate').inc()
            raise SequenceIntegrityError(
                f"Conflicting events for commit {document.commit_num} op {document.op_num}",
                commit_num=document.commit_num,
                sequence=[document.op_num]
            )
        ops[document.op_num] = document

    def conclude_group(self, group_state: AggregationBuffer) -> List[AggregatedEntityRecord]:
        """
        Validate the window and emit consolidated records.

        Output is ordered by commit ascending, then by entity first-seen
        order within the commit. Nothing is emitted if validation fails.

        Raises:
            SequenceIntegrityError: commit or op numbers are not contiguous
        """
        commit_nums = sorted(group_state.events)
        try:
            validate_contiguous(commit_nums)
            for commit_num in commit_nums:
                validate_contiguous(sorted(group_state.events[commit_num]), commit_num=commit_num)
        except SequenceIntegrityError as e:
            integrity_faults_total.labels(level='commit' if e.commit_num is None else 'op').inc()
            logger.error(
                f"Rejecting aggregation window: {e}",
                extra={"commit_num": e.commit_num, "events": len(group_state)}
            )
            raise

        records: List[AggregatedEntityRecord] = []
        for commit_num in commit_nums:
            ops = group_state.events[commit_num]
            entities: Dict[str, _EntityAccumulator] = {}
            for op_num in sorted(ops):
                document = ops[op_num]
                accumulator = entities.get(document.entity_id)
                if accumulator is None:
                    accumulator = entities[document.entity_id] = _EntityAccumulator(document.entity_id)
                accumulator.add(document)
            records.extend(accumulator.build() for accumulator in entities.values())

        aggregated_records_total.inc(len(records))
        logger.debug(
            f"Concluded aggregation window with {len(records)} records",
            extra={"commits": len(commit_nums), "events": len(group_state)}
        )
        return records
