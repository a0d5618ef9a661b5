"""Rejection counters for assignment proposals.

Every decision taken on a proposal (accepted, to be processed, rejected) is
stored as a new assignment event. Rejections carry a per-group counter that
ranks how many times the group has been turned down; it only grows, unless a
phase tag on the row pins it to a fixed value.

The computation is two pure steps: :func:`compute_max_counters` scans the
stored history, then :func:`apply_decisions` folds the sheet rows over that
state in sheet order. Later rows see the counters raised by earlier rows of the
same run, so the rows must be processed sequentially.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Set, Tuple

from .batch_writer import BatchWriter
from .config import ProposalColumnsConfig
from .errors import TransportError
from .models import (
    MISSING,
    AdjustmentResult,
    AssignmentRecord,
    Decision,
    SourceRow,
    classify_decision,
    decision_label,
)
from .normalize import cell_text, normalize_date_string
from .push_id import PushIdGenerator

LOGGER = logging.getLogger(__name__)

STANDARD_PHASES = frozenset(
    {"ALTA DOMANDA", "BASSA DOMANDA", "EXTRA (RIPIEGO)", "EXTRA (TEMATICO)"}
)
FIRST_PHASE_MARKER = "FASE 1"
SECOND_PHASE_MARKER = "FASE 2"


def assignment_key(group_id: str, label: str, subject: Any, timeslot: Any) -> str:
    """Duplicate-suppression key of an assignment event."""

    slot = normalize_date_string(timeslot) or cell_text(timeslot)
    return f"{group_id}_{label}_{cell_text(subject)}_{slot}"


def phase_counter(phase_tag: Any) -> int | None:
    """Counter forced by a phase tag, or ``None`` when the tag does not force one."""

    tag = cell_text(phase_tag).upper()
    if not tag:
        return None
    if tag in STANDARD_PHASES:
        return 1
    if FIRST_PHASE_MARKER in tag:
        return 2
    if SECOND_PHASE_MARKER in tag:
        return 3
    return None


def compute_max_counters(history: Mapping[str, Any]) -> Tuple[Set[str], Dict[str, int]]:
    """Return the keys of stored events and the highest counter per group."""

    seen_keys: Set[str] = set()
    max_by_group: Dict[str, int] = {}
    for payload in history.values():
        if not isinstance(payload, Mapping):
            continue
        record = AssignmentRecord.from_payload(payload)
        group_id = record.group_id.strip()
        if not group_id:
            continue

        label = decision_label(record.label)
        if label is not None:
            seen_keys.add(assignment_key(group_id, label, record.subject_name, record.timeslot))

        max_by_group[group_id] = max(max_by_group.get(group_id, 0), record.rejection_counter)
    return seen_keys, max_by_group


def apply_decisions(
    rows: Iterable[SourceRow],
    columns: ProposalColumnsConfig,
    seen_keys: Set[str],
    max_by_group: Mapping[str, int],
    generator: PushIdGenerator,
) -> AdjustmentResult:
    """Turn decision rows into new assignment events.

    The inputs are not mutated; the fold works on copies of the seen keys and
    the counters.
    """

    seen = set(seen_keys)
    counters = dict(max_by_group)
    result = AdjustmentResult()

    for row in rows:
        group_id = row.text(columns.group_id)
        raw_decision = row.text(columns.decision)
        decision = classify_decision(raw_decision)
        if not group_id or decision is None:
            continue

        label = decision_label(raw_decision)
        subject = row.text(columns.subject)
        timeslot = row.values.get(columns.timeslot)
        key = assignment_key(group_id, label, subject, timeslot)
        if key in seen:
            LOGGER.debug("Row %s: assignment already recorded; skipping", row.row_number)
            result.duplicates += 1
            continue

        current_max = counters.get(group_id, 0)
        if decision is Decision.ACCEPTED_OR_PENDING:
            counter = current_max
            stored_label = raw_decision
        else:
            phase_tag = row.get(columns.phase_tag)
            forced = None if phase_tag is MISSING else phase_counter(phase_tag)
            counter = forced if forced is not None else current_max + 1
            counters[group_id] = counter
            stored_label = "NO"

        record = AssignmentRecord(
            group_id=group_id,
            label=stored_label,
            subject_name=subject,
            timeslot=timeslot,
            rejection_counter=counter,
        )
        result.new_assignments[generator.generate()] = record
        seen.add(key)
        result.success_count += 1

    return result


def adjust(
    existing: Mapping[str, Any],
    rows: Iterable[SourceRow],
    columns: ProposalColumnsConfig,
    generator: PushIdGenerator,
) -> AdjustmentResult:
    seen_keys, max_by_group = compute_max_counters(existing)
    return apply_decisions(rows, columns, seen_keys, max_by_group, generator)


def commit_adjustment(
    result: AdjustmentResult,
    writer: BatchWriter,
    node: str,
) -> AdjustmentResult:
    """Write the new events; a failed write turns every counted success into an error."""

    if not result.new_assignments:
        LOGGER.info("No new assignments to write")
        return result

    LOGGER.info("Sending %s assignments to %s", len(result.new_assignments), node)
    try:
        writer.write(node, result.payloads())
    except TransportError as exc:
        LOGGER.error("Batch write to %s failed: %s", node, exc)
        return AdjustmentResult(
            new_assignments=result.new_assignments,
            success_count=0,
            error_count=result.success_count,
            duplicates=result.duplicates,
        )
    return result
