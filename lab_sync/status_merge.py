"""Merge confirmed decisions and AI proposals into one status per lab slot.

Stage one (:func:`merge_statuses`) builds a map keyed by
``clean(lab) + "|" + normalized date``; stage two (:func:`apply_statuses`)
matches the researchers' display sheet against it and produces the cell colors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .config import SlotColumnsConfig
from .errors import SchemaError
from .models import CellColor, Status, StatusGrid, decision_label
from .normalize import clean_for_compare, normalize_date_string
from .ports import child_items

LOGGER = logging.getLogger(__name__)

COLOR_CONFIRMED = CellColor("#90ee90")
COLOR_PENDING = CellColor("#ffffe0")
COLOR_NEUTRAL = CellColor("#ffffff")

_COLORS = {Status.CONFIRMED: COLOR_CONFIRMED, Status.PENDING: COLOR_PENDING}

# confirmed-feed decision label -> status
_CONFIRMED_FEED_STATUS = {
    "SI": Status.CONFIRMED,
    "PROPOSTA DA ELABORARE": Status.PENDING,
}


def status_key(subject: Any, timeslot: Any) -> str | None:
    subject_text = clean_for_compare(subject)
    date_text = normalize_date_string(timeslot)
    if not subject_text or date_text is None:
        return None
    return f"{subject_text}|{date_text}"


def _record_status(status_map: Dict[str, Status], key: str, status: Status) -> None:
    if status is Status.CONFIRMED or status_map.get(key) is not Status.CONFIRMED:
        status_map[key] = status


def latest_batch_key(proposals: Mapping[str, Any]) -> str | None:
    return max(proposals) if proposals else None


def merge_statuses(
    confirmed_records: Any,
    proposal_batches: Any,
) -> Dict[str, Status]:
    """Merge the two feeds; CONFIRMED always wins over PENDING for the same key."""

    status_map: Dict[str, Status] = {}

    confirmed_count = 0
    for _, record in child_items(confirmed_records):
        if not isinstance(record, Mapping):
            continue
        status = _CONFIRMED_FEED_STATUS.get(decision_label(record.get("proposta_accettata")) or "")
        if status is None:
            continue
        subject = record.get("nome_lab")
        timeslot = record.get("data_lab")
        if not subject or not timeslot:
            continue
        key = status_key(subject, timeslot)
        if key is None:
            LOGGER.warning("Unable to parse date '%s' of a confirmed assignment", timeslot)
            continue
        _record_status(status_map, key, status)
        confirmed_count += 1
    LOGGER.info("Processed %s confirmed assignment records", confirmed_count)

    # older proposal batches belong to superseded runs
    batches = dict(child_items(proposal_batches))
    batch_key = latest_batch_key(batches)
    if batch_key is None:
        LOGGER.info("No AI proposal batches found")
        return status_map

    pending_count = 0
    for _, record in child_items(batches[batch_key]):
        if not isinstance(record, Mapping):
            continue
        subject = record.get("labAssegnato")
        timeslot = record.get("dataAssegnata")
        if not subject or not timeslot:
            continue
        key = status_key(subject, timeslot)
        if key is None:
            LOGGER.warning("Unable to parse date '%s' of an AI proposal", timeslot)
            continue
        if key not in status_map:
            pending_count += 1
        _record_status(status_map, key, Status.PENDING)
    LOGGER.info("Batch %s added %s pending proposals", batch_key, pending_count)
    return status_map


@dataclass(slots=True)
class DisplayLayout:
    subject_column: int
    first_date_column: int
    last_date_column: int


def locate_layout(header: Sequence[Any], columns: SlotColumnsConfig) -> DisplayLayout:
    names = [str(name).strip() for name in header]
    first_header = columns.date_header(columns.first_date)
    missing = [name for name in (columns.subject, first_header) if name not in names]
    if missing:
        raise SchemaError(missing)

    last_header = columns.date_header(columns.last_date)
    if last_header in names:
        last_column = len(names) - 1 - names[::-1].index(last_header)
    else:
        LOGGER.warning("Column '%s' not found; using the last column as limit", last_header)
        last_column = len(names) - 1
    return DisplayLayout(
        subject_column=names.index(columns.subject),
        first_date_column=names.index(first_header),
        last_date_column=last_column,
    )


def _split_keys(status_map: Mapping[str, Status]) -> List[Tuple[str, str, Status]]:
    entries = []
    for key, status in status_map.items():
        subject, _, date_text = key.rpartition("|")
        entries.append((subject, date_text, status))
    return entries


def match_status(
    subject: str,
    date_text: str,
    entries: Sequence[Tuple[str, str, Status]],
) -> Status | None:
    """First entry with the same date whose lab name is contained in ``subject``."""

    for entry_subject, entry_date, status in entries:
        if entry_date == date_text and entry_subject in subject:
            return status
    return None


def apply_statuses(
    display_values: Sequence[Sequence[Any]],
    status_map: Mapping[str, Status],
    columns: SlotColumnsConfig,
    *,
    header_row: int = 1,
    data_start_row: int = 2,
) -> StatusGrid:
    """Compute the background of every date cell of the display sheet.

    Date cells of rows with a lab name are reset to white, then painted green
    (confirmed) or yellow (pending) on a match. Lab names match by substring
    because the display labels may carry extra descriptive suffixes.
    """

    if len(display_values) < header_row:
        raise SchemaError([columns.subject, columns.date_header(columns.first_date)])
    layout = locate_layout(display_values[header_row - 1], columns)
    grid = StatusGrid(
        first_column=layout.first_date_column,
        last_column=layout.last_date_column,
    )
    entries = _split_keys(status_map)

    for index in range(data_start_row - 1, len(display_values)):
        row = display_values[index]
        raw_subject = row[layout.subject_column] if layout.subject_column < len(row) else ""
        subject = clean_for_compare(raw_subject)
        if not subject:
            continue

        colors: List[CellColor] = []
        for column in range(layout.first_date_column, layout.last_date_column + 1):
            cell = row[column] if column < len(row) else ""
            color = COLOR_NEUTRAL
            date_text = normalize_date_string(cell) if cell else None
            if date_text is not None:
                status = match_status(subject, date_text, entries)
                if status is not None:
                    color = _COLORS[status]
                    grid.painted += 1
            colors.append(color)
        grid.rows[index + 1] = colors

    if grid.painted == 0 and status_map:
        LOGGER.warning("No cell matched the merged statuses; check lab names and dates")
    return grid
