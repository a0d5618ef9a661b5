from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .batch_writer import BatchWriter
from .catalogue import COL_TITLE, build_lab_payload, has_answers
from .config import AppConfig
from .counters import adjust, commit_adjustment
from .errors import SchemaError
from .models import AdjustmentResult, RowUpdate, SourceRow, SyncSummary
from .normalize import cell_text, normalize_date_string, normalize_title
from .payload import (
    assignments_node,
    make_payload_builder,
    requests_node,
    resolve_destination,
    submission_payload,
)
from .ports import RemoteStore, TabularSource, child_items
from .push_id import PushIdGenerator
from .reconcile import reconcile
from .status_merge import apply_statuses, merge_statuses

LOGGER = logging.getLogger("lab_sync.pipeline")


def _normalize_header(header: Any) -> str:
    return str(header).strip().lower()


@dataclass(slots=True)
class SheetTable:
    """Header plus data rows of one sheet tab."""

    header: List[str]
    rows: List[SourceRow]
    header_map: Dict[str, int] = field(default_factory=dict)

    def column_index(self, column_name: str) -> int:
        key = _normalize_header(column_name)
        if key not in self.header_map:
            available = ", ".join(sorted(self.header_map))
            msg = f"Column '{column_name}' not found. Available columns: {available}"
            raise ValueError(msg)
        return self.header_map[key]


def build_table(
    values: List[List[Any]],
    header_row: int,
    data_start_row: int,
    *,
    required_columns: Sequence[str] = (),
    known_columns: Iterable[str] = (),
    id_column: str | None = None,
    sheet_name: str | None = None,
) -> SheetTable:
    """Turn raw sheet values into :class:`SourceRow` objects keyed by header.

    Headers are matched case-insensitively; configured column names are exposed
    under their configured spelling. Raises :class:`SchemaError` before any
    processing when a required column is absent.
    """

    if header_row < 1:
        raise ValueError("header_row must be 1 or greater")
    if data_start_row <= header_row:
        raise ValueError("data_start_row must be greater than header_row")

    header_idx = header_row - 1
    header = [str(name).strip() for name in values[header_idx]] if header_idx < len(values) else []
    header_map: Dict[str, int] = {}
    for idx, name in enumerate(header):
        header_map.setdefault(_normalize_header(name), idx)

    missing = [name for name in required_columns if _normalize_header(name) not in header_map]
    if missing:
        raise SchemaError(missing, sheet_name)

    aliases = {
        name: header_map[_normalize_header(name)]
        for name in (*required_columns, *known_columns)
        if _normalize_header(name) in header_map
    }
    id_idx = header_map.get(_normalize_header(id_column)) if id_column else None

    rows: List[SourceRow] = []
    start_idx = max(data_start_row - 1, header_idx + 1)
    for absolute_idx in range(start_idx, len(values)):
        raw = values[absolute_idx]
        cells = {
            name: raw[idx] if idx < len(raw) else ""
            for idx, name in enumerate(header)
            if name
        }
        for name, idx in aliases.items():
            cells[name] = raw[idx] if idx < len(raw) else ""
        remote_id = None
        if id_idx is not None and id_idx < len(raw):
            remote_id = cell_text(raw[id_idx]) or None
        rows.append(SourceRow(row_number=absolute_idx + 1, values=cells, remote_id=remote_id))

    return SheetTable(header=header, rows=rows, header_map=header_map)


def fetch_collection(store: RemoteStore, node: str) -> Dict[str, Any]:
    """Read a collection node as an id -> record mapping (empty when absent)."""

    data = store.get(node)
    if data is None:
        return {}
    if not isinstance(data, (dict, list)):
        LOGGER.warning("Node %s does not hold a collection; ignoring its content", node)
        return {}
    return dict(child_items(data))


def _merged_collections(store: RemoteStore, *nodes: str) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for node in nodes:
        for record_id, record in fetch_collection(store, node).items():
            merged.setdefault(record_id, record)
    return merged


@dataclass
class SyncContext:
    """Collaborators and settings shared by one run."""

    config: AppConfig
    store: RemoteStore
    sheet: TabularSource
    generator: PushIdGenerator = field(default_factory=PushIdGenerator)
    slots_sheet: TabularSource | None = None
    labs_sheet: TabularSource | None = None
    dry_run: bool = False

    @property
    def writer(self) -> BatchWriter:
        return BatchWriter(self.store, self.config.batch_size)

    def destination(self) -> str:
        if self.config.destination != "auto":
            return self.config.destination
        title = self.sheet.spreadsheet_title()
        destination = resolve_destination(title)
        LOGGER.info("Spreadsheet '%s' routed to %s collections", title, destination)
        return destination


def _load_request_table(ctx: SyncContext) -> SheetTable:
    columns = ctx.config.request_columns
    sheet_name = ctx.config.sheets.sheet_name
    values = ctx.sheet.fetch_values(sheet_name)
    return build_table(
        values,
        ctx.config.header_row,
        ctx.config.data_start_row,
        required_columns=[columns.remote_id, columns.timestamp, columns.email],
        known_columns=[columns.class_level, *columns.lab_columns],
        id_column=columns.remote_id,
        sheet_name=sheet_name,
    )


def _write_row_ids(ctx: SyncContext, table: SheetTable, updates: Sequence[RowUpdate]) -> None:
    if not updates:
        return
    id_idx = table.column_index(ctx.config.request_columns.remote_id)
    LOGGER.info("Writing %s ids to the sheet", len(updates))
    ctx.sheet.update_cells(
        ctx.config.sheets.sheet_name,
        [(update.row_number, id_idx, update.remote_id) for update in updates],
    )


# Commands -------------------------------------------------------------------
def sync_requests(ctx: SyncContext, *, create_missing: bool = True) -> SyncSummary:
    """Insert new sheet rows into the request collection and write their ids back."""

    command = "sync-requests" if create_missing else "relink"
    table = _load_request_table(ctx)
    nodes = ctx.config.nodes
    LOGGER.info("Reading existing requests (primary and secondary)...")
    remote = _merged_collections(ctx.store, nodes.requests_primary, nodes.requests_secondary)

    result = reconcile(
        table.rows,
        remote,
        generator=ctx.generator,
        payload_builder=make_payload_builder(ctx.config.request_columns),
        tz=ctx.config.tzinfo,
        create_missing=create_missing,
    )
    summary = SyncSummary(
        command=command,
        created=len(result.new_records),
        updated=len(result.row_updates),
        skipped=result.skipped,
    )

    if ctx.dry_run:
        for update in result.row_updates:
            LOGGER.info("[dry-run] row %s -> %s", update.row_number, update.remote_id)
        summary.message = "dry run, nothing written"
        return summary

    if result.new_records:
        node = requests_node(nodes, ctx.destination())
        LOGGER.info("Inserting %s new requests into %s", len(result.new_records), node)
        ctx.writer.write(node, result.new_records)
    _write_row_ids(ctx, table, result.row_updates)
    return summary


def relink_ids(ctx: SyncContext) -> SyncSummary:
    """Restore ids missing from the sheet for rows already stored remotely."""

    return sync_requests(ctx, create_missing=False)


def repopulate_requests(ctx: SyncContext) -> SyncSummary:
    """Delete the request collection and reload it from every complete sheet row."""

    table = _load_request_table(ctx)
    node = requests_node(ctx.config.nodes, ctx.destination())
    build_payload = make_payload_builder(ctx.config.request_columns)

    batch: Dict[str, Dict[str, Any]] = {}
    updates: List[RowUpdate] = []
    skipped = 0
    for row in table.rows:
        payload = build_payload(row)
        if not payload.get("classe_livello") or not payload.get("laboratori_richiesti"):
            skipped += 1
            continue
        new_id = ctx.generator.generate()
        batch[new_id] = payload
        updates.append(RowUpdate(row.row_number, new_id))

    summary = SyncSummary(
        command="repopulate", created=len(batch), updated=len(updates), skipped=skipped
    )
    if not batch:
        summary.message = "no valid rows found; remote collection left untouched"
        return summary
    if ctx.dry_run:
        summary.message = f"dry run, {node} not replaced"
        return summary

    LOGGER.info("Deleting node %s", node)
    ctx.store.delete(node)
    ctx.writer.write(node, batch)
    _write_row_ids(ctx, table, updates)
    return summary


def submit_request(ctx: SyncContext, row_number: int) -> SyncSummary:
    """Send a single submitted row to its request collection."""

    table = _load_request_table(ctx)
    row = next((item for item in table.rows if item.row_number == row_number), None)
    if row is None:
        raise ValueError(f"Row {row_number} not found in sheet '{ctx.config.sheets.sheet_name}'")

    summary = SyncSummary(command="submit")
    payload = submission_payload(row, ctx.config.request_columns)
    if len(payload) <= 1:
        LOGGER.warning("Row %s carries no answers; nothing sent", row_number)
        summary.skipped = 1
        return summary
    if row.remote_id:
        LOGGER.warning("Row %s is already stored as %s", row_number, row.remote_id)
        summary.skipped = 1
        return summary
    if ctx.dry_run:
        summary.message = "dry run, nothing written"
        return summary

    node = requests_node(ctx.config.nodes, ctx.destination())
    response = ctx.store.post(node, payload)
    new_id = response.get("name")
    LOGGER.info("Submission of row %s stored in %s as %s", row_number, node, new_id)
    summary.created = 1
    if new_id:
        _write_row_ids(ctx, table, [RowUpdate(row_number, new_id)])
        summary.updated = 1
    return summary


def sync_assignments(ctx: SyncContext) -> SyncSummary:
    """Record new decisions on proposals, with their rejection counters."""

    columns = ctx.config.proposal_columns
    sheet_name = ctx.config.sheets.sheet_name
    table = build_table(
        ctx.sheet.fetch_values(sheet_name),
        ctx.config.header_row,
        ctx.config.data_start_row,
        required_columns=[
            columns.group_id,
            columns.decision,
            columns.subject,
            columns.timeslot,
            columns.phase_tag,
        ],
        sheet_name=sheet_name,
    )
    nodes = ctx.config.nodes
    LOGGER.info("Reading existing assignments (primary and secondary)...")
    history = _merged_collections(ctx.store, nodes.assignments_primary, nodes.assignments_secondary)

    result: AdjustmentResult = adjust(history, table.rows, columns, ctx.generator)
    if ctx.dry_run:
        for record_id, record in result.new_assignments.items():
            LOGGER.info("[dry-run] %s -> %s", record_id, record.to_payload())
        return SyncSummary(
            command="sync-assignments",
            created=result.success_count,
            skipped=result.duplicates,
            message="dry run, nothing written",
        )

    result = commit_adjustment(result, ctx.writer, assignments_node(nodes, ctx.destination()))
    summary = SyncSummary(
        command="sync-assignments",
        created=result.success_count,
        skipped=result.duplicates,
        errors=result.error_count,
    )
    if result.error_count:
        summary.message = "batch write failed; no assignment recorded"
    return summary


def color_slots(ctx: SyncContext) -> SyncSummary:
    """Paint the researchers' date cells from confirmed and proposed assignments."""

    nodes = ctx.config.nodes
    confirmed = _merged_collections(ctx.store, nodes.assignments_primary, nodes.assignments_secondary)
    proposals = fetch_collection(ctx.store, nodes.status_proposals)
    status_map = merge_statuses(confirmed, proposals)

    slots_sheet = ctx.slots_sheet or ctx.sheet
    sheet_name = ctx.config.sheets.slots_sheet_name
    values = slots_sheet.fetch_values(sheet_name)
    grid = apply_statuses(
        values,
        status_map,
        ctx.config.slot_columns,
        header_row=ctx.config.header_row,
        data_start_row=ctx.config.data_start_row,
    )
    summary = SyncSummary(command="color-slots", updated=grid.painted)
    if ctx.dry_run:
        summary.message = "dry run, colors not applied"
        return summary
    slots_sheet.paint_backgrounds(sheet_name, grid)
    return summary


def repopulate_labs(ctx: SyncContext) -> SyncSummary:
    """Delete the lab catalogue and reload it from the researchers' proposals."""

    labs_sheet = ctx.labs_sheet or ctx.sheet
    sheet_name = ctx.config.sheets.labs_sheet_name
    table = build_table(
        labs_sheet.fetch_values(sheet_name),
        ctx.config.header_row,
        ctx.config.data_start_row,
        required_columns=[COL_TITLE],
        sheet_name=sheet_name,
    )
    node = ctx.config.nodes.subjects

    batch: Dict[str, Dict[str, Any]] = {}
    skipped = 0
    for row in table.rows:
        payload = build_lab_payload(row)
        if not has_answers(payload):
            skipped += 1
            continue
        batch[ctx.generator.generate()] = payload
    LOGGER.info("Found %s labs to import from '%s'", len(batch), sheet_name)

    summary = SyncSummary(command="repopulate-labs", created=len(batch), skipped=skipped)
    if not batch:
        summary.message = "no valid rows found; remote catalogue left untouched"
        return summary
    if ctx.dry_run:
        summary.message = f"dry run, {node} not replaced"
        return summary

    LOGGER.info("Deleting node %s", node)
    ctx.store.delete(node)
    ctx.writer.write(node, batch)
    return summary


@dataclass(slots=True)
class _LabSlots:
    meeting_point: str = ""
    dates: List[str] = field(default_factory=list)


def _load_slots_table(values: List[List[Any]], config: AppConfig) -> tuple[SheetTable, List[str]]:
    columns = config.slot_columns
    table = build_table(
        values,
        config.header_row,
        config.data_start_row,
        required_columns=[columns.subject],
        known_columns=[columns.meeting_point, *columns.date_headers],
        sheet_name=config.sheets.slots_sheet_name,
    )
    date_headers = [
        name for name in columns.date_headers if _normalize_header(name) in table.header_map
    ]
    return table, date_headers


def _row_dates(row: SourceRow, date_headers: Sequence[str]) -> List[str]:
    dates = []
    for header in date_headers:
        raw = row.values.get(header)
        text = cell_text(raw)
        if text:
            dates.append(normalize_date_string(raw) or text)
    return dates


def aggregate_slots(
    values: List[List[Any]],
    config: AppConfig,
) -> Dict[str, _LabSlots]:
    """Group the researchers' rows by normalized lab title, keeping every date."""

    columns = config.slot_columns
    table, date_headers = _load_slots_table(values, config)

    labs: Dict[str, _LabSlots] = {}
    for row in table.rows:
        title = normalize_title(row.text(columns.subject))
        if not title:
            continue
        slots = labs.setdefault(title, _LabSlots())
        meeting_point = row.text(columns.meeting_point)
        if meeting_point:
            slots.meeting_point = meeting_point
        slots.dates.extend(_row_dates(row, date_headers))
    return labs


def _lab_ids_by_title(store: RemoteStore, node: str) -> Dict[str, str]:
    remote_labs = fetch_collection(store, node)
    if not remote_labs:
        raise ValueError(f"No labs found under '{node}'")
    ids_by_title: Dict[str, str] = {}
    for lab_id, lab in remote_labs.items():
        if isinstance(lab, Mapping) and lab.get("titolo"):
            ids_by_title.setdefault(normalize_title(lab["titolo"]), lab_id)
    return ids_by_title


def _slots_update(slots: _LabSlots) -> Dict[str, Any]:
    updated_at = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return {
        "punto_incontro": slots.meeting_point,
        "date_disponibili": [
            {"datetime": value, "status": "disponibile", "assignedClassId": ""}
            for value in slots.dates
        ],
        "timestamp_aggiornamento_date": updated_at.replace("+00:00", "Z"),
    }


def sync_slots(ctx: SyncContext) -> SyncSummary:
    """Replace each lab's available dates and meeting point with the sheet content."""

    slots_sheet = ctx.slots_sheet or ctx.sheet
    labs = aggregate_slots(
        slots_sheet.fetch_values(ctx.config.sheets.slots_sheet_name),
        ctx.config,
    )
    LOGGER.info("Aggregated dates for %s labs", len(labs))

    subjects_node = ctx.config.nodes.subjects
    ids_by_title = _lab_ids_by_title(ctx.store, subjects_node)

    summary = SyncSummary(command="sync-slots")
    for title, slots in labs.items():
        lab_id = ids_by_title.get(title)
        if lab_id is None:
            LOGGER.warning("Lab '%s' from the sheet not found remotely; ignoring", title)
            summary.skipped += 1
            continue
        if ctx.dry_run:
            LOGGER.info("[dry-run] %s (%s): %s dates", title, lab_id, len(slots.dates))
        else:
            LOGGER.info("Updating lab %s (%s)", title, lab_id)
            ctx.store.patch(f"{subjects_node}/{lab_id}", _slots_update(slots))
        summary.updated += 1
    if ctx.dry_run:
        summary.message = "dry run, nothing written"
    return summary


def submit_slots(ctx: SyncContext, row_number: int) -> SyncSummary:
    """Send the dates of a single researcher answer to its lab."""

    slots_sheet = ctx.slots_sheet or ctx.sheet
    sheet_name = ctx.config.sheets.slots_sheet_name
    columns = ctx.config.slot_columns
    table, date_headers = _load_slots_table(slots_sheet.fetch_values(sheet_name), ctx.config)
    row = next((item for item in table.rows if item.row_number == row_number), None)
    if row is None:
        raise ValueError(f"Row {row_number} not found in sheet '{sheet_name}'")

    title = normalize_title(row.text(columns.subject))
    slots = _LabSlots(
        meeting_point=row.text(columns.meeting_point),
        dates=_row_dates(row, date_headers),
    )
    if not slots.dates:
        raise ValueError(f"Row {row_number} has no available dates")

    subjects_node = ctx.config.nodes.subjects
    lab_id = _lab_ids_by_title(ctx.store, subjects_node).get(title) if title else None
    if lab_id is None:
        raise ValueError(f"Lab '{row.text(columns.subject)}' not found under '{subjects_node}'")

    summary = SyncSummary(command="submit-slots", updated=1)
    if ctx.dry_run:
        LOGGER.info("[dry-run] %s (%s): %s dates", title, lab_id, len(slots.dates))
        summary.message = "dry run, nothing written"
        return summary
    LOGGER.info("Updating lab %s (%s) from row %s", title, lab_id, row_number)
    ctx.store.patch(f"{subjects_node}/{lab_id}", _slots_update(slots))
    return summary
