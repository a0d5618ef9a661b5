from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping
from zoneinfo import ZoneInfo

from .dedup import build_dedup_index, request_key
from .models import ReconcileResult, RowUpdate, SourceRow
from .payload import PayloadBuilder
from .push_id import PushIdGenerator

LOGGER = logging.getLogger(__name__)

REQUIRED_PAYLOAD_FIELDS = ("timestamp", "email", "classe_livello")
# relinking only needs the natural key
KEY_FIELDS = ("timestamp", "email")


def reconcile(
    rows: Iterable[SourceRow],
    remote_records: Mapping[str, Any],
    *,
    generator: PushIdGenerator,
    payload_builder: PayloadBuilder,
    tz: ZoneInfo,
    create_missing: bool = True,
) -> ReconcileResult:
    """Work out which sheet rows need a remote record and which id each row gets.

    Rows that already carry a remote id are left alone, so a second run over
    unchanged data yields no writes. A row whose key matches an existing remote
    record is pointed back at it. Other complete rows get a fresh id and a new
    record, unless ``create_missing`` is false (relink only).
    """

    index = build_dedup_index(remote_records, tz)
    result = ReconcileResult()
    required = REQUIRED_PAYLOAD_FIELDS if create_missing else KEY_FIELDS

    for row in rows:
        if row.remote_id:
            continue

        payload = payload_builder(row)
        missing = [name for name in required if not payload.get(name)]
        if missing:
            LOGGER.debug(
                "Row %s skipped: missing %s (incomplete submission)",
                row.row_number,
                ", ".join(missing),
            )
            result.skipped += 1
            continue

        key = request_key(payload["timestamp"], payload["email"], tz)
        existing_id = index.get(key)
        if existing_id is not None:
            LOGGER.info(
                "Row %s already stored as %s; restoring id on the sheet",
                row.row_number,
                existing_id,
            )
            result.row_updates.append(RowUpdate(row.row_number, existing_id))
            result.relinked += 1
            continue

        if not create_missing:
            continue

        new_id = generator.generate()
        result.new_records[new_id] = payload
        result.row_updates.append(RowUpdate(row.row_number, new_id))

    LOGGER.info(
        "Reconciliation: %s new, %s relinked, %s skipped",
        len(result.new_records),
        result.relinked,
        result.skipped,
    )
    return result
