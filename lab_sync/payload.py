"""Mapping of request form rows to the JSON stored under the request collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Set

from .config import NodesConfig, RequestColumnsConfig
from .models import MISSING, SourceRow

LOGGER = logging.getLogger(__name__)

PayloadBuilder = Callable[[SourceRow], Dict[str, Any]]

PRIMARY = "primary"
SECONDARY = "secondary"

_YES = "Sì"

COL_PRIVACY = (
    "Ho preso visione e compreso l’informativa relativa al trattamento dei dati "
    "personali (clicca per visualizzare e scaricare)"
)
COL_NEWSLETTER = (
    "Presto il CONSENSO a ricevere informazioni su altri progetti di public "
    "engagement per la scuola"
)
COL_DISABILITY = "Nella classe sono presenti persone con disabilità?"
COL_DISABILITY_TYPES = "Selezionare le tipologie presenti"
COL_TEACHER_FIRST_NAME = "Nome insegnante referente"
COL_TEACHER_LAST_NAME = "Cognome insegnante referente"

# payload key -> form header, copied verbatim when present
_PLAIN_FIELDS = {
    "istituto_nome": "Nome dell'Istituto",
    "istituto_codice_mecc": "Codice meccanografico dell'Istituto (Es.:TO1A005001)",
    "istituto_circoscrizione": (
        "Circoscrizione del Comune di Torino in cui si trova l'Istituto (solo il numero)"
    ),
    "plesso_nome": "Plesso di appartenenza della classe",
    "plesso_indirizzo": "Indirizzo del plesso",
    "insegnante_cellulare": "Numero cellulare insegnante referente",
    "classe_sezione": "Sezione della classe per cui si manifesta l'interesse",
    "classe_studenti_numero": "Numero degli studenti della sezione",
}


def _value(row: SourceRow, column: str, absent: Set[str] | None = None) -> Any:
    value = row.get(column)
    if value is MISSING:
        if absent is not None:
            absent.add(column)
        return None
    if isinstance(value, str):
        value = value.strip()
    if value is None or value == "":
        return None
    return value


def _split_list(value: Any) -> List[str]:
    return [item.strip() for item in str(value).split(",") if item.strip()]


def build_request_payload(
    row: SourceRow,
    columns: RequestColumnsConfig,
    *,
    default_timestamp: str | None = None,
    absent_columns: Set[str] | None = None,
) -> Dict[str, Any]:
    """Build the request payload for a form row; empty values are dropped.

    Columns the sheet does not have at all are added to ``absent_columns``.
    """

    def cell(column: str) -> Any:
        return _value(row, column, absent_columns)

    payload: Dict[str, Any] = {
        "timestamp": cell(columns.timestamp) or default_timestamp,
        "email": cell(columns.email),
    }

    privacy = cell(COL_PRIVACY)
    if privacy is not None:
        payload["consenso_informativa"] = privacy == _YES
    newsletter = cell(COL_NEWSLETTER)
    if newsletter is not None:
        payload["consenso_newsletter"] = newsletter == _YES

    for key, column in _PLAIN_FIELDS.items():
        payload[key] = cell(column)

    first_name = cell(COL_TEACHER_FIRST_NAME)
    last_name = cell(COL_TEACHER_LAST_NAME)
    if first_name or last_name:
        payload["insegnante_referente"] = f"{first_name or ''} {last_name or ''}".strip()

    class_level = cell(columns.class_level)
    if class_level is not None:
        payload["classe_livello"] = class_level
        for column in columns.lab_columns:
            labs = cell(column)
            if labs is not None:
                payload["laboratori_richiesti"] = _split_list(labs)
                break
        else:
            LOGGER.warning(
                "Row %s: no requested labs for class '%s' (email: %s)",
                row.row_number,
                class_level,
                payload["email"],
            )

        disability = cell(COL_DISABILITY)
        if disability is not None:
            payload["disabilita_presente"] = disability == _YES
        disability_types = cell(COL_DISABILITY_TYPES)
        if disability_types is not None:
            payload["disabilita_tipologie"] = _split_list(disability_types)

    return {key: value for key, value in payload.items() if value is not None and value != ""}


def make_payload_builder(columns: RequestColumnsConfig) -> PayloadBuilder:
    """Payload builder that reports each column absent from the sheet once."""

    reported: Set[str] = set()

    def _builder(row: SourceRow) -> Dict[str, Any]:
        absent: Set[str] = set()
        payload = build_request_payload(row, columns, absent_columns=absent)
        for column in sorted(absent - reported):
            LOGGER.info("Column '%s' is not in the sheet; its field is left out", column)
        reported.update(absent)
        return payload

    return _builder


def submission_payload(row: SourceRow, columns: RequestColumnsConfig) -> Dict[str, Any]:
    """Payload for a live form submission; a missing timestamp defaults to now."""

    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return build_request_payload(row, columns, default_timestamp=now)


def resolve_destination(spreadsheet_title: str, override: str = "auto") -> str:
    """Primary or secondary school collections, derived from the spreadsheet title."""

    if override in (PRIMARY, SECONDARY):
        return override
    normalized = (spreadsheet_title or "").upper()
    if "SECONDO GRADO" in normalized or "SECONDARIE" in normalized:
        return SECONDARY
    return PRIMARY


def requests_node(nodes: NodesConfig, destination: str) -> str:
    return nodes.requests_secondary if destination == SECONDARY else nodes.requests_primary


def assignments_node(nodes: NodesConfig, destination: str) -> str:
    return nodes.assignments_secondary if destination == SECONDARY else nodes.assignments_primary
