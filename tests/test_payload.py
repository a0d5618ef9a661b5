from __future__ import annotations

import logging

import pytest

from lab_sync.config import NodesConfig, RequestColumnsConfig
from lab_sync.models import MISSING, SourceRow
from lab_sync.payload import (
    COL_DISABILITY,
    COL_DISABILITY_TYPES,
    COL_PRIVACY,
    build_request_payload,
    make_payload_builder,
    requests_node,
    resolve_destination,
)
from tests.support.fakes import request_row

COLUMNS = RequestColumnsConfig()


def test_absent_column_is_distinct_from_empty_cell() -> None:
    row = SourceRow(row_number=2, values={"Indirizzo email": ""})

    assert row.get("Indirizzo email") == ""
    assert row.get("Nome dell'Istituto") is MISSING
    assert not MISSING
    assert row.text("Nome dell'Istituto") == ""


def test_payload_maps_form_answers() -> None:
    row = request_row(
        2,
        "19/10/2025 10:15:30",
        " a@school.it ",
        **{
            COL_PRIVACY: "Sì",
            COL_DISABILITY: "No",
            COL_DISABILITY_TYPES: "motoria, uditiva",
            "Nome insegnante referente": "Anna",
            "Cognome insegnante referente": "Rossi",
            "Nome dell'Istituto": "  ",
        },
    )

    payload = build_request_payload(row, COLUMNS)

    assert payload["email"] == "a@school.it"
    assert payload["consenso_informativa"] is True
    assert payload["disabilita_presente"] is False
    assert payload["disabilita_tipologie"] == ["motoria", "uditiva"]
    assert payload["insegnante_referente"] == "Anna Rossi"
    assert "istituto_nome" not in payload
    assert "consenso_newsletter" not in payload


def test_absent_columns_are_collected() -> None:
    absent: set = set()
    row = request_row(2, "19/10/2025 10:15:30", "a@school.it")

    build_request_payload(row, COLUMNS, absent_columns=absent)

    assert COL_PRIVACY in absent
    assert "Nome dell'Istituto" in absent
    assert COLUMNS.email not in absent


def test_builder_reports_each_absent_column_once(caplog: pytest.LogCaptureFixture) -> None:
    builder = make_payload_builder(COLUMNS)
    rows = [
        request_row(2, "19/10/2025 10:15:30", "a@school.it"),
        request_row(3, "20/10/2025 11:00:00", "b@school.it"),
    ]

    with caplog.at_level(logging.INFO, logger="lab_sync.payload"):
        for row in rows:
            builder(row)

    reports = [r.getMessage() for r in caplog.records if "Nome dell'Istituto" in r.getMessage()]
    assert len(reports) == 1


@pytest.mark.parametrize(
    ("title", "override", "expected"),
    [
        ("Adesioni primarie 2025", "auto", "primary"),
        ("Adesioni Secondo Grado 2025", "auto", "secondary"),
        ("Scuole SECONDARIE", "auto", "secondary"),
        ("Scuole secondarie", "primary", "primary"),
    ],
)
def test_resolve_destination(title: str, override: str, expected: str) -> None:
    assert resolve_destination(title, override) == expected


def test_requests_node_follows_destination() -> None:
    nodes = NodesConfig()

    assert requests_node(nodes, "secondary") == "richiestesecondarie"
    assert requests_node(nodes, "primary") == "richiesteprimarie"
