from __future__ import annotations

from pathlib import Path

import pytest

from lab_sync import main as main_module
from tests.support.fakes import FakeSheet, FakeStore

CONFIG = """
firebase:
  database_url: https://db.example.com
  secret: s3cret
sheets:
  credentials_file: creds.json
  spreadsheet_id: sheet-id
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


@pytest.fixture
def wired(monkeypatch: pytest.MonkeyPatch):
    store = FakeStore()
    sheet = FakeSheet(
        {
            "Foglio1": [
                ["firebase_id", "Informazioni cronologiche", "Indirizzo email",
                 "Classe per cui si manifesta l'interesse"],
                ["", "19/10/2025 10:15:30", "a@school.it", "Classe I"],
            ]
        }
    )
    monkeypatch.setattr(main_module, "FirebaseClient", lambda conf: store)
    monkeypatch.setattr(
        main_module, "GoogleSheetsClient", lambda conf, spreadsheet_id=None: sheet
    )
    return store, sheet


def test_sync_requests_command_succeeds(config_file: Path, wired) -> None:
    store, sheet = wired

    assert main_module.main(["sync-requests", "--config", str(config_file)]) == 0
    assert len(store.data["richiesteprimarie"]) == 1
    assert sheet.tabs["Foglio1"][1][0] in store.data["richiesteprimarie"]


def test_schema_errors_exit_with_failure(config_file: Path, wired) -> None:
    _, sheet = wired
    sheet.tabs["Foglio1"][0].remove("Indirizzo email")

    assert main_module.main(["sync-requests", "--config", str(config_file)]) == 1


def test_failed_assignment_batch_exits_with_failure(
    config_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = FakeStore(fail_patch_after=0)
    sheet = FakeSheet(
        {
            "Foglio1": [
                ["firebase_id", "Proposta accettata", "Nome laboratorio proposto/accettato",
                 "Data e ora proposta/accettata", "consiglio AI"],
                ["g1", "NO", "Robotica per tutti", "30/10/2025 9:00", ""],
            ]
        }
    )
    monkeypatch.setattr(main_module, "FirebaseClient", lambda conf: store)
    monkeypatch.setattr(
        main_module, "GoogleSheetsClient", lambda conf, spreadsheet_id=None: sheet
    )

    assert main_module.main(["sync-assignments", "--config", str(config_file)]) == 1


def test_submit_requires_row(config_file: Path) -> None:
    with pytest.raises(SystemExit):
        main_module.main(["submit", "--config", str(config_file)])


def test_submit_slots_requires_row(config_file: Path) -> None:
    with pytest.raises(SystemExit):
        main_module.main(["submit-slots", "--config", str(config_file)])


def test_repopulate_labs_command_loads_catalogue(config_file: Path, wired) -> None:
    store, sheet = wired
    sheet.tabs["Risposte del modulo 1"] = [
        ["Titolo della proposta", "Descrizione"],
        ["Robotica per tutti", "Robot"],
    ]

    assert main_module.main(["repopulate-labs", "--config", str(config_file)]) == 0
    (lab,) = store.data["laboratori"].values()
    assert lab == {"titolo": "Robotica per tutti", "descrizione": "Robot", "stato": "nuovo"}
