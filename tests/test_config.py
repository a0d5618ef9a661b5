from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from lab_sync.config import AppConfig, FirebaseConfig, SlotColumnsConfig, load_config


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_applies_defaults(tmp_path: Path) -> None:
    config_file = _write(
        tmp_path / "config.yaml",
        """
firebase:
  database_url: https://db.example.com/
sheets:
  credentials_file: creds.json
  spreadsheet_id: abc
""",
    )

    config = load_config(config_file)

    assert config.firebase.database_url == "https://db.example.com"
    assert config.destination == "auto"
    assert config.batch_size == 50
    assert config.nodes.requests_primary == "richiesteprimarie"
    assert config.request_columns.remote_id == "firebase_id"
    assert str(config.tzinfo) == "Europe/Rome"
    assert config.slot_columns.date_headers[0] == "1° data"
    assert config.slot_columns.date_headers[-1] == "25° data"


def test_load_config_rejects_empty_file(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="empty"):
        load_config(_write(tmp_path / "config.yaml", ""))


def test_load_config_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_unknown_timezone_is_rejected(app_config: AppConfig) -> None:
    data = app_config.model_dump()
    data["timezone"] = "Mars/Olympus"

    with pytest.raises(ValidationError):
        AppConfig.model_validate(data)


def test_data_rows_must_follow_header(app_config: AppConfig) -> None:
    data = app_config.model_dump()
    data["data_start_row"] = 1

    with pytest.raises(ValidationError):
        AppConfig.model_validate(data)


def test_database_url_must_be_http() -> None:
    with pytest.raises(ValidationError):
        FirebaseConfig(database_url="db.example.com", secret="x")


def test_secret_is_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LAB_SYNC_SECRET", "from-env")
    conf = FirebaseConfig(database_url="https://db.example.com", secret_env="LAB_SYNC_SECRET")

    assert conf.resolve_secret() == "from-env"


def test_slot_range_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        SlotColumnsConfig(first_date=5, last_date=2)
