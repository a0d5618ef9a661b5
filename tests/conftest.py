from __future__ import annotations

import pytest

from lab_sync.config import AppConfig
from lab_sync.push_id import PushIdGenerator
from tests.support.fakes import FrozenClock


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig.model_validate(
        {
            "firebase": {
                "database_url": "https://db.example.com",
                "secret": "s3cret",
            },
            "sheets": {
                "credentials_file": str(tmp_path / "creds.json"),
                "spreadsheet_id": "sheet-id",
                "sheet_name": "Foglio1",
                "slots_sheet_name": "Date",
            },
            "batch_size": 2,
        }
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def generator(clock: FrozenClock) -> PushIdGenerator:
    return PushIdGenerator(clock=clock)
