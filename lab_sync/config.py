from __future__ import annotations

import os
from pathlib import Path
from typing import List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


class RequestColumnsConfig(BaseModel):
    """Headers of the request form responses sheet."""

    remote_id: str = Field("firebase_id", description="Column that stores the Firebase id")
    timestamp: str = Field("Informazioni cronologiche", description="Form submission timestamp")
    email: str = Field("Indirizzo email", description="Submitter email address")
    class_level: str = Field(
        "Classe per cui si manifesta l'interesse",
        description="Primary classification field; rows without it are drafts",
    )
    lab_columns: List[str] = Field(
        default_factory=lambda: [
            f"Laboratori d'interesse per le Classi {level} (selezionarne un massimo di 4)"
            for level in ("I", "II", "III", "IV", "V")
        ],
        description="Class-specific columns listing the requested labs; first non-empty wins",
    )


class ProposalColumnsConfig(BaseModel):
    """Headers of the sheet that records decisions on assignment proposals."""

    group_id: str = Field("firebase_id", description="Request group id")
    decision: str = Field("Proposta accettata", description="SI / NO / proposta da elaborare")
    subject: str = Field("Nome laboratorio proposto/accettato", description="Lab name")
    timeslot: str = Field("Data e ora proposta/accettata", description="Lab date and time")
    phase_tag: str = Field("consiglio AI", description="Optional phase override tag")


class SlotColumnsConfig(BaseModel):
    """Headers of the researchers' availability sheet."""

    subject: str = Field("Scegli il tuo laboratorio", description="Lab title")
    meeting_point: str = Field(
        "Punto di incontro con la scolaresca",
        description="Meeting point with the class",
    )
    first_date: int = Field(1, ge=1, description="Number of the first '<n>° data' column")
    last_date: int = Field(25, ge=1, description="Number of the last '<n>° data' column")

    @model_validator(mode="after")
    def _validate_range(self) -> "SlotColumnsConfig":
        if self.last_date < self.first_date:
            raise ValueError("last_date must not be lower than first_date")
        return self

    def date_header(self, number: int) -> str:
        return f"{number}° data"

    @property
    def date_headers(self) -> List[str]:
        return [self.date_header(n) for n in range(self.first_date, self.last_date + 1)]


class NodesConfig(BaseModel):
    requests_primary: str = "richiesteprimarie"
    requests_secondary: str = "richiestesecondarie"
    assignments_primary: str = "assegnazioni_primarie"
    assignments_secondary: str = "assegnazioni_secondarie"
    subjects: str = "laboratori"
    status_proposals: str = "risultati_assegnazione_primarie"


class FirebaseConfig(BaseModel):
    database_url: str = Field(..., description="Root URL of the Realtime Database")
    credentials_file: Optional[Path] = Field(
        None,
        description="Service account JSON used to obtain OAuth tokens",
    )
    secret: Optional[str] = Field(
        None,
        description="Legacy database secret; prefer secret_env",
    )
    secret_env: Optional[str] = Field(
        "FIREBASE_SECRET",
        description="Environment variable with the legacy database secret",
    )
    request_timeout: int = Field(30, gt=0, description="Timeout in seconds for REST calls")

    @field_validator("database_url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith("https://") and not value.startswith("http://"):
            raise ValueError("database_url must be an http(s) URL")
        return value

    @field_validator("credentials_file")
    @classmethod
    def _expand_credentials_path(cls, value: Optional[Path]) -> Optional[Path]:
        if value is None:
            return None
        return value.expanduser().resolve()

    def resolve_secret(self) -> str | None:
        if self.secret:
            return self.secret
        if self.secret_env:
            return os.getenv(self.secret_env) or None
        return None

    @model_validator(mode="after")
    def _ensure_auth(self) -> "FirebaseConfig":
        if self.credentials_file is None and not self.secret and not self.secret_env:
            raise ValueError(
                "Firebase config must define 'credentials_file', 'secret' or 'secret_env'"
            )
        return self


class SheetsConfig(BaseModel):
    credentials_file: Path = Field(
        ..., description="Path to the Google service account JSON credentials"
    )
    spreadsheet_id: str = Field(..., description="ID of the spreadsheet with the form responses")
    sheet_name: str = Field("Foglio1", description="Tab with request rows and proposal decisions")
    slots_sheet_name: str = Field(
        "Risposte del modulo 1",
        description="Tab with the researchers' available dates",
    )
    slots_spreadsheet_id: Optional[str] = Field(
        None,
        description="Spreadsheet holding the researchers' dates; defaults to spreadsheet_id",
    )
    labs_sheet_name: str = Field(
        "Risposte del modulo 1",
        description="Tab with the researchers' lab proposals",
    )
    labs_spreadsheet_id: Optional[str] = Field(
        None,
        description="Spreadsheet holding the lab proposals; defaults to spreadsheet_id",
    )

    @field_validator("credentials_file")
    @classmethod
    def _expand_credentials_path(cls, value: Path) -> Path:
        return value.expanduser().resolve()


class AppConfig(BaseModel):
    firebase: FirebaseConfig
    sheets: SheetsConfig
    nodes: NodesConfig = Field(default_factory=NodesConfig)
    request_columns: RequestColumnsConfig = Field(default_factory=RequestColumnsConfig)
    proposal_columns: ProposalColumnsConfig = Field(default_factory=ProposalColumnsConfig)
    slot_columns: SlotColumnsConfig = Field(default_factory=SlotColumnsConfig)
    destination: Literal["auto", "primary", "secondary"] = Field(
        "auto",
        description="Target collections; 'auto' derives them from the spreadsheet title",
    )
    timezone: str = Field("Europe/Rome", description="Timezone used to render timestamps")
    header_row: int = Field(
        1,
        ge=1,
        description="1-based row number that contains the column headers",
    )
    data_start_row: int = Field(
        2,
        ge=1,
        description="1-based row number where table data begins",
    )
    batch_size: int = Field(50, gt=0, description="Number of records per PATCH request")

    @model_validator(mode="after")
    def _validate_rows(self) -> "AppConfig":
        if self.data_start_row <= self.header_row:
            msg = "data_start_row must be greater than header_row"
            raise ValueError(msg)
        return self

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def load_config(path: str | Path) -> AppConfig:
    """Load configuration from a YAML file and return a validated object."""

    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with config_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    if data is None:
        msg = f"Configuration file is empty: {config_path}"
        raise ValueError(msg)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:  # pragma: no cover - passthrough for readability
        raise ValueError(f"Invalid configuration: {exc}") from exc
