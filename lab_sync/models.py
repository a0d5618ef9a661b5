from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class _Missing:
    """Marker for a column that does not exist in the sheet."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


@dataclass(slots=True)
class SourceRow:
    """One data row of a sheet, keyed by header name."""

    row_number: int  # spreadsheet 1-based row number (including header)
    values: Dict[str, Any]
    remote_id: Optional[str] = None

    def get(self, column: str) -> Any:
        """Return the cell under ``column`` or ``MISSING`` when the column is absent."""

        if column not in self.values:
            return MISSING
        return self.values[column]

    def text(self, column: str) -> str:
        value = self.values.get(column)
        if value is None:
            return ""
        return str(value).strip()


class Decision(str, Enum):
    REJECTED = "REJECTED"
    ACCEPTED_OR_PENDING = "ACCEPTED_OR_PENDING"


# decision text as written in the sheet -> canonical label used in dedup keys
DECISION_LABELS: Dict[str, str] = {
    "NO": "NO",
    "SI": "SI",
    "SÌ": "SI",
    "PROPOSTA DA ELABORARE": "PROPOSTA DA ELABORARE",
}


def decision_label(raw: Any) -> str | None:
    """Canonical upper-case decision label, or ``None`` for unrecognized text."""

    if raw is None:
        return None
    return DECISION_LABELS.get(str(raw).strip().upper())


def classify_decision(raw: Any) -> Decision | None:
    label = decision_label(raw)
    if label is None:
        return None
    if label == "NO":
        return Decision.REJECTED
    return Decision.ACCEPTED_OR_PENDING


@dataclass(slots=True)
class AssignmentRecord:
    """An assignment proposal event for a request group."""

    group_id: str
    label: str  # raw decision text, e.g. "NO", "SI", "proposta da elaborare"
    subject_name: str
    timeslot: Any
    rejection_counter: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id_firebase": self.group_id,
            "proposta_accettata": self.label,
            "nome_lab": self.subject_name,
            "data_lab": self.timeslot,
            "contatore_no": self.rejection_counter,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AssignmentRecord":
        return cls(
            group_id=str(payload.get("id_firebase") or ""),
            label=str(payload.get("proposta_accettata") or ""),
            subject_name=str(payload.get("nome_lab") or ""),
            timeslot=payload.get("data_lab"),
            rejection_counter=parse_counter(payload.get("contatore_no")),
        )


def parse_counter(value: Any) -> int:
    """Leading-integer parse of a stored counter; anything else counts as 0."""

    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        return max(int(value), 0)
    text = str(value or "").strip()
    digits = ""
    for ch in text:
        if not ch.isdigit():
            break
        digits += ch
    return int(digits) if digits else 0


class Status(str, Enum):
    CONFIRMED = "CONFIRMED"
    PENDING = "PENDING"


@dataclass(slots=True)
class RowUpdate:
    """Identifier to write back into the id column of a sheet row."""

    row_number: int
    remote_id: str


@dataclass(slots=True)
class ReconcileResult:
    new_records: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    row_updates: List[RowUpdate] = field(default_factory=list)
    skipped: int = 0
    relinked: int = 0


@dataclass(slots=True)
class AdjustmentResult:
    new_assignments: Dict[str, AssignmentRecord] = field(default_factory=dict)
    success_count: int = 0
    error_count: int = 0
    duplicates: int = 0

    def payloads(self) -> Dict[str, Dict[str, Any]]:
        return {key: record.to_payload() for key, record in self.new_assignments.items()}


@dataclass(slots=True)
class CellColor:
    hex_value: str

    def as_rgb(self) -> Dict[str, float]:
        text = self.hex_value.lstrip("#")
        red, green, blue = (int(text[i : i + 2], 16) / 255 for i in (0, 2, 4))
        return {"red": red, "green": green, "blue": blue}


@dataclass(slots=True)
class StatusGrid:
    """Background colors for the date span of a display sheet.

    ``rows`` maps a 1-based sheet row number to one color per column in
    ``first_column``..``last_column`` (0-based, inclusive). Rows that must not be
    touched are absent.
    """

    first_column: int
    last_column: int
    rows: Dict[int, List[CellColor]] = field(default_factory=dict)
    painted: int = 0


@dataclass(slots=True)
class SyncSummary:
    """Outcome of one command, reported once at the end of a run."""

    command: str
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    message: str = ""

    def describe(self) -> str:
        text = (
            f"{self.command}: created={self.created} updated={self.updated} "
            f"skipped={self.skipped} errors={self.errors}"
        )
        if self.message:
            text += f" ({self.message})"
        return text
