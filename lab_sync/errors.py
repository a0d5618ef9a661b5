from __future__ import annotations

from typing import Iterable


class LabSyncError(Exception):
    """Base class for failures that abort a sync run."""


class NotFoundError(LabSyncError):
    """A remote path does not exist. Reads recover from it by returning ``None``."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Remote path not found: {path}")
        self.path = path


class TransportError(LabSyncError):
    """The remote store answered with a status outside the 2xx range."""

    def __init__(self, method: str, path: str, status: int | None, body: str = "") -> None:
        msg = f"Firebase {method.upper()} on '{path}' failed ({status}): {body}"
        super().__init__(msg)
        self.method = method.upper()
        self.path = path
        self.status = status
        self.body = body


class SchemaError(LabSyncError):
    """Required columns are missing from the source sheet."""

    def __init__(self, missing_columns: Iterable[str], sheet_name: str | None = None) -> None:
        self.missing_columns = list(missing_columns)
        self.sheet_name = sheet_name
        where = f" in sheet '{sheet_name}'" if sheet_name else ""
        super().__init__(
            f"Missing required columns{where}: {', '.join(self.missing_columns)}"
        )
