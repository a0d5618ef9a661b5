from __future__ import annotations

import copy
from typing import Any, Dict, List, Sequence

from lab_sync.errors import TransportError
from lab_sync.models import SourceRow, StatusGrid


class FakeStore:
    """In-memory stand-in for the Firebase REST client."""

    def __init__(self, data: Dict[str, Any] | None = None, fail_patch_after: int | None = None) -> None:
        self.data: Dict[str, Any] = copy.deepcopy(data or {})
        self.calls: List[tuple[str, str]] = []
        self._fail_patch_after = fail_patch_after
        self._post_counter = 0

    def _parent(self, path: str, create: bool) -> tuple[Dict[str, Any] | None, str]:
        parts = [part for part in path.strip("/").split("/") if part]
        node: Any = self.data
        for part in parts[:-1]:
            if not isinstance(node, dict) or (part not in node and not create):
                return None, parts[-1]
            node = node.setdefault(part, {})
        return node, parts[-1]

    def get(self, path: str) -> Any | None:
        self.calls.append(("get", path))
        parent, key = self._parent(path, create=False)
        if parent is None or key not in parent:
            return None
        return copy.deepcopy(parent[key])

    def patch(self, path: str, data: Dict[str, Any]) -> Any | None:
        self.calls.append(("patch", path))
        if self._fail_patch_after is not None:
            if self._fail_patch_after <= 0:
                raise TransportError("patch", path, 500, "boom")
            self._fail_patch_after -= 1
        parent, key = self._parent(path, create=True)
        node = parent.setdefault(key, {})
        node.update(copy.deepcopy(dict(data)))
        return data

    def post(self, path: str, data: Dict[str, Any]) -> Dict[str, str]:
        self.calls.append(("post", path))
        self._post_counter += 1
        new_id = f"-post{self._post_counter}"
        parent, key = self._parent(path, create=True)
        parent.setdefault(key, {})[new_id] = copy.deepcopy(dict(data))
        return {"name": new_id}

    def delete(self, path: str) -> None:
        self.calls.append(("delete", path))
        parent, key = self._parent(path, create=False)
        if parent is not None:
            parent.pop(key, None)


class FakeSheet:
    """In-memory spreadsheet with named tabs."""

    def __init__(self, tabs: Dict[str, List[List[Any]]], title: str = "Adesioni primarie 2025") -> None:
        self.tabs = tabs
        self.title = title
        self.painted: Dict[str, StatusGrid] = {}

    def fetch_values(self, sheet_name: str) -> List[List[Any]]:
        return [list(row) for row in self.tabs.get(sheet_name, [])]

    def update_cells(self, sheet_name: str, updates: Sequence[tuple[int, int, Any]]) -> None:
        tab = self.tabs[sheet_name]
        for row_number, column, value in updates:
            row = tab[row_number - 1]
            while len(row) <= column:
                row.append("")
            row[column] = value

    def spreadsheet_title(self) -> str:
        return self.title

    def paint_backgrounds(self, sheet_name: str, grid: StatusGrid) -> None:
        self.painted[sheet_name] = grid


class FrozenClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now


def request_row(row_number: int, timestamp: str, email: str, **extra: Any) -> SourceRow:
    values = {
        "firebase_id": extra.pop("remote_id", ""),
        "Informazioni cronologiche": timestamp,
        "Indirizzo email": email,
        "Classe per cui si manifesta l'interesse": extra.pop("class_level", "Classe III"),
        "Laboratori d'interesse per le Classi III (selezionarne un massimo di 4)": extra.pop(
            "labs", "Robotica per tutti, Chimica in cucina"
        ),
    }
    values.update(extra)
    return SourceRow(
        row_number=row_number,
        values=values,
        remote_id=values["firebase_id"] or None,
    )
