"""Contracts of the collaborators the sync engines talk to."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Protocol, Sequence, Tuple, runtime_checkable

from .models import StatusGrid


@runtime_checkable
class RemoteStore(Protocol):
    """Path-addressed JSON store (Firebase Realtime Database semantics)."""

    def get(self, path: str) -> Any | None: ...

    def patch(self, path: str, data: Mapping[str, Any]) -> Any | None: ...

    def post(self, path: str, data: Mapping[str, Any]) -> Dict[str, str]: ...

    def delete(self, path: str) -> None: ...


@runtime_checkable
class TabularSource(Protocol):
    """Row/column access to the spreadsheet holding the source rows."""

    def fetch_values(self, sheet_name: str) -> List[List[Any]]: ...

    def update_cells(self, sheet_name: str, updates: Sequence[tuple[int, int, Any]]) -> None: ...

    def spreadsheet_title(self) -> str: ...

    def paint_backgrounds(self, sheet_name: str, grid: StatusGrid) -> None: ...


def child_items(node: Any) -> List[Tuple[str, Any]]:
    """Key/value pairs of a store node.

    The store returns a node whose children are keyed ``0..n-1`` as a JSON
    array, with ``null`` holes for deleted indexes. Both shapes yield the same
    pairs; holes and scalar nodes yield nothing.
    """

    if isinstance(node, Mapping):
        return [(str(key), value) for key, value in node.items() if value is not None]
    if isinstance(node, list):
        return [(str(index), value) for index, value in enumerate(node) if value is not None]
    return []
