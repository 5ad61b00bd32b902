from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from ..models.csv_row import CsvRow

"""Review grid state: the authoritative in-memory row set.

Writes are applied immediately (no buffering). The grid does not validate;
subscribers are notified once per mutating call and are expected to re-run
the validator (see services/session.py).
"""

__all__ = [
    "CellEdit",
    "ReviewGrid",
]


@dataclass(frozen=True)
class CellEdit:
    row: int  # positional row index
    field: str
    value: str


class ReviewGrid:
    """Row set plus header list and originating filename."""

    def __init__(self) -> None:
        self._rows: list[CsvRow] = []
        self._by_index: dict[int, CsvRow] = {}
        self.headers: list[str] = []
        self.filename: str | None = None
        self._subscribers: list[Callable[[], None]] = []

    def subscribe(self, callback: Callable[[], None]) -> None:
        self._subscribers.append(callback)

    def _notify(self) -> None:
        for callback in self._subscribers:
            callback()

    @property
    def rows(self) -> Sequence[CsvRow]:
        return tuple(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def get(self, row_index: int) -> CsvRow:
        try:
            return self._by_index[row_index]
        except KeyError:
            raise KeyError(f"unknown row index: {row_index}") from None

    def replace_rows(self, rows: Iterable[CsvRow], headers: list[str], filename: str | None) -> None:
        """Install a freshly parsed row set (import time only)."""
        new_rows = sorted(rows, key=lambda r: r.index)
        by_index = {r.index: r for r in new_rows}
        if len(by_index) != len(new_rows):
            raise ValueError("row indices must be unique")
        self._rows = new_rows
        self._by_index = by_index
        self.headers = list(headers)
        self.filename = filename
        self._notify()

    def clear(self) -> None:
        self.replace_rows([], [], None)

    def update_cell(self, row_index: int, field: str, value: str) -> None:
        self.get(row_index).set_field(field, value)
        self._notify()

    def bulk_update(self, edits: Iterable[CellEdit]) -> int:
        """Apply edits in order (later edits to the same cell win).

        All row indices are checked before anything is written, so an unknown
        index leaves the grid untouched.
        """
        edits = list(edits)
        if not edits:
            return 0
        targets = [(self.get(e.row), e) for e in edits]
        for row, edit in targets:
            row.set_field(edit.field, edit.value)
        self._notify()
        return len(edits)
