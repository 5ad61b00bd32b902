from __future__ import annotations

from dataclasses import dataclass

"""FieldValidationError model.

A structured complaint about one field of one row. These are derived data,
recomputed from the full row set after every mutation; they are never raised.
"""

__all__ = [
    "FieldValidationError",
]


@dataclass(frozen=True)
class FieldValidationError:
    """Validation finding for a single cell.

    Attributes:
        row: 0-based positional row index (user-facing text uses row + 1)
        field: Canonical field name (e.g. ``case_id``)
        value: Offending value as held in the row
        message: Human-readable description
    """
    row: int
    field: str
    value: str | None
    message: str

    @property
    def key(self) -> tuple[int, str]:
        return (self.row, self.field)
