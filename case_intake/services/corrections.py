from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from ..models.csv_row import CsvRow, Priority
from .grid import CellEdit
from .normalization import DEFAULT_PHONE_REGION, normalize_phone, title_case
from .session import ImportSession

"""Bulk correction operations.

Each operation inspects the rows and returns the cell edits it would make; it
never commits on its own. apply_fix() / fix_all() commit the edits through the
grid, which triggers re-validation in the owning session. An operation that
changes nothing is reported as a count of 0, not as an error.
"""

__all__ = [
    "TRIM_FIELDS",
    "FIX_ORDER",
    "trim_whitespace",
    "title_case_names",
    "normalize_phones",
    "default_priority",
    "apply_fix",
    "fix_all",
]

logger = logging.getLogger(__name__)

TRIM_FIELDS: tuple[str, ...] = ("case_id", "applicant_name", "email", "phone")


def trim_whitespace(rows: Sequence[CsvRow], region: str = DEFAULT_PHONE_REGION) -> list[CellEdit]:
    edits: list[CellEdit] = []
    for row in rows:
        for field in TRIM_FIELDS:
            value = row.get_field(field)
            stripped = value.strip()
            if stripped != value:
                edits.append(CellEdit(row=row.index, field=field, value=stripped))
    return edits


def title_case_names(rows: Sequence[CsvRow], region: str = DEFAULT_PHONE_REGION) -> list[CellEdit]:
    edits: list[CellEdit] = []
    for row in rows:
        name = row.applicant_name
        if not name.strip():
            continue
        titled = title_case(name)
        if titled != name:
            edits.append(CellEdit(row=row.index, field="applicant_name", value=titled))
    return edits


def normalize_phones(rows: Sequence[CsvRow], region: str = DEFAULT_PHONE_REGION) -> list[CellEdit]:
    """Rewrite phones to E.164 where possible; unparseable ones are left alone."""
    edits: list[CellEdit] = []
    for row in rows:
        phone = row.phone
        if not phone.strip():
            continue
        normalized = normalize_phone(phone, region)
        if normalized and normalized != phone:
            edits.append(CellEdit(row=row.index, field="phone", value=normalized))
    return edits


def default_priority(rows: Sequence[CsvRow], region: str = DEFAULT_PHONE_REGION) -> list[CellEdit]:
    return [
        CellEdit(row=row.index, field="priority", value=Priority.LOW.value)
        for row in rows
        if not row.priority.strip()
    ]


Operation = Callable[[Sequence[CsvRow], str], list[CellEdit]]

# fix_all の適用順 (後段は前段の結果を見る)
FIX_ORDER: tuple[tuple[str, Operation], ...] = (
    ("trim_whitespace", trim_whitespace),
    ("title_case_names", title_case_names),
    ("normalize_phones", normalize_phones),
    ("default_priority", default_priority),
)
_OPERATIONS: dict[str, Operation] = dict(FIX_ORDER)


def apply_fix(session: ImportSession, name: str) -> int:
    """Compute and commit one named operation. Returns the changed-cell count."""
    try:
        operation = _OPERATIONS[name]
    except KeyError:
        raise ValueError(f"unknown correction: {name}") from None
    edits = operation(session.grid.rows, session.region)
    changed = session.grid.bulk_update(edits)
    logger.debug("fix %s: %d cell(s) changed", name, changed)
    return changed


def fix_all(session: ImportSession) -> int:
    """Apply every operation in FIX_ORDER, committing after each step."""
    total = 0
    for name, _ in FIX_ORDER:
        total += apply_fix(session, name)
    logger.info(f"fix all: {total} cell(s) changed, errors remaining={len(session.errors)}")
    return total
