from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime

from ..models.csv_row import CANONICAL_FIELDS, Category, CsvRow, Priority
from ..models.submission import CasePayload
from ..models.validation_error import FieldValidationError
from .normalization import DEFAULT_PHONE_REGION, normalize_phone

"""Row validation service.

Field rules are applied per row (first failing rule wins for each field), then
a cross-row pass flags repeated case IDs. The result is a flat error list
ordered by row index, then field declaration order. Validation is synchronous,
side-effect free and deterministic for a given row set and ``today``.
"""

__all__ = [
    "DATE_FORMATS",
    "MIN_DOB",
    "validate_rows",
    "validate_row",
    "validate_case",
    "parse_date",
    "effective_priority",
    "to_case_payload",
    "ErrorSummary",
    "summarize_errors",
]

CASE_ID_RE = re.compile(r"^[A-Za-z0-9-]+$")
EMAIL_RE = re.compile(
    r"^(?!\.)(?!.*\.\.)[A-Za-z0-9_'+\-.]*[A-Za-z0-9_+-]@([A-Za-z0-9][A-Za-z0-9\-]*\.)+[A-Za-z]{2,}$"
)
MIN_DOB = date(1900, 1, 1)
MAX_NAME_LENGTH = 255

# ISO 形式以外で受け付ける日付書式 (先頭から順に試す)
DATE_FORMATS: tuple[str, ...] = (
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d-%b-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
)

_CATEGORIES = {c.value for c in Category}
_PRIORITIES = {p.value for p in Priority}

FieldCheck = Callable[[str], str | None]


def parse_date(value: str) -> date | None:
    """Read a calendar date.

    ISO dates and datetimes first, then the DATE_FORMATS patterns in order.
    Slash dates are read month-first.

    >>> parse_date("03/14/1990"), parse_date("14-Mar-1990"), parse_date("March 14, 1990")
    (datetime.date(1990, 3, 14), datetime.date(1990, 3, 14), datetime.date(1990, 3, 14))
    >>> parse_date("14/03/1990") is None
    True
    """
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _check_case_id(value: str) -> str | None:
    if not value.strip():
        return "Case ID is required"
    if not CASE_ID_RE.match(value):
        return "Case ID must be alphanumeric with hyphens"
    return None


def _check_applicant_name(value: str) -> str | None:
    if not value.strip():
        return "Applicant name is required"
    if len(value) > MAX_NAME_LENGTH:
        return "Applicant name must be less than 255 characters"
    return None


def _dob_check(today: date) -> FieldCheck:
    def check(value: str) -> str | None:
        if not value.strip():
            return "Date of birth is required"
        parsed = parse_date(value)
        if parsed is None:
            return "Invalid date format"
        if parsed < MIN_DOB or parsed > today:
            return "Date of birth must be between 1900 and today"
        return None
    return check


def _check_email(value: str) -> str | None:
    if value == "":
        return None
    if not EMAIL_RE.match(value):
        return "Invalid email format"
    return None


def _phone_check(region: str) -> FieldCheck:
    def check(value: str) -> str | None:
        if not value.strip():
            return None
        if normalize_phone(value, region) is None:
            return "Invalid phone number"
        return None
    return check


def _check_category(value: str) -> str | None:
    if not value.strip():
        return "Category is required"
    if value not in _CATEGORIES:
        return "Category must be TAX, LICENSE, or PERMIT"
    return None


def _check_priority(value: str) -> str | None:
    if not value.strip():
        return None  # 未指定は LOW 扱い (送信時に適用)
    if value not in _PRIORITIES:
        return "Priority must be LOW, MEDIUM, or HIGH"
    return None


def _field_checks(today: date, region: str) -> list[tuple[str, FieldCheck]]:
    checks: dict[str, FieldCheck] = {
        "case_id": _check_case_id,
        "applicant_name": _check_applicant_name,
        "dob": _dob_check(today),
        "email": _check_email,
        "phone": _phone_check(region),
        "category": _check_category,
        "priority": _check_priority,
    }
    return [(name, checks[name]) for name in CANONICAL_FIELDS]


def validate_row(
    row: CsvRow,
    *,
    today: date | None = None,
    region: str = DEFAULT_PHONE_REGION,
) -> list[FieldValidationError]:
    """Apply the field rules to a single row (no cross-row checks)."""
    checks = _field_checks(today or date.today(), region)
    return list(_row_errors(row, checks))


def _row_errors(
    row: CsvRow, checks: list[tuple[str, FieldCheck]]
) -> Iterable[FieldValidationError]:
    for name, check in checks:
        value = row.get_field(name)
        message = check(value)
        if message is not None:
            yield FieldValidationError(row=row.index, field=name, value=value, message=message)


def validate_rows(
    rows: Iterable[CsvRow],
    *,
    today: date | None = None,
    region: str = DEFAULT_PHONE_REGION,
) -> list[FieldValidationError]:
    """Produce the complete error list for the row set.

    Parameters
    ----------
    rows: full row set of the session
    today: upper bound for date of birth (defaults to date.today())
    region: default phone region

    Returns
    -------
    Errors ordered by row index, then field declaration order. For case_id a
    format error comes before the duplicate error of the same row.
    """
    checks = _field_checks(today or date.today(), region)
    errors: list[FieldValidationError] = []
    first_seen: dict[str, int] = {}
    for row in sorted(rows, key=lambda r: r.index):
        errors.extend(_row_errors(row, checks))
        case_id = row.case_id
        if not case_id:
            continue
        if case_id in first_seen:
            errors.append(
                FieldValidationError(
                    row=row.index,
                    field="case_id",
                    value=case_id,
                    message=f"Duplicate case ID (first seen at row {first_seen[case_id] + 1})",
                )
            )
        else:
            first_seen[case_id] = row.index
    # 重複エラーは行の末尾に追加されるため field 順へ並べ直す (stable sort)
    order = {name: pos for pos, name in enumerate(CANONICAL_FIELDS)}
    errors.sort(key=lambda e: (e.row, order.get(e.field, len(order))))
    return errors


def validate_case(
    payload: CasePayload,
    *,
    today: date | None = None,
    region: str = DEFAULT_PHONE_REGION,
) -> list[FieldValidationError]:
    """Apply the field rules to a payload built outside the grid.

    Errors carry row -1 since the payload has no positional index.
    """
    row = CsvRow(
        index=-1,
        case_id=payload.case_id,
        applicant_name=payload.applicant_name,
        dob=payload.dob,
        email=payload.email or "",
        phone=payload.phone or "",
        category=payload.category,
        priority=payload.priority,
    )
    return validate_row(row, today=today, region=region)


def effective_priority(value: str) -> str:
    """Priority to submit: LOW when absent, never written back into the row."""
    return value if value.strip() else Priority.LOW.value


def to_case_payload(row: CsvRow, region: str = DEFAULT_PHONE_REGION) -> CasePayload:
    """Convert an error-free row into the case-creation payload."""
    phone = normalize_phone(row.phone, region) if row.phone.strip() else None
    return CasePayload(
        case_id=row.case_id,
        applicant_name=row.applicant_name,
        dob=row.dob,
        email=row.email or None,
        phone=phone,
        category=row.category,
        priority=effective_priority(row.priority),
    )


@dataclass(frozen=True)
class ErrorSummary:
    """Aggregate view of an error list for panels and log output."""
    total_errors: int
    affected_rows: int
    by_field: dict[str, int]
    by_type: dict[str, int]


def _error_type(message: str) -> str:
    if "required" in message:
        return "Missing Required"
    if "Invalid" in message:
        return "Invalid Format"
    return "Validation Error"


def summarize_errors(errors: Iterable[FieldValidationError]) -> ErrorSummary:
    errors = list(errors)
    return ErrorSummary(
        total_errors=len(errors),
        affected_rows=len({e.row for e in errors}),
        by_field=dict(Counter(e.field for e in errors)),
        by_type=dict(Counter(_error_type(e.message) for e in errors)),
    )
