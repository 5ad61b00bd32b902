from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""CsvRow model for the case intake CSV import pipeline.

A CsvRow is one applicant record parsed from the uploaded CSV. Its identity is
the positional index assigned at parse time, not ``case_id`` (case_id may be
empty or duplicated until validation passes).
"""

__all__ = [
    "CANONICAL_FIELDS",
    "Category",
    "Priority",
    "CsvRow",
]

# Field declaration order. Validation output and exports follow this order.
CANONICAL_FIELDS: tuple[str, ...] = (
    "case_id",
    "applicant_name",
    "dob",
    "email",
    "phone",
    "category",
    "priority",
)


class Category(Enum):
    TAX = "TAX"
    LICENSE = "LICENSE"
    PERMIT = "PERMIT"


class Priority(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass
class CsvRow:
    """One imported record, mutated field by field during review.

    Unrecognised source columns are kept in ``extras`` (ordered key/value pairs)
    so that they survive the round trip without widening the fixed row shape.
    """
    index: int  # 0-based positional index, immutable for the session
    case_id: str = ""
    applicant_name: str = ""
    dob: str = ""
    email: str = ""
    phone: str = ""
    category: str = ""
    priority: str = ""
    extras: list[tuple[str, str]] = field(default_factory=list)

    def __setattr__(self, name: str, value: object) -> None:
        if name == "index" and "index" in self.__dict__:
            raise AttributeError("row index is immutable once assigned")
        super().__setattr__(name, value)

    def get_field(self, name: str) -> str:
        if name in CANONICAL_FIELDS:
            return getattr(self, name)
        for key, value in self.extras:
            if key == name:
                return value
        raise KeyError(name)

    def set_field(self, name: str, value: str) -> None:
        """Replace a single field value. Unknown names land in ``extras``."""
        if name == "index":
            raise AttributeError("row index is immutable once assigned")
        if name in CANONICAL_FIELDS:
            setattr(self, name, value)
            return
        for pos, (key, _) in enumerate(self.extras):
            if key == name:
                self.extras[pos] = (key, value)
                return
        self.extras.append((name, value))

    def canonical_values(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in CANONICAL_FIELDS}
