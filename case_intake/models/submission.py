from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Submission domain models: wire payloads, per-row results and progress.

State transitions of a submission run:
    IDLE -> SUBMITTING -> (COMPLETED | CANCELLED)
    COMPLETED | CANCELLED -> SUBMITTING   (retry of failed rows only)
"""

__all__ = [
    "BATCH_SIZE",
    "NETWORK_ERROR_MESSAGE",
    "ImportStatus",
    "SubmissionState",
    "CasePayload",
    "BatchResult",
    "SubmissionProgress",
]

BATCH_SIZE = 100
NETWORK_ERROR_MESSAGE = "Network error - please retry"


class ImportStatus(Enum):
    """Status of the remote import record."""
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class SubmissionState(Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CasePayload:
    """Validated case as sent to the case-creation endpoint.

    Optional fields are None when absent, priority is already defaulted.
    """
    case_id: str
    applicant_name: str
    dob: str
    email: str | None
    phone: str | None
    category: str
    priority: str

    def to_json(self) -> dict[str, Any]:
        # camelCase keys are what the remote API accepts
        return {
            "caseId": self.case_id,
            "applicantName": self.applicant_name,
            "dob": self.dob,
            "email": self.email,
            "phone": self.phone,
            "category": self.category,
            "priority": self.priority,
        }


@dataclass(frozen=True)
class BatchResult:
    """Outcome of submitting one row."""
    success: bool
    case_id: str
    error: str | None = None
    id: str | None = None  # server-assigned identifier

    @staticmethod
    def from_json(data: dict[str, Any]) -> BatchResult:
        return BatchResult(
            success=bool(data.get("success")),
            case_id=str(data.get("caseId", "")),
            error=data.get("error"),
            id=data.get("id"),
        )


@dataclass(frozen=True)
class SubmissionProgress:
    """Progress counters republished after every batch."""
    total: int
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    current_batch: int = 0
    total_batches: int = 0

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.processed / self.total * 100)
