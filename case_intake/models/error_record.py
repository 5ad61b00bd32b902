from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the structured error log.

Each record is one JSON Lines entry. row=-1 is the sentinel for file-level or
import-level errors where no specific row applies.

The record layout is fixed by case_intake/logging/error_log_schema.json
(additionalProperties: false).
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: CSV filename being imported
        row: Row number (1-based). Use -1 when no row applies
        field: Field name, or "" for row/file-level errors
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Human-readable message
    """
    timestamp: str  # ISO8601 UTC
    file: str
    row: int  # 不明な場合 -1
    field: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(file: str, row: int, field: str, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            row=row,
            field=field,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # dataclass -> dict で追加キーを防ぐ
        return json.dumps(asdict(self), ensure_ascii=False)
