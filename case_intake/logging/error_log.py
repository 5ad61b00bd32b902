from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from case_intake.models.error_record import ErrorRecord
from case_intake.models.submission import NETWORK_ERROR_MESSAGE, BatchResult
from case_intake.models.validation_error import FieldValidationError

"""Structured error log (JSON Lines).

- Fixed record layout (no extra keys), see error_log_schema.json
- One file per run: ``<logs_dir>/errors-YYYYMMDD-HHMMSS.log`` (UTC), created on
  first flush that has records
- Records are buffered and written in one go by flush()
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
    "SCHEMA_PATH",
]

TIMESTAMP_FMT = "%Y%m%d-%H%M%S"
SCHEMA_PATH = Path(__file__).parent / "error_log_schema.json"


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush appends JSON Lines.

    Single-threaded use only (the submitter runs on the caller's thread).
    """

    def __init__(self, logs_dir: Path | str = "./logs") -> None:
        self.logs_dir = Path(logs_dir)
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self.logs_dir / f"errors-{stamp}.log"
        return self._file_path

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def add_validation_errors(self, file: str, errors: Iterable[FieldValidationError]) -> None:
        for e in errors:
            self.append(ErrorRecord.create(file, e.row + 1, e.field, "VALIDATION_ERROR", e.message))

    def add_failed_results(self, file: str, results: Iterable[BatchResult]) -> None:
        for r in results:
            if r.success:
                continue
            message = r.error or "Unknown error"
            error_type = "TRANSPORT_ERROR" if message == NETWORK_ERROR_MESSAGE else "SUBMISSION_FAILED"
            # 送信結果は case_id で識別するため行番号は不明扱い
            self.append(ErrorRecord.create(file, -1, "case_id", error_type, f"{r.case_id}: {message}"))

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records; returns the file path, or None if nothing was written."""
        if not self._records:
            return None
        fp = self.file_path
        fp.parent.mkdir(parents=True, exist_ok=True)
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
