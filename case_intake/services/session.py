from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date

from ..csvio.reader import ParsedCsv
from ..models.csv_row import CsvRow
from ..models.submission import BatchResult, SubmissionProgress, SubmissionState
from ..models.validation_error import FieldValidationError
from .grid import ReviewGrid
from .normalization import DEFAULT_PHONE_REGION
from .validator import validate_rows

"""Import session: one upload-through-submit lifecycle.

The session owns the review grid and keeps the error list in step with it:
every grid mutation triggers a full re-validation, so no stale error survives
a change. Sessions are constructed explicitly and passed to the correction
engine and the submitter; there is no module-level session.
"""

__all__ = [
    "ImportSession",
]

logger = logging.getLogger(__name__)


class ImportSession:
    """Rows, errors and submission bookkeeping for a single import."""

    def __init__(self, *, region: str = DEFAULT_PHONE_REGION, today: date | None = None) -> None:
        self.region = region
        self._today = today  # None -> date.today() at each validation
        self.grid = ReviewGrid()
        self.errors: list[FieldValidationError] = []
        self._error_index: dict[tuple[int, str], list[FieldValidationError]] = {}
        self._error_rows: set[int] = set()
        self._reset_submission()
        self.grid.subscribe(self.revalidate)

    @classmethod
    def from_parsed(cls, parsed: ParsedCsv, **kwargs) -> ImportSession:
        session = cls(**kwargs)
        session.load(parsed)
        return session

    def _reset_submission(self) -> None:
        self.import_id: str | None = None
        self.progress: SubmissionProgress | None = None
        self.batch_results: list[BatchResult] = []
        self.state = SubmissionState.IDLE

    # ---- lifecycle -------------------------------------------------------

    def load(self, parsed: ParsedCsv) -> None:
        """Install a parsed file; any previous rows and results are dropped."""
        self._reset_submission()
        self.grid.replace_rows(parsed.rows, parsed.headers, parsed.filename)
        logger.info(
            f"loaded {parsed.filename}: rows={len(parsed.rows)} errors={len(self.errors)}"
        )

    def reset(self) -> None:
        """Start a new import: drop rows, errors and submission state."""
        self._reset_submission()
        self.grid.clear()

    # ---- grid views ------------------------------------------------------

    @property
    def filename(self) -> str | None:
        return self.grid.filename

    @property
    def headers(self) -> list[str]:
        return self.grid.headers

    @property
    def rows(self) -> tuple[CsvRow, ...]:
        return tuple(self.grid.rows)

    # ---- validation ------------------------------------------------------

    def revalidate(self) -> list[FieldValidationError]:
        errors = validate_rows(self.grid.rows, today=self._today, region=self.region)
        index: dict[tuple[int, str], list[FieldValidationError]] = {}
        for error in errors:
            index.setdefault(error.key, []).append(error)
        self.errors = errors
        self._error_index = index
        self._error_rows = {e.row for e in errors}
        return errors

    def errors_for(self, row: int, field: str) -> list[FieldValidationError]:
        return list(self._error_index.get((row, field), []))

    def errors_for_row(self, row: int) -> list[FieldValidationError]:
        return [e for e in self.errors if e.row == row]

    def has_errors(self, row: int) -> bool:
        return row in self._error_rows

    def valid_rows(self) -> list[CsvRow]:
        """Rows with no associated validation error, ascending index."""
        return [r for r in self.grid.rows if r.index not in self._error_rows]

    @property
    def invalid_row_count(self) -> int:
        return len(self._error_rows)

    # ---- submission results ----------------------------------------------

    def add_batch_results(self, results: Iterable[BatchResult]) -> None:
        self.batch_results.extend(results)

    def latest_results(self) -> dict[str, BatchResult]:
        """Most recent result per case identifier."""
        latest: dict[str, BatchResult] = {}
        for result in self.batch_results:
            latest[result.case_id] = result
        return latest

    def failed_results(self) -> list[BatchResult]:
        return [r for r in self.latest_results().values() if not r.success]

    def failed_rows(self) -> list[tuple[CsvRow, BatchResult]]:
        """Rows whose latest result failed, matched by case identifier."""
        failed = {r.case_id: r for r in self.failed_results()}
        matched: list[tuple[CsvRow, BatchResult]] = []
        for row in self.grid.rows:
            result = failed.pop(row.case_id, None)
            if result is not None:
                matched.append((row, result))
        return matched
