from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence

from ..api.client import CaseGateway, GatewayError, NotAuthenticatedError, Operator
from ..models.csv_row import CsvRow
from ..models.processing_result import BatchStatsAccumulator
from ..models.submission import (
    BATCH_SIZE,
    NETWORK_ERROR_MESSAGE,
    BatchResult,
    ImportStatus,
    SubmissionProgress,
    SubmissionState,
)
from .session import ImportSession
from .validator import to_case_payload

"""Batch submission of validated rows.

Flow of one run:
1. Preconditions: authenticated operator, at least one error-free row
2. Create the remote import record (retry reuses the existing one)
3. Partition rows into contiguous batches (ascending row index) and post them
   one at a time; a transport failure marks the whole batch failed and the
   run moves on to the next batch
4. Publish progress after every batch
5. Finalize the import record: COMPLETED, or FAILED when cancelled

Cancellation is cooperative: the token is checked before each batch, an
in-flight request is never interrupted.
"""

__all__ = [
    "SubmissionError",
    "CancellationToken",
    "BatchSubmitter",
    "partition",
    "retryable_rows",
]

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[SubmissionProgress], None]


class SubmissionError(Exception):
    """Submission could not start (or be re-opened for retry)."""


class CancellationToken:
    """Advisory cancel flag, safe to set from another thread or a signal handler."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def partition(rows: Sequence[CsvRow], size: int) -> list[list[CsvRow]]:
    """Split rows (sorted by index) into contiguous chunks of ``size``."""
    if size < 1:
        raise ValueError("batch size must be positive")
    ordered = sorted(rows, key=lambda r: r.index)
    return [ordered[i:i + size] for i in range(0, len(ordered), size)]


def retryable_rows(session: ImportSession) -> list[CsvRow]:
    """Error-free rows whose latest result (by case id) failed."""
    failed_ids = {r.case_id for r in session.failed_results()}
    return [r for r in session.valid_rows() if r.case_id in failed_ids]


class BatchSubmitter:
    """Drives the IDLE -> SUBMITTING -> COMPLETED/CANCELLED state machine for a session."""

    def __init__(
        self,
        gateway: CaseGateway,
        *,
        batch_size: int = BATCH_SIZE,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        if not 1 <= batch_size <= BATCH_SIZE:
            raise ValueError(f"batch size must be between 1 and {BATCH_SIZE}")
        self.gateway = gateway
        self.batch_size = batch_size
        self.on_progress = on_progress
        self.batch_stats = BatchStatsAccumulator()

    def submit(
        self,
        session: ImportSession,
        operator: Operator | None,
        token: CancellationToken | None = None,
    ) -> SubmissionProgress:
        """Submit every error-free row of the session."""
        if session.state is not SubmissionState.IDLE:
            raise SubmissionError(f"session already submitted (state={session.state.value})")
        return self._run(session, operator, session.valid_rows(), token, retry=False)

    def retry_failed(
        self,
        session: ImportSession,
        operator: Operator | None,
        token: CancellationToken | None = None,
    ) -> SubmissionProgress:
        """Resubmit rows whose latest result failed, under the same import record.

        Rows are matched by case identifier and must still be error-free.
        Duplicate detection is left to the case-creation endpoint.
        """
        if session.state not in (SubmissionState.COMPLETED, SubmissionState.CANCELLED):
            raise SubmissionError(f"nothing to retry (state={session.state.value})")
        rows = retryable_rows(session)
        if not rows:
            raise SubmissionError("no failed rows to retry")
        return self._run(session, operator, rows, token, retry=True)

    def _publish(self, session: ImportSession, progress: SubmissionProgress) -> None:
        session.progress = progress
        if self.on_progress is not None:
            self.on_progress(progress)

    def _open_import(self, session: ImportSession, total_rows: int, retry: bool) -> str:
        try:
            if retry and session.import_id is not None:
                latest = session.latest_results().values()
                self.gateway.update_import(
                    session.import_id,
                    ImportStatus.PROCESSING,
                    sum(1 for r in latest if r.success),
                    sum(1 for r in latest if not r.success),
                )
                return session.import_id
            return self.gateway.create_import(session.filename or "import.csv", total_rows)
        except GatewayError as e:
            raise SubmissionError(f"Failed to create import record: {e}") from e

    def _run(
        self,
        session: ImportSession,
        operator: Operator | None,
        rows: list[CsvRow],
        token: CancellationToken | None,
        *,
        retry: bool,
    ) -> SubmissionProgress:
        if operator is None:
            raise NotAuthenticatedError("an authenticated operator is required to submit cases")
        if not rows:
            raise SubmissionError("no error-free rows to submit")
        token = token or CancellationToken()

        import_id = self._open_import(session, len(rows), retry)
        session.import_id = import_id
        session.state = SubmissionState.SUBMITTING

        batches = partition(rows, self.batch_size)
        progress = SubmissionProgress(total=len(rows), total_batches=len(batches))
        self._publish(session, progress)
        logger.info(
            f"submitting {len(rows)} row(s) in {len(batches)} batch(es) "
            f"import_id={import_id} operator={operator.name}{' (retry)' if retry else ''}"
        )

        processed = succeeded = failed = 0
        cancelled = False
        try:
            for number, batch in enumerate(batches, start=1):
                if token.cancelled:
                    cancelled = True
                    logger.warning(f"submission cancelled before batch {number}/{len(batches)}")
                    break
                results = self._send_batch(session, batch, import_id, number, len(batches))
                session.add_batch_results(results)
                processed += len(batch)
                succeeded += sum(1 for r in results if r.success)
                failed += sum(1 for r in results if not r.success)
                progress = SubmissionProgress(
                    total=len(rows),
                    processed=processed,
                    succeeded=succeeded,
                    failed=failed,
                    current_batch=number,
                    total_batches=len(batches),
                )
                self._publish(session, progress)
        except NotAuthenticatedError:
            # 途中で認証切れ: 受信済みの結果は保持したまま終了
            session.state = SubmissionState.CANCELLED
            raise

        session.state = SubmissionState.CANCELLED if cancelled else SubmissionState.COMPLETED
        self._finalize(session, import_id, cancelled)
        return progress

    def _send_batch(
        self,
        session: ImportSession,
        batch: list[CsvRow],
        import_id: str,
        number: int,
        total: int,
    ) -> list[BatchResult]:
        payloads = [to_case_payload(row, session.region) for row in batch]
        start = time.monotonic()
        try:
            return self.gateway.create_cases(payloads, import_id)
        except GatewayError as e:
            logger.error(f"batch {number}/{total} failed ({len(batch)} rows): {e}")
            return [
                BatchResult(success=False, case_id=row.case_id, error=NETWORK_ERROR_MESSAGE)
                for row in batch
            ]
        finally:
            self.batch_stats.add_batch_time(time.monotonic() - start)

    def _finalize(self, session: ImportSession, import_id: str, cancelled: bool) -> None:
        latest = session.latest_results().values()
        success_count = sum(1 for r in latest if r.success)
        failure_count = sum(1 for r in latest if not r.success)
        status = ImportStatus.FAILED if cancelled else ImportStatus.COMPLETED
        try:
            self.gateway.update_import(import_id, status, success_count, failure_count)
        except GatewayError as e:
            # 結果は手元にあるので致命扱いしない
            logger.warning(f"failed to finalize import {import_id} as {status.value}: {e}")
