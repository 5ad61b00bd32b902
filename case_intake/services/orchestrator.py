from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from pathlib import Path

from ..api.client import CaseGateway, NotAuthenticatedError, Operator
from ..csvio.reader import CsvIngestor, ParsedCsv
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import ImportConfig
from ..models.processing_result import ImportSummary
from .corrections import fix_all
from .export import write_failures_csv
from .progress import ParseProgressBar, SubmitProgressBar
from .session import ImportSession
from .submitter import BatchSubmitter, CancellationToken, retryable_rows
from .validator import summarize_errors

"""Import run orchestration.

Coordinates one upload-through-submit cycle for the CLI:
1. Parse the file on the ingest worker (progress bar on TTY)
2. Build the session (validation runs on load)
3. Optionally apply every bulk fix
4. Submit error-free rows (skipped in dry-run), optionally retry failures once
5. Record validation/submission failures in the error log, export failures
"""

__all__ = [
    "RunOptions",
    "load_session",
    "run_import",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunOptions:
    fix_all: bool = False
    dry_run: bool = False
    retry_failed: bool = False
    export_dir: Path | None = None
    today: date | None = None


def load_session(path: Path, config: ImportConfig, *, today: date | None = None) -> ImportSession:
    """Parse ``path`` off the calling thread and build a session from it.

    IngestError (FileRejected / ParseFailed) propagates; no session is built.
    """
    with CsvIngestor(config.ingest) as ingestor, ParseProgressBar(path.name) as bar:
        future = ingestor.start(path, on_progress=bar)
        parsed: ParsedCsv = future.result()
    return ImportSession.from_parsed(
        parsed, region=config.ingest.default_phone_region, today=today
    )


def _write_outputs(session: ImportSession, error_log: ErrorLogBuffer, export_dir: Path | None) -> None:
    if export_dir is not None:
        exported = write_failures_csv(session, export_dir)
        if exported is not None:
            logger.info(f"failed rows exported to {exported}")

    try:
        written = error_log.flush()
        if written is not None:
            logger.info(f"error log written to {written}")
    except OSError as e:
        # エラーログ書き込み失敗で全体を失敗扱いにはしない
        logger.warning(f"failed to write error log: {e}")


def run_import(
    path: Path,
    config: ImportConfig,
    *,
    gateway: CaseGateway | None,
    operator: Operator | None,
    options: RunOptions | None = None,
    token: CancellationToken | None = None,
) -> tuple[ImportSummary, ImportSession]:
    """Run the whole pipeline for one file.

    Raises:
        IngestError: file rejected or unparseable
        NotAuthenticatedError: submission attempted without an operator
        SubmissionError: the import record could not be created
    """
    options = options or RunOptions()
    start_time = datetime.now(UTC)
    error_log = ErrorLogBuffer(config.logs_directory)

    session = load_session(path, config, today=options.today)
    filename = session.filename or path.name

    fixed = fix_all(session) if options.fix_all else 0

    error_summary = summarize_errors(session.errors)
    if error_summary.total_errors:
        logger.warning(
            f"{error_summary.total_errors} validation error(s) in {error_summary.affected_rows} row(s); "
            f"by field={error_summary.by_field}"
        )
        error_log.add_validation_errors(filename, session.errors)
    else:
        logger.info(f"ready to submit {len(session.grid)} case(s)")

    submitter: BatchSubmitter | None = None
    try:
        if not options.dry_run and session.valid_rows():
            if operator is None:
                raise NotAuthenticatedError("an authenticated operator is required to submit cases")
            if gateway is None:
                raise ValueError("gateway is required unless dry_run is set")
            token = token or CancellationToken()
            submitter = BatchSubmitter(gateway)
            with SubmitProgressBar(len(session.valid_rows())) as bar:
                submitter.on_progress = bar.update
                submitter.submit(session, operator, token)
            retry_rows = retryable_rows(session)
            if options.retry_failed and retry_rows and not token.cancelled:
                logger.info(f"retrying {len(retry_rows)} failed case(s)")
                with SubmitProgressBar(len(retry_rows), description="Retrying") as bar:
                    submitter.on_progress = bar.update
                    submitter.retry_failed(session, operator, token)
        elif not options.dry_run:
            logger.warning("no error-free rows to submit")
    finally:
        # 途中で例外 (401 など) が出ても受信済みの結果は出力する
        if submitter is not None:
            error_log.add_failed_results(filename, session.failed_results())
        _write_outputs(session, error_log, options.export_dir)

    end_time = datetime.now(UTC)
    latest = session.latest_results()
    progress = session.progress
    avg_batch = p95_batch = 0.0
    if submitter is not None:
        _, avg_batch, p95_batch = submitter.batch_stats.get_stats()
    summary = ImportSummary(
        filename=filename,
        total_rows=len(session.grid),
        valid_rows=len(session.valid_rows()),
        invalid_rows=session.invalid_row_count,
        fixed_cells=fixed,
        submitted_rows=len(latest),
        succeeded=sum(1 for r in latest.values() if r.success),
        failed=sum(1 for r in latest.values() if not r.success),
        batches_done=progress.current_batch if progress else 0,
        total_batches=progress.total_batches if progress else 0,
        state="dry_run" if options.dry_run else session.state.value,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        import_id=session.import_id,
        avg_batch_seconds=avg_batch,
        p95_batch_seconds=p95_batch,
    )
    return summary, session
