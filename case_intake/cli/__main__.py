from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

from case_intake.api.client import HttpCaseGateway, NotAuthenticatedError, resolve_operator
from case_intake.config.loader import ConfigError, load_config
from case_intake.csvio.reader import IngestError, parse_csv
from case_intake.logging.init import log_summary, setup_logging
from case_intake.models.processing_result import ImportSummary
from case_intake.models.submission import SubmissionState
from case_intake.services.orchestrator import RunOptions, run_import
from case_intake.services.session import ImportSession
from case_intake.services.submitter import CancellationToken, SubmissionError
from case_intake.services.summary import render_summary_line

"""CLI entrypoint.

Flow:
- Load .env (python-dotenv, override) and config/import.yml (or --config)
- Parse + validate the CSV, optionally apply every bulk fix
- Submit error-free rows in batches (unless --dry-run); Ctrl-C cancels
  cooperatively before the next batch
- Print the SUMMARY line

Exit codes:
    0  every row valid and every submitted row succeeded
    2  validation errors, failed rows or a cancelled run
    1  fatal (config, unreadable file, not authenticated, import record failure)
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True により .env の値で既存環境変数を上書きする (API トークン優先)。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="CSV -> case management bulk importer")
    p.add_argument("file", type=Path, help="CSV file to import")
    p.add_argument("--config", type=Path, default=None, help="Config file (default: config/import.yml)")
    p.add_argument("--fix-all", action="store_true", help="Apply every bulk correction before submitting")
    p.add_argument("--dry-run", action="store_true", help="Validate only, do not submit")
    p.add_argument("--retry-failed", action="store_true", help="Retry failed rows once after the first pass")
    p.add_argument("--export-failures", type=Path, default=None, metavar="DIR",
                   help="Write failed rows to DIR/failed-imports-YYYY-MM-DD.csv")
    p.add_argument("--show-errors", type=int, default=20, metavar="N",
                   help="Print at most N validation errors (default: 20)")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print headers & first rows then exit")
    return p.parse_args(argv)


def _inspect_data(path: Path, cfg) -> int:
    try:
        parsed = parse_csv(path, cfg.ingest)
    except IngestError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    print(f"FILE: {parsed.filename} rows={len(parsed.rows)}")
    print(f"  headers={parsed.headers}")
    for row in parsed.rows[:3]:
        sample = row.canonical_values()
        if row.extras:
            sample["extras"] = dict(row.extras)
        print(f"  row {row.index + 1}: {sample}")
    return 0


def _report_errors(logger, session: ImportSession, limit: int) -> None:
    for error in session.errors[:max(limit, 0)]:
        logger.warning(f"row {error.row + 1} {error.field}: {error.message} (value={error.value!r})")
    hidden = len(session.errors) - max(limit, 0)
    if hidden > 0:
        logger.warning(f"... {hidden} more validation error(s) not shown")


def _exit_code(summary: ImportSummary) -> int:
    if summary.invalid_rows or summary.failed or summary.state == SubmissionState.CANCELLED.value:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # NOTE: 空リスト [] を渡されたときに sys.argv[1:] が混入しないよう None のときだけ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    # .env を最優先で読み込む (CASE_INTAKE_API_URL / CASE_INTAKE_API_TOKEN)
    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config, required=args.config is not None)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(args.file, cfg)

    options = RunOptions(
        fix_all=args.fix_all,
        dry_run=args.dry_run,
        retry_failed=args.retry_failed,
        export_dir=args.export_failures,
    )
    operator = resolve_operator()
    token = CancellationToken()

    def _on_sigint(signum, frame):  # pragma: no cover (signal delivery)
        logger.warning("cancel requested: stopping before the next batch")
        token.cancel()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        if operator is None or args.dry_run:
            summary, session = run_import(
                args.file, cfg, gateway=None, operator=operator, options=options, token=token
            )
        else:
            with HttpCaseGateway(cfg.api, operator) as gateway:
                summary, session = run_import(
                    args.file, cfg, gateway=gateway, operator=operator, options=options, token=token
                )
    except IngestError as e:
        logger.error(f"ingest: {e}")
        return EXIT_FATAL
    except NotAuthenticatedError as e:
        logger.error(f"auth: {e} (set CASE_INTAKE_API_TOKEN)")
        return EXIT_FATAL
    except SubmissionError as e:
        logger.error(f"submission: {e}")
        return EXIT_FATAL
    finally:
        signal.signal(signal.SIGINT, previous)

    _report_errors(logger, session, args.show_errors)
    if summary.import_id:
        logger.info(f"import_id={summary.import_id} avg_batch_sec={summary.avg_batch_seconds:.3f}")

    summary_line = render_summary_line(summary)
    # log_summary が "SUMMARY " を付けるので先頭を落とす
    log_summary(summary_line[8:])
    return _exit_code(summary)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
