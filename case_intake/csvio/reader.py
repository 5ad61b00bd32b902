from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from case_intake.models.config_models import IngestConfig
from case_intake.models.csv_row import CsvRow

"""CSV ingestion: acceptance checks, chunked parsing and row normalization.

- File acceptance is checked before any byte is parsed (extension, size).
- The first row is the header row; every cell is read as a string and empty
  cells stay "" (no NaN conversion).
- Parsing is chunked (pandas ``chunksize``) so progress can be reported while
  the file is still being read. Progress is capped at 99 until completion and
  then snaps to 100.
- CsvIngestor runs the whole thing on a single worker thread so that the
  calling (interactive) thread is never blocked.
"""

__all__ = [
    "COLUMN_ALIASES",
    "IngestError",
    "FileRejected",
    "ParseFailed",
    "ParsedCsv",
    "check_file",
    "parse_csv",
    "normalize_rows",
    "CsvIngestor",
]

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# Canonical field -> accepted source headers (first non-empty wins)
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "case_id": ("case_id", "caseId"),
    "applicant_name": ("applicant_name", "applicantName"),
    "dob": ("dob", "dateOfBirth"),
    "email": ("email",),
    "phone": ("phone", "phoneNumber"),
    "category": ("category",),
    "priority": ("priority",),
}
_KNOWN_HEADERS = {alias for aliases in COLUMN_ALIASES.values() for alias in aliases}


class IngestError(Exception):
    """Base class for ingestion failures. No partial row set survives one."""


class FileRejected(IngestError):
    """Raised when the file fails acceptance checks (type/size)."""


class ParseFailed(IngestError):
    """Raised when the CSV content cannot be parsed."""


@dataclass(frozen=True)
class ParsedCsv:
    filename: str
    headers: list[str]
    rows: list[CsvRow]


def check_file(path: Path, config: IngestConfig) -> None:
    """Fail fast on files that must not be parsed at all."""
    if not any(path.name.lower().endswith(ext) for ext in config.accepted_extensions):
        raise FileRejected("Please upload a CSV file")
    try:
        size = path.stat().st_size
    except OSError as e:
        raise FileRejected(f"File not readable: {path.name} ({e.strerror})") from e
    if size > config.max_file_bytes:
        limit_mb = config.max_file_bytes // (1024 * 1024)
        raise FileRejected(f"File size must be less than {limit_mb}MB")


def _cell(value: Any) -> str:
    # 短い行の欠損セルは NaN になりうる
    if isinstance(value, str):
        return value
    if value is None or pd.isna(value):
        return ""
    return str(value)


def normalize_rows(records: Iterable[dict[str, Any]], headers: list[str]) -> list[CsvRow]:
    """Map source records onto the canonical row shape and assign indices."""
    extra_headers = [h for h in headers if h not in _KNOWN_HEADERS]
    rows: list[CsvRow] = []
    for index, record in enumerate(records):
        values: dict[str, str] = {}
        for canonical, aliases in COLUMN_ALIASES.items():
            value = ""
            for alias in aliases:
                candidate = _cell(record.get(alias))
                if candidate:
                    value = candidate
                    break
            values[canonical] = value
        extras = [(h, _cell(record.get(h))) for h in extra_headers]
        rows.append(CsvRow(index=index, extras=extras, **values))
    return rows


def parse_csv(
    path: Path,
    config: IngestConfig,
    on_progress: ProgressCallback | None = None,
) -> ParsedCsv:
    """Parse ``path`` into a ParsedCsv.

    Parameters
    ----------
    path: CSV file path (acceptance is checked first)
    config: ingest limits and chunk size
    on_progress: called with a percentage after each chunk, then once with 100.0

    Raises
    ------
    FileRejected: type/size checks failed (nothing parsed)
    ParseFailed: the content is not valid CSV
    """
    check_file(path, config)

    records: list[dict[str, Any]] = []
    headers: list[str] = []
    last_progress = 0.0
    try:
        reader = pd.read_csv(
            path,
            dtype=str,
            keep_default_na=False,
            na_filter=False,
            skip_blank_lines=True,
            chunksize=config.chunk_rows,
            encoding="utf-8-sig",
        )
        with reader:
            for chunk in reader:
                if not headers:
                    headers = [str(c).strip() for c in chunk.columns]
                chunk.columns = headers
                records.extend(chunk.to_dict(orient="records"))
                progress = min(len(records) / config.expected_rows * 100, 99.0)
                if on_progress is not None and progress >= last_progress:
                    last_progress = progress
                    on_progress(progress)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
        raise ParseFailed(f"Failed to parse CSV: {e}") from e

    if not headers:
        # ヘッダのみのファイル: chunk が 1 つも来ない
        headers = _read_header_only(path)

    rows = normalize_rows(records, headers)
    if on_progress is not None:
        on_progress(100.0)
    logger.debug("parsed %s rows=%d headers=%s", path.name, len(rows), headers)
    return ParsedCsv(filename=path.name, headers=headers, rows=rows)


def _read_header_only(path: Path) -> list[str]:
    try:
        df = pd.read_csv(path, dtype=str, nrows=0, encoding="utf-8-sig")
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
        raise ParseFailed(f"Failed to parse CSV: {e}") from e
    return [str(c).strip() for c in df.columns]


class CsvIngestor:
    """Runs parse_csv on a single background worker.

    Progress callbacks fire on the worker thread. The returned Future carries
    either the ParsedCsv or the IngestError raised by the parse.
    """

    def __init__(self, config: IngestConfig) -> None:
        self.config = config
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="csv-ingest")
        self._lock = threading.Lock()
        self._current: Future[ParsedCsv] | None = None

    def start(self, path: Path, on_progress: ProgressCallback | None = None) -> Future[ParsedCsv]:
        with self._lock:
            if self._current is not None and not self._current.done():
                raise RuntimeError("a parse is already running")
            self._current = self._executor.submit(parse_csv, path, self.config, on_progress)
            return self._current

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> CsvIngestor:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.shutdown()
