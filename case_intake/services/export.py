from __future__ import annotations

import csv
import io
from datetime import date
from pathlib import Path

from .session import ImportSession

"""Export of failed rows as CSV.

Purely local: rows currently marked failed (latest result per case ID) are
written with their failure message. Every value is double-quoted and embedded
quotes are doubled.
"""

__all__ = [
    "EXPORT_COLUMNS",
    "export_failures_csv",
    "write_failures_csv",
]

EXPORT_COLUMNS: tuple[str, ...] = (
    "case_id",
    "applicant_name",
    "dob",
    "email",
    "phone",
    "category",
    "priority",
    "error",
)


def export_failures_csv(session: ImportSession) -> str:
    """Render failed rows as text/csv. Returns "" when nothing failed."""
    failed = session.failed_rows()
    if not failed:
        return ""
    buf = io.StringIO()
    # ヘッダ行は引用符なし、データ行はすべて引用符付き
    buf.write(",".join(EXPORT_COLUMNS) + "\n")
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row, result in failed:
        writer.writerow(
            [
                row.case_id,
                row.applicant_name,
                row.dob,
                row.email or "",
                row.phone or "",
                row.category,
                row.priority or "",
                result.error or "Unknown error",
            ]
        )
    # 最終行の改行は付けない
    return buf.getvalue().rstrip("\n")


def write_failures_csv(session: ImportSession, directory: Path, today: date | None = None) -> Path | None:
    """Write ``failed-imports-YYYY-MM-DD.csv`` into ``directory``."""
    content = export_failures_csv(session)
    if not content:
        return None
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"failed-imports-{(today or date.today()).isoformat()}.csv"
    path.write_text(content, encoding="utf-8")
    return path
