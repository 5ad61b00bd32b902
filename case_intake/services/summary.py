from __future__ import annotations

from ..models.processing_result import ImportSummary

"""SUMMARY line rendering for the case intake import run."""


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # 指数表記を避ける
        return f"{value:.6f}".rstrip('0').rstrip('.')
    return f"{value:.3f}".rstrip('0').rstrip('.')


def render_summary_line(summary: ImportSummary) -> str:
    """Render the SUMMARY line for a run.

    Format:
    SUMMARY file={name} rows={n} valid={n} invalid={n} fixed={n} submitted={n}
    success={n} failed={n} batches={done}/{total} status={state} elapsed_sec={s}

    Examples:
        >>> from datetime import datetime, timezone
        >>> t = datetime(2025, 1, 1, tzinfo=timezone.utc)
        >>> s = ImportSummary(
        ...     filename="cases.csv", total_rows=250, valid_rows=250, invalid_rows=0,
        ...     fixed_cells=0, submitted_rows=250, succeeded=250, failed=0,
        ...     batches_done=3, total_batches=3, state="completed",
        ...     start_time=t, end_time=t, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(s)  # doctest: +ELLIPSIS
        'SUMMARY file=cases.csv rows=250 valid=250 invalid=0 fixed=0 submitted=250 ...'
    """
    return (
        f"SUMMARY file={summary.filename} "
        f"rows={summary.total_rows} "
        f"valid={summary.valid_rows} "
        f"invalid={summary.invalid_rows} "
        f"fixed={summary.fixed_cells} "
        f"submitted={summary.submitted_rows} "
        f"success={summary.succeeded} "
        f"failed={summary.failed} "
        f"batches={summary.batches_done}/{summary.total_batches} "
        f"status={summary.state} "
        f"elapsed_sec={_format_number(summary.elapsed_seconds)}"
    )
