from __future__ import annotations

import statistics
from dataclasses import dataclass
from datetime import datetime

"""Run result models for the case intake import pipeline.

ImportSummary aggregates one CLI run (parse, fixes, validation, submission)
and feeds the SUMMARY output line. BatchStatsAccumulator collects per-batch
request timings.
"""

__all__ = [
    "ImportSummary",
    "BatchStatsAccumulator",
]


@dataclass(frozen=True)
class ImportSummary:
    """Aggregated results of one import run."""
    filename: str
    total_rows: int  # 読み込み行数
    valid_rows: int  # エラーなし行数 (送信対象)
    invalid_rows: int
    fixed_cells: int  # 一括修正で変更したセル数
    submitted_rows: int
    succeeded: int
    failed: int
    batches_done: int
    total_batches: int
    state: str  # SubmissionState.value or "dry_run"
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    import_id: str | None = None
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0


class BatchStatsAccumulator:
    """Accumulates batch timing statistics."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile (19th of 20 quantiles, 0-indexed)

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
