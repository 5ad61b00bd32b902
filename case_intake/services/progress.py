from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.submission import SubmissionProgress

"""Progress display with tqdm (TTY only).

- One tqdm instance per phase (parse, submit); disabled in non-TTY output so
  that CI logs do not fill with ANSI control sequences.
- Parse progress is a percentage bar; submit progress counts rows and shows
  batch/success/failure counters as postfix.
"""

__all__ = [
    "is_tty_enabled",
    "ParseProgressBar",
    "SubmitProgressBar",
]


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class ParseProgressBar:
    """Percentage bar fed by the ingestor's progress callback.

    The callback may fire on the ingest worker thread; tqdm handles its own
    locking for a single bar.
    """

    def __init__(self, filename: str) -> None:
        self.enabled = is_tty_enabled()
        self.last = 0.0
        self.pbar: TqdmType[Any] | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=100,
                desc=f"Parsing {filename}",
                unit="%",
                leave=False,
                ncols=80,
                ascii=True,
                bar_format="{desc}: {percentage:3.0f}%|{bar}|",
            )

    def __call__(self, percent: float) -> None:
        if percent < self.last:
            return
        if self.pbar is not None:
            self.pbar.update(percent - self.last)
        self.last = percent

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ParseProgressBar:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class SubmitProgressBar:
    """Row-count bar updated after every submitted batch."""

    def __init__(self, total_rows: int, *, description: str = "Submitting cases") -> None:
        self.total_rows = total_rows
        self.description = description
        self.processed = 0
        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def update(self, progress: SubmissionProgress) -> None:
        delta = progress.processed - self.processed
        self.processed = progress.processed
        if self.pbar is not None:
            self.pbar.update(delta)
            self.pbar.set_postfix(
                batch=f"{progress.current_batch}/{progress.total_batches}",
                ok=progress.succeeded,
                failed=progress.failed,
            )

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> SubmitProgressBar:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
