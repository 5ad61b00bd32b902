from __future__ import annotations

from unittest.mock import Mock, patch

from case_intake.models.submission import SubmissionProgress
from case_intake.services.progress import ParseProgressBar, SubmitProgressBar, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch("sys.stdout.isatty", return_value=True):
        assert is_tty_enabled() is True
    with patch("sys.stdout.isatty", return_value=False):
        assert is_tty_enabled() is False


def test_parse_bar_disabled_without_tty():
    with patch("case_intake.services.progress.is_tty_enabled", return_value=False):
        with ParseProgressBar("cases.csv") as bar:
            bar(40.0)
            bar(100.0)
            assert bar.pbar is None
            assert bar.last == 100.0


def test_parse_bar_updates_by_delta_and_ignores_regression():
    mock_pbar = Mock()
    with patch("case_intake.services.progress.is_tty_enabled", return_value=True), \
         patch("case_intake.services.progress.tqdm", return_value=mock_pbar):
        bar = ParseProgressBar("cases.csv")
        bar(30.0)
        bar(20.0)
        bar(99.0)
        bar.close()
    assert [c.args[0] for c in mock_pbar.update.call_args_list] == [30.0, 69.0]
    mock_pbar.close.assert_called_once()


def test_submit_bar_tracks_rows_and_postfix():
    mock_pbar = Mock()
    with patch("case_intake.services.progress.is_tty_enabled", return_value=True), \
         patch("case_intake.services.progress.tqdm", return_value=mock_pbar) as mock_tqdm:
        with SubmitProgressBar(250) as bar:
            bar.update(SubmissionProgress(total=250, processed=100, succeeded=100, current_batch=1, total_batches=3))
            bar.update(SubmissionProgress(total=250, processed=200, succeeded=150, failed=50,
                                          current_batch=2, total_batches=3))
    assert mock_tqdm.call_args.kwargs["total"] == 250
    assert [c.args[0] for c in mock_pbar.update.call_args_list] == [100, 100]
    mock_pbar.set_postfix.assert_called_with(batch="2/3", ok=150, failed=50)
    mock_pbar.close.assert_called_once()


def test_submit_bar_without_tty_keeps_count():
    with patch("case_intake.services.progress.is_tty_enabled", return_value=False):
        bar = SubmitProgressBar(10)
        bar.update(SubmissionProgress(total=10, processed=10, succeeded=10, current_batch=1, total_batches=1))
    assert bar.processed == 10
    assert bar.pbar is None
