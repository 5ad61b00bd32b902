from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest
from conftest import FakeGateway

from case_intake.api.client import GatewayError, NotAuthenticatedError, Operator
from case_intake.csvio.reader import ParsedCsv
from case_intake.models.csv_row import CsvRow
from case_intake.models.submission import (
    NETWORK_ERROR_MESSAGE,
    ImportStatus,
    SubmissionProgress,
    SubmissionState,
)
from case_intake.services.session import ImportSession
from case_intake.services.submitter import (
    BatchSubmitter,
    CancellationToken,
    SubmissionError,
    partition,
)

TODAY = date(2025, 6, 1)
OPERATOR = Operator(name="tester", token="t0ken")


def _valid_row(index: int) -> CsvRow:
    return CsvRow(
        index=index,
        case_id=f"C-{index:04d}",
        applicant_name="Jane Doe",
        dob="1990-03-14",
        category="TAX",
    )


def _session(n: int, *, invalid: tuple[int, ...] = ()) -> ImportSession:
    rows = [_valid_row(i) for i in range(n)]
    for i in invalid:
        rows[i].category = ""
    return ImportSession.from_parsed(ParsedCsv(filename="cases.csv", headers=[], rows=rows), today=TODAY)


def test_partition_contiguous_ascending():
    rows = [_valid_row(i) for i in (4, 0, 3, 1, 2)]
    chunks = partition(rows, 2)
    assert [[r.index for r in c] for c in chunks] == [[0, 1], [2, 3], [4]]


def test_partition_rejects_non_positive_size():
    with pytest.raises(ValueError):
        partition([], 0)


def test_batch_size_cannot_exceed_hundred():
    with pytest.raises(ValueError):
        BatchSubmitter(FakeGateway(), batch_size=101)


def test_250_rows_three_batches_all_succeed():
    gateway = FakeGateway()
    published: list[SubmissionProgress] = []
    session = _session(250)
    progress = BatchSubmitter(gateway, on_progress=published.append).submit(session, OPERATOR)

    assert [len(b) for b in gateway.batches] == [100, 100, 50]
    assert progress.processed == 250
    assert progress.succeeded == 250
    assert progress.current_batch == 3 and progress.total_batches == 3
    assert session.state is SubmissionState.COMPLETED
    assert gateway.imports == [("cases.csv", 250)]
    assert gateway.updates == [("imp-1", ImportStatus.COMPLETED, 250, 0)]
    # 初期値 + バッチごと
    assert [p.processed for p in published] == [0, 100, 200, 250]


def test_only_error_free_rows_are_submitted():
    gateway = FakeGateway()
    session = _session(5, invalid=(1, 3))
    BatchSubmitter(gateway).submit(session, OPERATOR)
    sent = [c.case_id for c in gateway.batches[0]]
    assert sent == ["C-0000", "C-0002", "C-0004"]
    assert gateway.imports == [("cases.csv", 3)]


def test_transport_failure_marks_batch_failed_and_continues():
    gateway = FakeGateway(fail_batches=[2])
    session = _session(250)
    progress = BatchSubmitter(gateway).submit(session, OPERATOR)

    assert len(gateway.batches) == 3  # 3 バッチ目も送信される
    assert progress.processed == 250
    assert progress.failed == 100
    assert progress.succeeded == 150
    failed = session.failed_results()
    assert len(failed) == 100
    assert {r.error for r in failed} == {NETWORK_ERROR_MESSAGE}
    assert {r.case_id for r in failed} == {f"C-{i:04d}" for i in range(100, 200)}
    assert gateway.updates[-1] == ("imp-1", ImportStatus.COMPLETED, 150, 100)


def test_per_row_results_are_kept_verbatim():
    gateway = FakeGateway(reject_case_ids=["C-0001"])
    session = _session(3)
    BatchSubmitter(gateway).submit(session, OPERATOR)
    assert [(r.case_id, r.success, r.error) for r in session.batch_results] == [
        ("C-0000", True, None),
        ("C-0001", False, "Case ID already exists"),
        ("C-0002", True, None),
    ]


def test_cancel_before_next_batch():
    gateway = FakeGateway()
    token = CancellationToken()
    gateway.on_batch = lambda number: token.cancel() if number == 1 else None
    session = _session(250)
    progress = BatchSubmitter(gateway).submit(session, OPERATOR, token)

    assert len(gateway.batches) == 1
    assert progress.processed == 100
    assert session.state is SubmissionState.CANCELLED
    assert gateway.updates == [("imp-1", ImportStatus.FAILED, 100, 0)]


def test_not_authenticated_is_raised_before_any_request():
    gateway = FakeGateway()
    session = _session(3)
    with pytest.raises(NotAuthenticatedError):
        BatchSubmitter(gateway).submit(session, None)
    assert gateway.imports == []
    assert session.state is SubmissionState.IDLE


def test_no_valid_rows_is_submission_error():
    with pytest.raises(SubmissionError, match="no error-free rows"):
        BatchSubmitter(FakeGateway()).submit(_session(2, invalid=(0, 1)), OPERATOR)


def test_import_record_failure_aborts_with_idle_state():
    gateway = FakeGateway()
    gateway.fail_create_import = True
    session = _session(3)
    with pytest.raises(SubmissionError, match="Failed to create import record"):
        BatchSubmitter(gateway).submit(session, OPERATOR)
    assert gateway.batches == []
    assert session.state is SubmissionState.IDLE


def test_submit_twice_is_rejected():
    session = _session(2)
    submitter = BatchSubmitter(FakeGateway())
    submitter.submit(session, OPERATOR)
    with pytest.raises(SubmissionError, match="already submitted"):
        submitter.submit(session, OPERATOR)


def test_retry_reuses_import_id_and_resends_only_failed():
    gateway = FakeGateway(fail_batches=[2])
    session = _session(250)
    submitter = BatchSubmitter(gateway)
    submitter.submit(session, OPERATOR)
    progress = submitter.retry_failed(session, OPERATOR)

    assert len(gateway.imports) == 1  # 新しい import は作らない
    assert gateway.batch_import_ids == ["imp-1"] * 4
    assert [c.case_id for c in gateway.batches[3]] == [f"C-{i:04d}" for i in range(100, 200)]
    assert progress.total == 100 and progress.succeeded == 100
    assert session.failed_results() == []
    assert gateway.updates == [
        ("imp-1", ImportStatus.COMPLETED, 150, 100),
        ("imp-1", ImportStatus.PROCESSING, 150, 100),
        ("imp-1", ImportStatus.COMPLETED, 250, 0),
    ]
    assert session.state is SubmissionState.COMPLETED


def test_retry_requires_a_finished_run():
    with pytest.raises(SubmissionError, match="nothing to retry"):
        BatchSubmitter(FakeGateway()).retry_failed(_session(2), OPERATOR)


def test_retry_with_nothing_failed():
    session = _session(2)
    submitter = BatchSubmitter(FakeGateway())
    submitter.submit(session, OPERATOR)
    with pytest.raises(SubmissionError, match="no failed rows"):
        submitter.retry_failed(session, OPERATOR)


def test_unauthorized_mid_run_cancels_and_propagates():
    gateway = MagicMock()
    gateway.create_import.return_value = "imp-9"
    gateway.create_cases.side_effect = NotAuthenticatedError("operator session rejected (401 Unauthorized)")
    session = _session(3)
    with pytest.raises(NotAuthenticatedError):
        BatchSubmitter(gateway).submit(session, OPERATOR)
    assert session.state is SubmissionState.CANCELLED
    gateway.update_import.assert_not_called()


def test_finalize_failure_is_not_fatal():
    gateway = FakeGateway()
    gateway.update_import = MagicMock(side_effect=GatewayError("PATCH failed"))
    session = _session(2)
    progress = BatchSubmitter(gateway).submit(session, OPERATOR)
    assert progress.succeeded == 2
    assert session.state is SubmissionState.COMPLETED


def test_batch_timings_are_recorded():
    submitter = BatchSubmitter(FakeGateway(), batch_size=2)
    submitter.submit(_session(5), OPERATOR)
    total, avg, p95 = submitter.batch_stats.get_stats()
    assert total == 3
    assert avg >= 0.0 and p95 >= 0.0
