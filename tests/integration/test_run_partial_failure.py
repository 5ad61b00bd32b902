from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import FIXED_TODAY, FakeGateway, make_record, write_csv

from case_intake.api.client import NotAuthenticatedError, Operator
from case_intake.config.loader import load_config
from case_intake.models.submission import ImportStatus
from case_intake.services.orchestrator import RunOptions, run_import
from case_intake.services.submitter import CancellationToken

OPERATOR = Operator(name="tester", token="t0ken")


@pytest.fixture()
def cases_csv(temp_workdir: Path) -> Path:
    return write_csv(temp_workdir / "data" / "cases.csv", [make_record(i) for i in range(1, 251)])


def test_transport_failure_is_logged_and_exported(temp_workdir: Path, write_config: Path, cases_csv: Path):
    gateway = FakeGateway(fail_batches=[2])
    export_dir = temp_workdir / "exports"

    summary, session = run_import(
        cases_csv,
        load_config(write_config),
        gateway=gateway,
        operator=OPERATOR,
        options=RunOptions(export_dir=export_dir, today=FIXED_TODAY),
    )

    assert summary.succeeded == 150 and summary.failed == 100
    assert summary.state == "completed"
    exported = list(export_dir.glob("failed-imports-*.csv"))
    assert len(exported) == 1
    lines = exported[0].read_text(encoding="utf-8").splitlines()
    assert lines[0] == "case_id,applicant_name,dob,email,phone,category,priority,error"
    assert len(lines) == 101
    assert lines[1].startswith('"CASE-00101",')
    assert lines[1].endswith('"Network error - please retry"')

    (log_file,) = (temp_workdir / "logs").glob("errors-*.log")
    entries = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert len(entries) == 100
    assert {e["error_type"] for e in entries} == {"TRANSPORT_ERROR"}


def test_retry_failed_recovers_under_same_import(temp_workdir: Path, write_config: Path, cases_csv: Path):
    gateway = FakeGateway(fail_batches=[2])

    summary, session = run_import(
        cases_csv,
        load_config(write_config),
        gateway=gateway,
        operator=OPERATOR,
        options=RunOptions(retry_failed=True, today=FIXED_TODAY),
    )

    assert summary.succeeded == 250 and summary.failed == 0
    assert gateway.imports == [("cases.csv", 250)]
    assert gateway.updates[-1] == ("imp-1", ImportStatus.COMPLETED, 250, 0)


def test_cancelled_run_reports_cancelled_state(temp_workdir: Path, write_config: Path, cases_csv: Path):
    gateway = FakeGateway()
    token = CancellationToken()
    gateway.on_batch = lambda number: token.cancel()

    summary, session = run_import(
        cases_csv,
        load_config(write_config),
        gateway=gateway,
        operator=OPERATOR,
        options=RunOptions(retry_failed=True, today=FIXED_TODAY),
        token=token,
    )

    assert summary.state == "cancelled"
    assert summary.submitted_rows == 100
    assert (summary.batches_done, summary.total_batches) == (1, 3)
    assert gateway.updates == [("imp-1", ImportStatus.FAILED, 100, 0)]


def test_submission_without_operator_is_rejected(temp_workdir: Path, write_config: Path, cases_csv: Path):
    with pytest.raises(NotAuthenticatedError):
        run_import(
            cases_csv,
            load_config(write_config),
            gateway=FakeGateway(),
            operator=None,
            options=RunOptions(today=FIXED_TODAY),
        )


def test_auth_loss_mid_run_still_writes_outputs(temp_workdir: Path, write_config: Path, cases_csv: Path):
    gateway = FakeGateway(fail_batches=[1])
    export_dir = temp_workdir / "exports"

    def expire_token(number: int) -> None:
        if number == 2:
            raise NotAuthenticatedError("POST /api/cases/batch returned 401")

    gateway.on_batch = expire_token

    with pytest.raises(NotAuthenticatedError):
        run_import(
            cases_csv,
            load_config(write_config),
            gateway=gateway,
            operator=OPERATOR,
            options=RunOptions(export_dir=export_dir, today=FIXED_TODAY),
        )

    (exported,) = export_dir.glob("failed-imports-*.csv")
    assert len(exported.read_text(encoding="utf-8").splitlines()) == 101
    (log_file,) = (temp_workdir / "logs").glob("errors-*.log")
    entries = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert len(entries) == 100
    assert {e["error_type"] for e in entries} == {"TRANSPORT_ERROR"}


def test_retry_progress_bar_sized_by_resent_rows(temp_workdir: Path, write_config: Path, cases_csv: Path):
    gateway = FakeGateway(fail_batches=[3])

    with patch("case_intake.services.orchestrator.SubmitProgressBar") as mock_bar:
        run_import(
            cases_csv,
            load_config(write_config),
            gateway=gateway,
            operator=OPERATOR,
            options=RunOptions(retry_failed=True, today=FIXED_TODAY),
        )

    assert [c.args[0] for c in mock_bar.call_args_list] == [250, 50]
    assert [len(b) for b in gateway.batches] == [100, 100, 50, 50]
