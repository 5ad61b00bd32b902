# Shared pytest fixtures
from __future__ import annotations

import csv
import tempfile
from collections.abc import Sequence
from datetime import date
from pathlib import Path

import pytest

from case_intake.api.client import GatewayError, Operator
from case_intake.logging.init import reset_logging
from case_intake.models.submission import BatchResult, CasePayload, ImportStatus

FIXED_TODAY = date(2025, 6, 1)

HEADER = ["case_id", "applicant_name", "dob", "email", "phone", "category", "priority"]


def make_record(n: int, **overrides: str) -> dict[str, str]:
    """A row dict that passes every field rule."""
    record = {
        "case_id": f"CASE-{n:05d}",
        "applicant_name": f"Applicant {n}",
        "dob": "1990-03-14",
        "email": f"user{n}@example.com",
        "phone": "9876543210",
        "category": "TAX",
        "priority": "MEDIUM",
    }
    record.update(overrides)
    return record


def write_csv(path: Path, records: Sequence[dict[str, str]], header: Sequence[str] | None = None) -> Path:
    header = list(header or (records[0].keys() if records else HEADER))
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=header)
        writer.writeheader()
        for record in records:
            writer.writerow(record)
    return path


class FakeGateway:
    """In-memory CaseGateway that records every call.

    ``fail_batches`` holds 1-based batch numbers that raise GatewayError,
    ``reject_case_ids`` get a per-row failure result.
    """

    def __init__(self, *, fail_batches: Sequence[int] = (), reject_case_ids: Sequence[str] = ()) -> None:
        self.fail_batches = set(fail_batches)
        self.reject_case_ids = set(reject_case_ids)
        self.imports: list[tuple[str, int]] = []
        self.updates: list[tuple[str, ImportStatus, int, int]] = []
        self.batches: list[list[CasePayload]] = []
        self.batch_import_ids: list[str] = []
        self.fail_create_import = False
        self.on_batch = None  # callable(batch_number) hook for tests

    def __enter__(self) -> FakeGateway:
        return self

    def __exit__(self, *exc) -> None:
        self.closed = True

    def create_import(self, filename: str, total_rows: int) -> str:
        if self.fail_create_import:
            raise GatewayError("POST /api/imports returned 500: boom")
        self.imports.append((filename, total_rows))
        return f"imp-{len(self.imports)}"

    def update_import(self, import_id: str, status: ImportStatus, success_count: int, failure_count: int) -> None:
        self.updates.append((import_id, status, success_count, failure_count))

    def create_cases(self, cases: Sequence[CasePayload], import_id: str) -> list[BatchResult]:
        self.batches.append(list(cases))
        self.batch_import_ids.append(import_id)
        number = len(self.batches)
        if self.on_batch is not None:
            self.on_batch(number)
        if number in self.fail_batches:
            raise GatewayError("POST /api/cases/batch failed: connection reset")
        results = []
        for case in cases:
            if case.case_id in self.reject_case_ids:
                results.append(BatchResult(success=False, case_id=case.case_id, error="Case ID already exists"))
            else:
                results.append(BatchResult(success=True, case_id=case.case_id, id=f"srv-{case.case_id}"))
        return results


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("CASE_INTAKE_API_URL", "CASE_INTAKE_API_TOKEN", "CASE_INTAKE_OPERATOR"):
        # setenv で元の状態を記録してから消す (.env 読み込みの漏れ防止)
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def today() -> date:
    return FIXED_TODAY


@pytest.fixture()
def operator() -> Operator:
    return Operator(name="tester", token="t0ken")


@pytest.fixture()
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """api:
  base_url: http://cases.test
  request_timeout_seconds: 5
import:
  chunk_rows: 50
  expected_rows: 1000
logs_directory: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def valid_csv(temp_workdir: Path) -> Path:
    records = [make_record(i) for i in range(1, 6)]
    return write_csv(temp_workdir / "data" / "cases.csv", records)
