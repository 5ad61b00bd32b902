from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from case_intake.models.config_models import ApiConfig
from case_intake.models.submission import BatchResult, CasePayload, ImportStatus

"""Client side of the case/import endpoints.

Endpoints (JSON):
- POST  /api/imports            {filename, totalRows}           -> {import: {id, ...}}
- PATCH /api/imports/{id}       {status, successCount, failureCount}
- POST  /api/cases/batch        {cases: [...<=100], importId}   -> {results: [...]}

Every request carries an explicit timeout (ApiConfig.request_timeout_seconds)
so that a hung request cannot stall a submission indefinitely.
"""

__all__ = [
    "TOKEN_ENV",
    "OPERATOR_ENV",
    "GatewayError",
    "NotAuthenticatedError",
    "Operator",
    "CaseGateway",
    "HttpCaseGateway",
    "resolve_operator",
]

logger = logging.getLogger(__name__)

TOKEN_ENV = "CASE_INTAKE_API_TOKEN"
OPERATOR_ENV = "CASE_INTAKE_OPERATOR"


class GatewayError(Exception):
    """Transport-level failure: the whole request failed."""


class NotAuthenticatedError(Exception):
    """No authenticated operator; submission cannot start."""


@dataclass(frozen=True)
class Operator:
    """Current operator identity as supplied by the session/auth collaborator."""
    name: str
    token: str


def resolve_operator() -> Operator | None:
    """Read the operator session from the environment (.env already loaded)."""
    token = os.getenv(TOKEN_ENV)
    if not token:
        return None
    return Operator(name=os.getenv(OPERATOR_ENV, "operator"), token=token)


class CaseGateway(Protocol):
    def create_import(self, filename: str, total_rows: int) -> str: ...

    def update_import(
        self, import_id: str, status: ImportStatus, success_count: int, failure_count: int
    ) -> None: ...

    def create_cases(self, cases: Sequence[CasePayload], import_id: str) -> list[BatchResult]: ...


class HttpCaseGateway:
    """CaseGateway over httpx with bearer-token auth."""

    def __init__(
        self,
        config: ApiConfig,
        operator: Operator,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.operator = operator
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.request_timeout_seconds,
            headers={"Authorization": f"Bearer {operator.token}"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpCaseGateway:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _request(self, method: str, url: str, payload: dict[str, Any]) -> Any:
        try:
            response = self._client.request(method, url, json=payload)
        except httpx.HTTPError as e:
            raise GatewayError(f"{method} {url} failed: {e}") from e
        if response.status_code == 401:
            raise NotAuthenticatedError("operator session rejected (401 Unauthorized)")
        if response.is_error:
            raise GatewayError(f"{method} {url} returned {response.status_code}: {response.text[:200]}")
        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(f"{method} {url} returned invalid JSON: {e}") from e

    def create_import(self, filename: str, total_rows: int) -> str:
        data = self._request("POST", "/api/imports", {"filename": filename, "totalRows": total_rows})
        try:
            return str(data["import"]["id"])
        except (KeyError, TypeError) as e:
            raise GatewayError(f"unexpected import response: {data!r}") from e

    def update_import(
        self, import_id: str, status: ImportStatus, success_count: int, failure_count: int
    ) -> None:
        self._request(
            "PATCH",
            f"/api/imports/{import_id}",
            {"status": status.value, "successCount": success_count, "failureCount": failure_count},
        )

    def create_cases(self, cases: Sequence[CasePayload], import_id: str) -> list[BatchResult]:
        data = self._request(
            "POST",
            "/api/cases/batch",
            {"cases": [c.to_json() for c in cases], "importId": import_id},
        )
        try:
            raw_results = data["results"]
        except (KeyError, TypeError) as e:
            raise GatewayError(f"unexpected batch response: {data!r}") from e
        results = [BatchResult.from_json(r) for r in raw_results]
        if len(results) != len(cases):
            raise GatewayError(f"batch response size mismatch: sent={len(cases)} got={len(results)}")
        return results
