from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the case intake import pipeline.

Loaded and validated by case_intake/config/loader.py. Every value has a
default so that an absent config file still yields a usable configuration.
"""

__all__ = [
    "ApiConfig",
    "IngestConfig",
    "ImportConfig",
]


@dataclass(frozen=True)
class ApiConfig:
    """Remote case/import endpoint settings.

    CASE_INTAKE_API_URL in the environment takes precedence over base_url.
    """
    base_url: str = "http://localhost:3000"
    request_timeout_seconds: float = 30.0  # 0 以下は不可 (schema で拒否)


@dataclass(frozen=True)
class IngestConfig:
    """CSV acceptance limits and parsing/validation knobs."""
    max_file_bytes: int = 50 * 1024 * 1024
    accepted_extensions: tuple[str, ...] = (".csv",)
    expected_rows: int = 50_000  # progress estimate denominator
    chunk_rows: int = 1000  # rows per parse chunk / progress tick
    default_phone_region: str = "IN"


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object."""
    api: ApiConfig = field(default_factory=ApiConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    logs_directory: str = "./logs"
