from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from case_intake.models.config_models import ApiConfig, ImportConfig, IngestConfig

"""Config loader.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate against the packaged JSON schema (config_schema.json)
- Apply defaults for every missing key
- Apply environment overrides (CASE_INTAKE_API_URL)
"""

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "ConfigError",
    "load_config",
]

DEFAULT_CONFIG_PATH = Path("config/import.yml")
SCHEMA_PATH = Path(__file__).parent / "config_schema.json"

API_URL_ENV = "CASE_INTAKE_API_URL"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: If the schema file is missing or malformed, or the config
            data fails schema validation (unknown keys, wrong types, limits).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path | None = None, *, required: bool = False) -> ImportConfig:
    """Load the import configuration.

    A missing file yields defaults unless ``required`` is set (an explicit
    --config path must exist).
    """
    path = path or DEFAULT_CONFIG_PATH
    if not path.exists():
        if required:
            raise ConfigError(f"config file not found: {path}")
        data: dict[str, Any] = {}
    else:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid yaml: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError("config validation failed: top level must be a mapping")

    _validate_config_schema(data)

    api_raw = data.get("api") or {}
    defaults = ApiConfig()
    api = ApiConfig(
        base_url=os.getenv(API_URL_ENV) or api_raw.get("base_url", defaults.base_url),
        request_timeout_seconds=float(
            api_raw.get("request_timeout_seconds", defaults.request_timeout_seconds)
        ),
    )

    ingest_raw = data.get("import") or {}
    ingest_defaults = IngestConfig()
    extensions = ingest_raw.get("accepted_extensions")
    ingest = IngestConfig(
        max_file_bytes=ingest_raw.get("max_file_bytes", ingest_defaults.max_file_bytes),
        accepted_extensions=(
            tuple(e.lower() for e in extensions) if extensions else ingest_defaults.accepted_extensions
        ),
        expected_rows=ingest_raw.get("expected_rows", ingest_defaults.expected_rows),
        chunk_rows=ingest_raw.get("chunk_rows", ingest_defaults.chunk_rows),
        default_phone_region=ingest_raw.get(
            "default_phone_region", ingest_defaults.default_phone_region
        ),
    )
    return ImportConfig(
        api=api,
        ingest=ingest,
        logs_directory=data.get("logs_directory", "./logs"),
    )
