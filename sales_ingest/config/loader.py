from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.records import Channel, PaymentMapping
from ..normalizers.store_sales import DEFAULT_USER_STORE_MAPPING

"""Configuration loader.

Responsibilities:
- Load YAML (default ``config/ingest.yml``)
- Validate against ``config_schema.json`` shipped next to this module
- Apply defaults for every optional key

Connection parameters in ``database`` are a fallback; the CLI lets
``DATABASE_URL`` / ``PGDSN`` / ``PG*`` environment variables win.
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "IngestConfig",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "default_config",
]

DEFAULT_CONFIG_PATH = Path("config/ingest.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class IngestConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    kv_table: str = "kv_store_sales"
    chunk_size: int = 500
    chunk_timeout: float = 60.0
    refresh_timeout: float = 25.0
    user_store_mapping: dict[str, Channel] = field(
        default_factory=lambda: dict(DEFAULT_USER_STORE_MAPPING)
    )
    payment_mappings: dict[str, PaymentMapping] = field(default_factory=dict)
    logs_directory: str = "logs"


def default_config() -> IngestConfig:
    return IngestConfig()


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or not JSON, or the data violates it
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


def load_config(path: Path) -> IngestConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    defaults = IngestConfig()
    db_raw = data.get("database", {})
    timeouts = data.get("timeouts", {})
    user_mapping = data.get("user_store_mapping")
    return IngestConfig(
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
        kv_table=data.get("kv_table", defaults.kv_table),
        chunk_size=data.get("chunk_size", defaults.chunk_size),
        chunk_timeout=float(timeouts.get("chunk_seconds", defaults.chunk_timeout)),
        refresh_timeout=float(timeouts.get("refresh_seconds", defaults.refresh_timeout)),
        user_store_mapping=(
            {name.strip().lower(): Channel(ch) for name, ch in user_mapping.items()}
            if user_mapping else defaults.user_store_mapping
        ),
        payment_mappings={
            method: PaymentMapping.from_dict(m) for method, m in data.get("payment_mappings", {}).items()
        },
        logs_directory=data.get("logs_directory", defaults.logs_directory),
    )
