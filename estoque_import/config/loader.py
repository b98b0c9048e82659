from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import DatabaseConfig, ImportConfig, InferenceConfig, InventoryFields

"""Config loader.

Responsibilities:
- Load the YAML config (``config/import.yml`` by default)
- Validate it against the JSON schema shipped next to this module
- Apply defaults: every key is optional, an empty file is a valid config
"""

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "ConfigError",
    "load_config",
    "config_from_dict",
]

DEFAULT_CONFIG_PATH = Path("config/import.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: Any) -> None:
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
        where = ".".join(str(p) for p in e.absolute_path)
        prefix = f"{where}: " if where else ""
        raise ConfigError(f"config validation failed: {prefix}{e.message}") from e


def config_from_dict(data: dict[str, Any]) -> ImportConfig:
    """Build an ImportConfig from already-validated data."""
    defaults = ImportConfig()

    fields_raw = dict(data.get("fields") or {})
    balance = fields_raw.pop("balance", None)
    if isinstance(balance, str):
        fields_raw["balance"] = (balance,)
    elif balance:
        fields_raw["balance"] = tuple(balance)
    fields = InventoryFields(**fields_raw)

    inference = InferenceConfig(**(data.get("inference") or {}))
    database = DatabaseConfig(**(data.get("database") or {}))

    return ImportConfig(
        table=data.get("table", defaults.table),
        fields=fields,
        lookup_chunk_size=data.get("lookup_chunk_size", defaults.lookup_chunk_size),
        lookup_range_limit=data.get("lookup_range_limit", defaults.lookup_range_limit),
        update_batch_size=data.get("update_batch_size", defaults.update_batch_size),
        insert_max_attempts=data.get("insert_max_attempts", defaults.insert_max_attempts),
        warning_limit=data.get("warning_limit", defaults.warning_limit),
        inference=inference,
        database=database,
    )


def load_config(path: Path | None = None) -> ImportConfig:
    path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)
    return config_from_dict(data)
