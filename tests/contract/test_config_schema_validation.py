from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest
import yaml
from jsonschema.exceptions import ValidationError

from estoque_import.config.loader import SCHEMA_PATH

"""Config schema contract."""

PROJECT_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture()
def schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_sample_config_is_valid(schema):
    data = yaml.safe_load((PROJECT_ROOT / "config" / "import.yml").read_text(encoding="utf-8"))
    jsonschema.validate(data, schema)


def test_empty_config_is_valid(schema):
    jsonschema.validate({}, schema)


def test_balance_accepts_string_or_list(schema):
    jsonschema.validate({"fields": {"balance": "saldo_estoque"}}, schema)
    jsonschema.validate({"fields": {"balance": ["saldo_estoque", "quantidade_estoque"]}}, schema)
    with pytest.raises(ValidationError):
        jsonschema.validate({"fields": {"balance": []}}, schema)


@pytest.mark.parametrize(
    "config",
    [
        {"unknown_key": 1},
        {"fields": {"preco": "valor"}},
        {"lookup_chunk_size": 0},
        {"update_batch_size": "20"},
        {"warning_limit": -1},
        {"inference": {"fraction_epsilon": 0}},
        {"database": {"port": "5432"}},
    ],
)
def test_invalid_configs_rejected(schema, config):
    with pytest.raises(ValidationError):
        jsonschema.validate(config, schema)
