from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the stock import.

These are the typed form of ``config/import.yml`` after schema validation. Every
setting has a default so an empty YAML file yields a working configuration
against the standard ``pecas`` inventory table.
"""

__all__ = [
    "DatabaseConfig",
    "InventoryFields",
    "InferenceConfig",
    "ImportConfig",
]


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback.

    Environment variables (and ``.env``) take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class InventoryFields:
    """Column names of the inventory table written by the import."""
    id: str = "id"
    code: str = "codigo_produto"
    name: str = "nome"
    unit: str = "unidade_medida"
    group: str = "grupo_produto"
    # o saldo é gravado em todas as colunas listadas
    balance: tuple[str, ...] = ("saldo_estoque", "quantidade_estoque")
    value_total: str = "valor_total"
    unit_value: str = "valor_unitario"
    min_stock: str = "estoque_minimo"


@dataclass(frozen=True)
class InferenceConfig:
    """Tunable thresholds of the numeric inference heuristics."""
    fraction_epsilon: float = 1e-6
    integer_balance_cap: float = 100_000


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for one import run."""
    table: str = "pecas"
    fields: InventoryFields = field(default_factory=InventoryFields)
    lookup_chunk_size: int = 50
    lookup_range_limit: int = 20_000
    update_batch_size: int = 20
    insert_max_attempts: int = 6
    warning_limit: int = 40
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
