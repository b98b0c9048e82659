"""Domain models for the stock spreadsheet import.

Configuration, parsed rows, reconciliation diffs and commit outcomes.
"""

from .commit_result import CommitResult, InsertOutcome, UpdateFailure, UpdateOutcome
from .config_models import DatabaseConfig, ImportConfig, InferenceConfig, InventoryFields
from .parsed_row import DEFAULT_UNIT, ImportWarning, NumericCandidate, ParsedRow
from .reconciliation import ReconciliationMatch, ReconciliationResult

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "ImportConfig",
    "InferenceConfig",
    "InventoryFields",
    # Parsing models
    "DEFAULT_UNIT",
    "ImportWarning",
    "NumericCandidate",
    "ParsedRow",
    # Reconciliation / commit models
    "ReconciliationMatch",
    "ReconciliationResult",
    "CommitResult",
    "InsertOutcome",
    "UpdateFailure",
    "UpdateOutcome",
]
