"""Stock spreadsheet import and reconciliation for the inventory (``pecas``) table."""

__version__ = "0.1.0"
