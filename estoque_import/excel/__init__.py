from .reader import StockFileError, read_stock_file

__all__ = [
    "StockFileError",
    "read_stock_file",
]
