"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements SQLite as the backend, but designed to be swappable.
"""

from pocket_ledger.services.storage.interface import (
    LedgerObserver,
    LedgerStorageInterface,
    PriceCacheInterface,
    StorageError,
    StorageUnavailableError,
    generate_sample_transactions,
)
from pocket_ledger.services.storage.sqlite import (
    Database,
    SqliteLedgerStorage,
    SqlitePriceCache,
    decode_price,
)

__all__ = [
    # Interfaces
    "LedgerObserver",
    "LedgerStorageInterface",
    "PriceCacheInterface",
    # Exceptions
    "StorageError",
    "StorageUnavailableError",
    # SQLite implementation
    "Database",
    "SqliteLedgerStorage",
    "SqlitePriceCache",
    # Helpers
    "decode_price",
    "generate_sample_transactions",
]
