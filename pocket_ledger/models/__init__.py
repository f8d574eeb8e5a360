"""
Data Models Package

This package contains all Pydantic models used in Pocket Ledger.
All data flowing through the system must conform to these schemas.
"""

from pocket_ledger.models.transaction import (
    Transaction,
    TransactionCategory,
    TransactionKind,
    as_utc,
    start_of_day,
)
from pocket_ledger.models.ledger import (
    IndexPath,
    LedgerUpdate,
    LedgerUpdateType,
    TransactionDisplay,
    TransactionSection,
)
from pocket_ledger.models.analytics import (
    AnalyticsEvent,
    AnalyticsEventBuilder,
    AnalyticsEventName,
)

__all__ = [
    # Ledger models
    "IndexPath",
    "LedgerUpdate",
    "LedgerUpdateType",
    "Transaction",
    "TransactionCategory",
    "TransactionDisplay",
    "TransactionKind",
    "TransactionSection",
    "as_utc",
    "start_of_day",
    # Analytics models
    "AnalyticsEvent",
    "AnalyticsEventBuilder",
    "AnalyticsEventName",
]
