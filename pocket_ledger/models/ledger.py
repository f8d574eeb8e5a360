"""
Window and change-notification models for the paged ledger view.

Consumers apply row and section edits only between a BEGIN_BATCH and the
matching END_BATCH. RELOAD means "forget everything and re-read the view".
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict

from pocket_ledger.models.transaction import (
    Transaction,
    TransactionCategory,
    TransactionKind,
)


class IndexPath(NamedTuple):
    """Position of a row: section index, then row index inside the section."""
    section: int
    row: int


class LedgerUpdateType(str, Enum):
    BEGIN_BATCH = "begin_batch"
    END_BATCH = "end_batch"
    RELOAD = "reload"
    INSERT_ROW = "insert_row"
    INSERT_SECTION = "insert_section"


class LedgerUpdate(BaseModel):
    """One element of the change-notification stream."""
    model_config = ConfigDict(frozen=True)

    type: LedgerUpdateType
    index_path: Optional[IndexPath] = None
    section: Optional[int] = None

    @classmethod
    def begin_batch(cls) -> "LedgerUpdate":
        return cls(type=LedgerUpdateType.BEGIN_BATCH)

    @classmethod
    def end_batch(cls) -> "LedgerUpdate":
        return cls(type=LedgerUpdateType.END_BATCH)

    @classmethod
    def reload(cls) -> "LedgerUpdate":
        return cls(type=LedgerUpdateType.RELOAD)

    @classmethod
    def insert_row(cls, index_path: IndexPath) -> "LedgerUpdate":
        return cls(type=LedgerUpdateType.INSERT_ROW, index_path=index_path)

    @classmethod
    def insert_section(cls, section: int) -> "LedgerUpdate":
        return cls(type=LedgerUpdateType.INSERT_SECTION, section=section)


class TransactionSection(BaseModel):
    """All windowed transactions of one calendar day, newest first."""
    model_config = ConfigDict(frozen=True)

    day_bucket: datetime
    transactions: tuple[Transaction, ...]


class TransactionDisplay(BaseModel):
    """
    A list row ready for rendering.

    Debits carry a negative amount; credits and unknown records are shown
    as recorded.
    """
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    category_title: str
    category: TransactionCategory
    kind: TransactionKind
    time_label: str
    amount: Decimal
    currency: str
