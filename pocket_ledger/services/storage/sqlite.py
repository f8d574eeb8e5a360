"""
SQLite Storage Implementation

SQLite is the storage backend because:
1. It is a durable, transactional, single-file store
2. No server to run for a personal ledger
3. Indexed ordering and SUM aggregates come for free

Queries run in a worker thread so the event loop never blocks on disk I/O.
Writes go through one lock per storage object and commit in a single
transaction, so readers never see a partially written batch.
"""

import asyncio
import math
import threading
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from pathlib import Path
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import Column, DateTime, func
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from pocket_ledger.config import StorageSettings
from pocket_ledger.models.transaction import (
    Transaction,
    TransactionCategory,
    TransactionKind,
    as_utc,
)
from pocket_ledger.services.storage.interface import (
    LedgerStorageInterface,
    PriceCacheInterface,
    StorageError,
    StorageUnavailableError,
)


logger = structlog.get_logger(__name__)

BALANCE_QUANTUM = Decimal("0.00000001")


# =============================================================================
# TABLES
# =============================================================================

class TransactionRecord(SQLModel, table=True):
    """Row of the append-only ledger. Datetimes are written as aware UTC."""

    __tablename__ = "transactions"

    sequence: Optional[int] = Field(default=None, primary_key=True)
    id: UUID = Field(index=True, unique=True)
    amount: Decimal = Field(max_digits=18, decimal_places=8)
    kind: str = Field(index=True)
    category: str
    timestamp: datetime = Field(
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False)
    )
    day_bucket: datetime = Field(
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False)
    )

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "TransactionRecord":
        return cls(
            id=transaction.id,
            amount=transaction.amount,
            kind=transaction.kind.value,
            category=transaction.category.value,
            timestamp=as_utc(transaction.timestamp),
            day_bucket=as_utc(transaction.day_bucket),
        )

    def to_transaction(self) -> Transaction:
        return Transaction(
            id=self.id,
            amount=Decimal(self.amount).quantize(BALANCE_QUANTUM),
            kind=TransactionKind(self.kind),
            category=TransactionCategory(self.category),
            timestamp=as_utc(self.timestamp),
            day_bucket=as_utc(self.day_bucket),
            sequence=self.sequence,
        )


class SettingRecord(SQLModel, table=True):
    """Key-value settings table backing the price cache."""

    __tablename__ = "settings"

    key: str = Field(primary_key=True)
    value: str


# =============================================================================
# DATABASE
# =============================================================================

class Database:
    """
    Owns the SQLAlchemy engine for one SQLite file.

    Built explicitly by the composition root and shared by the storages
    that live in the same file.
    """

    def __init__(self, url: str, echo: bool = False):
        self._url = url
        self._engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )

    @classmethod
    def for_path(cls, path: Path, echo: bool = False) -> "Database":
        """Open (or create) the database file at `path`."""
        path.parent.mkdir(parents=True, exist_ok=True)
        return cls(f"sqlite:///{path}", echo=echo)

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "Database":
        settings.database_path.parent.mkdir(parents=True, exist_ok=True)
        return cls(settings.database_url, echo=settings.echo_sql)

    @property
    def url(self) -> str:
        return self._url

    def init_schema(self) -> None:
        """Create tables that do not exist yet."""
        try:
            SQLModel.metadata.create_all(self._engine)
        except OperationalError as e:
            raise StorageUnavailableError(f"Cannot open database {self._url}: {e}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create schema: {e}") from e

    def session(self) -> Session:
        """Get a new database session."""
        return Session(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()


# =============================================================================
# LEDGER
# =============================================================================

class SqliteLedgerStorage(LedgerStorageInterface):
    """
    SQLite implementation of the ledger.

    Every public query reads from the database, never from a cache, so the
    results cover all committed records regardless of what a view holds.
    """

    def __init__(self, database: Database, zone: tzinfo = timezone.utc):
        super().__init__(zone=zone)
        self._database = database
        self._write_lock = threading.Lock()

    async def _commit(self, transactions: list[Transaction]) -> list[Transaction]:
        return await asyncio.to_thread(self._commit_sync, transactions)

    def _commit_sync(self, transactions: list[Transaction]) -> list[Transaction]:
        records = [TransactionRecord.from_transaction(t) for t in transactions]
        with self._write_lock:
            try:
                with self._database.session() as session:
                    session.add_all(records)
                    session.commit()
                    for record in records:
                        session.refresh(record)
                    return [record.to_transaction() for record in records]
            except SQLAlchemyError as e:
                logger.error("ledger_commit_failed", count=len(records), error=str(e))
                raise StorageError(f"Failed to append transactions: {e}") from e

    async def total_count(self) -> int:
        return await asyncio.to_thread(self._total_count_sync)

    def _total_count_sync(self) -> int:
        try:
            with self._database.session() as session:
                return session.exec(
                    select(func.count()).select_from(TransactionRecord)
                ).one()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to count transactions: {e}") from e

    async def balance(self) -> Decimal:
        return await asyncio.to_thread(self._balance_sync)

    def _balance_sync(self) -> Decimal:
        try:
            with self._database.session() as session:
                rows = session.exec(
                    select(TransactionRecord.kind, func.sum(TransactionRecord.amount))
                    .where(
                        TransactionRecord.kind.in_(
                            [TransactionKind.CREDIT.value, TransactionKind.DEBIT.value]
                        )
                    )
                    .group_by(TransactionRecord.kind)
                ).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to compute balance: {e}") from e

        totals = {kind: Decimal(str(total or 0)) for kind, total in rows}
        credits = totals.get(TransactionKind.CREDIT.value, Decimal("0"))
        debits = totals.get(TransactionKind.DEBIT.value, Decimal("0"))
        return (credits - debits).quantize(BALANCE_QUANTUM)

    async def fetch_window(self, limit: int) -> list[Transaction]:
        if limit < 0:
            raise ValueError("limit must not be negative")
        return await asyncio.to_thread(self._fetch_window_sync, limit)

    def _fetch_window_sync(self, limit: int) -> list[Transaction]:
        try:
            with self._database.session() as session:
                records = session.exec(
                    select(TransactionRecord)
                    .order_by(
                        TransactionRecord.day_bucket.desc(),
                        TransactionRecord.timestamp.desc(),
                        TransactionRecord.sequence.desc(),
                    )
                    .limit(limit)
                ).all()
                return [record.to_transaction() for record in records]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to fetch transactions: {e}") from e


# =============================================================================
# PRICE CACHE
# =============================================================================

class SqlitePriceCache(PriceCacheInterface):
    """
    Last good price, kept as a row of the settings table.

    The value is stored as text and decoded on read; anything that does not
    decode to a positive finite number reads back as absent.
    """

    def __init__(self, database: Database, key: str = "cached_bitcoin_rate"):
        self._database = database
        self._key = key
        self._write_lock = threading.Lock()

    async def save(self, value: float) -> None:
        await asyncio.to_thread(self._save_sync, value)

    def _save_sync(self, value: float) -> None:
        with self._write_lock:
            try:
                with self._database.session() as session:
                    session.merge(SettingRecord(key=self._key, value=repr(float(value))))
                    session.commit()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to cache price: {e}") from e

    async def load(self) -> Optional[float]:
        return await asyncio.to_thread(self._load_sync)

    def _load_sync(self) -> Optional[float]:
        try:
            with self._database.session() as session:
                record = session.get(SettingRecord, self._key)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read cached price: {e}") from e
        if record is None:
            return None
        return decode_price(record.value)


def decode_price(raw: str) -> Optional[float]:
    """Decode a stored price. Zero, negatives and garbage mean "absent"."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value
