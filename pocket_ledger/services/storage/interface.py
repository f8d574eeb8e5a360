"""
Abstract Storage Interface

We define abstract interfaces for the two things the application persists:
1. The append-only transaction ledger
2. The last good reference price

This allows us to:
1. Swap SQLite for another engine later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The ledger interface is intentionally narrow. There is no update and no
delete: records are appended and then only read.
"""

import random
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import Optional

import structlog

from pocket_ledger.models.transaction import (
    Transaction,
    TransactionCategory,
    TransactionKind,
)


logger = structlog.get_logger(__name__)


class PriceCacheInterface(ABC):
    """
    Durable single-value store for the last successfully observed price.

    Zero is never a valid cached value: it encodes "never set", so `load`
    reports a stored zero as absent.
    """

    @abstractmethod
    async def save(self, value: float) -> None:
        """
        Overwrite the cached price.

        Raises:
            StorageError: If the value cannot be persisted
        """
        pass

    @abstractmethod
    async def load(self) -> Optional[float]:
        """
        Read the cached price.

        Returns:
            The cached price, or None if never saved or not a positive number

        Raises:
            StorageError: If the store cannot be read
        """
        pass


class LedgerObserver(ABC):
    """Receives every committed batch of appended transactions."""

    @abstractmethod
    async def ledger_did_append(self, transactions: list[Transaction]) -> None:
        pass


class LedgerStorageInterface(ABC):
    """
    Abstract interface for the transaction ledger.

    Any storage implementation must implement the abstract methods.
    Observers are notified after each successful commit, in commit order.
    """

    def __init__(self, zone: tzinfo = timezone.utc):
        self._zone = zone
        self._observers: list[LedgerObserver] = []

    @property
    def zone(self) -> tzinfo:
        """Reference calendar used to derive day buckets."""
        return self._zone

    # -------------------------------------------------------------------------
    # Backend operations
    # -------------------------------------------------------------------------

    @abstractmethod
    async def _commit(self, transactions: list[Transaction]) -> list[Transaction]:
        """
        Persist `transactions` atomically: either all are stored or none.

        Returns:
            The stored records, with their insertion sequence assigned

        Raises:
            StorageError: If the batch cannot be committed
        """
        pass

    @abstractmethod
    async def total_count(self) -> int:
        """
        Number of records ever appended.

        Raises:
            StorageError: If the count query fails
        """
        pass

    @abstractmethod
    async def balance(self) -> Decimal:
        """
        Sum of credits minus sum of debits over the whole ledger.

        Records of kind UNKNOWN are excluded from both sums.

        Raises:
            StorageError: If the aggregate query fails
        """
        pass

    @abstractmethod
    async def fetch_window(self, limit: int) -> list[Transaction]:
        """
        The first `limit` records in display order.

        Display order is day bucket descending, then timestamp descending,
        then insertion order descending.

        Raises:
            StorageError: If the query fails
        """
        pass

    # -------------------------------------------------------------------------
    # Appending
    # -------------------------------------------------------------------------

    async def append(
        self,
        kind: TransactionKind,
        amount: Decimal,
        category: TransactionCategory = TransactionCategory.OTHER,
        timestamp: Optional[datetime] = None,
    ) -> Transaction:
        """
        Create, persist and announce a new transaction.

        Args:
            kind: Credit, debit or unknown
            amount: Non-negative magnitude
            category: Display bucket
            timestamp: When it happened (defaults to now)

        Returns:
            The stored transaction

        Raises:
            StorageError: If the record cannot be committed
            ValueError: If the record itself is invalid
        """
        transaction = Transaction.create(
            kind=kind,
            amount=amount,
            category=category,
            timestamp=timestamp or datetime.now(timezone.utc),
            zone=self._zone,
        )
        stored = await self.append_batch([transaction])
        return stored[0]

    async def append_batch(self, transactions: list[Transaction]) -> list[Transaction]:
        """Persist several prepared records in one atomic commit."""
        if not transactions:
            return []
        stored = await self._commit(transactions)
        logger.info("ledger_append_committed", count=len(stored))
        await self._notify_observers(stored)
        return stored

    async def seed_sample_data(
        self,
        count: int = 50,
        seed: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[Transaction]:
        """
        Append `count` synthetic records in one commit (demo and test hook).

        Record i is dated i // 2 days before `now`.
        """
        transactions = generate_sample_transactions(
            count=count,
            zone=self._zone,
            now=now,
            rng=random.Random(seed),
        )
        return await self.append_batch(transactions)

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def add_observer(self, observer: LedgerObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: LedgerObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    async def _notify_observers(self, transactions: list[Transaction]) -> None:
        for observer in list(self._observers):
            try:
                await observer.ledger_did_append(transactions)
            except Exception as e:
                # The batch is already committed
                logger.error(
                    "ledger_observer_failed",
                    observer=type(observer).__name__,
                    error=str(e),
                    exc_info=True,
                )


def generate_sample_transactions(
    count: int,
    zone: tzinfo = timezone.utc,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> list[Transaction]:
    """
    Build `count` synthetic transactions, two per calendar day going back
    from `now`. Credits are always categorized as OTHER.
    """
    if count < 0:
        raise ValueError("count must not be negative")
    rng = rng or random.Random()
    now = now or datetime.now(timezone.utc)
    kinds = list(TransactionKind)
    categories = list(TransactionCategory)

    transactions = []
    for i in range(count):
        kind = rng.choice(kinds)
        category = (
            TransactionCategory.OTHER
            if kind == TransactionKind.CREDIT
            else rng.choice(categories)
        )
        amount = Decimal(str(round(rng.uniform(0.001, 3.0), 2)))
        transactions.append(
            Transaction.create(
                kind=kind,
                amount=amount,
                category=category,
                timestamp=now - timedelta(days=i // 2),
                zone=zone,
            )
        )
    return transactions


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageUnavailableError(StorageError):
    """Could not open or reach the storage backend."""
    pass
