"""
Paged, change-tracking projection of the ledger.

The view holds a window: the first `loaded_limit` transactions in display
order, grouped into one section per day bucket. Sections are ordered newest
day first and rows inside a section newest first; identical timestamps
fall back to insertion order, latest first.

Every change to the window is announced on the update stream:

- Initial fetch, page growth and multi-record appends: RELOAD
- A single appended record that lands inside the window:
  BEGIN_BATCH, [INSERT_SECTION], INSERT_ROW, END_BATCH

A single record that sorts after the last row of a full window is outside
the window and produces no update. A record that lands inside a full window
grows `loaded_limit` by one instead of pushing the last row out, so the
change stays a pure insertion.

Index-based accessors raise IndexError for anything outside the current
snapshot, including negative indices.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from pocket_ledger.models.ledger import (
    IndexPath,
    LedgerUpdate,
    TransactionSection,
)
from pocket_ledger.models.transaction import Transaction
from pocket_ledger.services.broadcast import Broadcaster, Subscription
from pocket_ledger.services.storage import LedgerObserver, LedgerStorageInterface


logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 20


class _Section:
    __slots__ = ("day_bucket", "rows")

    def __init__(self, day_bucket: datetime, rows: list[Transaction]):
        self.day_bucket = day_bucket
        self.rows = rows


def _insertion_index(rows: list[Transaction], transaction: Transaction) -> int:
    """Where `transaction` goes in `rows`, which is sorted by sort_key descending."""
    key = transaction.sort_key
    for index, row in enumerate(rows):
        if row.sort_key < key:
            return index
    return len(rows)


class PagedTransactionView(LedgerObserver):
    """
    Windowed, day-grouped view over a ledger storage.

    All window mutations run under one asyncio lock. `load_next_page`
    additionally uses a loading flag so that a call made while another page
    load is in flight is ignored rather than queued.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self._storage = storage
        self._page_size = page_size
        self._loaded_limit = page_size
        self._window: list[Transaction] = []
        self._sections: list[_Section] = []
        self._ids: set[UUID] = set()
        self._fetched = False
        self._is_loading = False
        self._total_count = 0
        self._lock = asyncio.Lock()
        self._updates: Broadcaster[LedgerUpdate] = Broadcaster("ledger-updates")
        self._balances: Broadcaster[Decimal] = Broadcaster("ledger-balance")
        self._last_balance: Optional[Decimal] = None
        storage.add_observer(self)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def loaded_limit(self) -> int:
        return self._loaded_limit

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def displaying_count(self) -> int:
        """Number of records currently in the window."""
        return len(self._window)

    @property
    def total_count(self) -> int:
        """Ledger size as of the last fetch, page load or append."""
        return self._total_count

    @property
    def has_more(self) -> bool:
        return len(self._window) < self._total_count

    @property
    def last_balance(self) -> Optional[Decimal]:
        return self._last_balance

    def subscribe_updates(self) -> Subscription[LedgerUpdate]:
        return self._updates.subscribe()

    def subscribe_balance(self) -> Subscription[Decimal]:
        return self._balances.subscribe()

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def perform_initial_fetch(self) -> None:
        """
        Load the first page and announce it with RELOAD.

        Raises:
            StorageError: If the ledger cannot be read
        """
        async with self._lock:
            window = await self._storage.fetch_window(self._page_size)
            self._total_count = await self._storage.total_count()
            self._loaded_limit = self._page_size
            self._replace_window(window)
            self._fetched = True
        logger.info(
            "ledger_view_fetched",
            displaying=len(self._window),
            total=self._total_count,
        )
        self._updates.publish(LedgerUpdate.reload())
        await self.refresh_balance()

    async def load_next_page(self) -> bool:
        """
        Grow the window by one page and announce it with RELOAD.

        Ignored while another page load is in flight, and when the window
        already holds every record.

        Returns:
            True if the window was re-derived

        Raises:
            StorageError: If the ledger cannot be read; the window is unchanged
        """
        if self._is_loading:
            logger.debug("ledger_page_load_ignored", reason="already_loading")
            return False

        self._is_loading = True
        try:
            async with self._lock:
                self._total_count = await self._storage.total_count()
                if len(self._window) >= self._total_count:
                    logger.debug("ledger_page_load_ignored", reason="no_more_records")
                    return False
                limit = self._loaded_limit + self._page_size
                window = await self._storage.fetch_window(limit)
                self._loaded_limit = limit
                self._replace_window(window)
                self._fetched = True
        finally:
            self._is_loading = False

        logger.info(
            "ledger_page_loaded",
            loaded_limit=self._loaded_limit,
            displaying=len(self._window),
            total=self._total_count,
        )
        self._updates.publish(LedgerUpdate.reload())
        return True

    async def refresh_balance(self) -> Decimal:
        """Recompute the balance from storage and publish it."""
        balance = await self._storage.balance()
        self._last_balance = balance
        self._balances.publish(balance)
        return balance

    # -------------------------------------------------------------------------
    # Change tracking
    # -------------------------------------------------------------------------

    async def ledger_did_append(self, transactions: list[Transaction]) -> None:
        async with self._lock:
            self._total_count = await self._storage.total_count()
            if not self._fetched:
                updates = []
            elif len(transactions) == 1:
                updates = self._apply_insert(transactions[0])
            else:
                window = await self._storage.fetch_window(self._loaded_limit)
                self._replace_window(window)
                updates = [LedgerUpdate.reload()]

        for update in updates:
            self._updates.publish(update)
        await self.refresh_balance()

    def _apply_insert(self, transaction: Transaction) -> list[LedgerUpdate]:
        if transaction.id in self._ids:
            # Already picked up by a reload that ran after the commit
            return []

        window_full = len(self._window) >= self._loaded_limit
        if window_full and self._window and self._window[-1].sort_key > transaction.sort_key:
            logger.debug("ledger_append_outside_window", transaction_id=str(transaction.id))
            return []
        if window_full:
            self._loaded_limit += 1

        self._window.insert(_insertion_index(self._window, transaction), transaction)
        self._ids.add(transaction.id)

        updates = [LedgerUpdate.begin_batch()]
        section_index = self._find_section(transaction.day_bucket)
        if section_index is None:
            section_index = self._section_insertion_index(transaction.day_bucket)
            self._sections.insert(section_index, _Section(transaction.day_bucket, [transaction]))
            updates.append(LedgerUpdate.insert_section(section_index))
            row = 0
        else:
            rows = self._sections[section_index].rows
            row = _insertion_index(rows, transaction)
            rows.insert(row, transaction)
        updates.append(LedgerUpdate.insert_row(IndexPath(section_index, row)))
        updates.append(LedgerUpdate.end_batch())
        return updates

    def _find_section(self, day_bucket: datetime) -> Optional[int]:
        for index, section in enumerate(self._sections):
            if section.day_bucket == day_bucket:
                return index
        return None

    def _section_insertion_index(self, day_bucket: datetime) -> int:
        for index, section in enumerate(self._sections):
            if section.day_bucket < day_bucket:
                return index
        return len(self._sections)

    def _replace_window(self, window: list[Transaction]) -> None:
        self._window = list(window)
        self._ids = {t.id for t in window}
        self._sections = []
        for transaction in window:
            if self._sections and self._sections[-1].day_bucket == transaction.day_bucket:
                self._sections[-1].rows.append(transaction)
            else:
                self._sections.append(_Section(transaction.day_bucket, [transaction]))

    # -------------------------------------------------------------------------
    # Projections
    # -------------------------------------------------------------------------

    def section_count(self) -> int:
        return len(self._sections)

    def row_count(self, section: int) -> int:
        return len(self._section(section).rows)

    def record_at(self, index_path: IndexPath) -> Transaction:
        section, row = index_path
        rows = self._section(section).rows
        if not 0 <= row < len(rows):
            raise IndexError(f"Row {row} out of range for section {section} ({len(rows)} rows)")
        return rows[row]

    def section_day(self, section: int) -> datetime:
        """Day bucket of a section, as aware UTC."""
        return self._section(section).day_bucket

    def section_label(self, section: int) -> str:
        """ISO date of the section's day in the ledger's reference calendar."""
        day = self._section(section).day_bucket.astimezone(self._storage.zone)
        return day.date().isoformat()

    def sections(self) -> list[TransactionSection]:
        """Immutable snapshot of the current sections."""
        return [
            TransactionSection(day_bucket=s.day_bucket, transactions=tuple(s.rows))
            for s in self._sections
        ]

    def transactions(self) -> list[Transaction]:
        """The window in display order."""
        return list(self._window)

    def _section(self, section: int) -> _Section:
        if not 0 <= section < len(self._sections):
            raise IndexError(
                f"Section {section} out of range ({len(self._sections)} sections)"
            )
        return self._sections[section]

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Detach from the storage and end all subscriptions."""
        self._storage.remove_observer(self)
        self._updates.close()
        self._balances.close()
