"""
Main Orchestrator for Pocket Ledger

This module ties together all the components and defines the flows the
application surface calls into:
1. Transaction entry (amount text -> validated -> appended -> tracked)
2. Home screen (paged grouped list, balance, live reference price)

Components are built explicitly by `create_app_components` and handed to
each other through constructor parameters. Nothing looks up a shared
container at runtime.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

import structlog

from pocket_ledger.analytics import AnalyticsEventLog, RateAnalyticsObserver
from pocket_ledger.config import (
    AppSettings,
    RateFeedSettings,
    Settings,
    StorageSettings,
    get_settings,
)
from pocket_ledger.logging_setup import configure_logging
from pocket_ledger.models.analytics import AnalyticsEventBuilder
from pocket_ledger.models.ledger import IndexPath, LedgerUpdate, TransactionDisplay
from pocket_ledger.models.transaction import (
    Transaction,
    TransactionCategory,
    TransactionKind,
)
from pocket_ledger.queries import PagedTransactionView
from pocket_ledger.services.broadcast import Subscription
from pocket_ledger.services.rates import BinanceTickerClient, LiveRateFeed, RateSource
from pocket_ledger.services.storage import (
    Database,
    LedgerStorageInterface,
    PriceCacheInterface,
    SqliteLedgerStorage,
    SqlitePriceCache,
)
from pocket_ledger.validation import parse_amount


logger = structlog.get_logger(__name__)

DEMO_DATA_COUNT = 50


class TransactionEntryFlow:
    """
    Records transactions typed in by the user.

    Flow:
    1. Parse amount text (rejects anything that is not a positive amount)
    2. Append to the ledger
    3. Track a `transaction_created` analytics event
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        event_log: Optional[AnalyticsEventLog] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._storage = storage
        self._event_log = event_log
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def add_funds(self, amount_text: str) -> Transaction:
        """
        Top up the balance.

        Raises:
            AmountValidationError: If the amount text is invalid
            StorageError: If the transaction cannot be saved
        """
        return await self._create(TransactionKind.CREDIT, amount_text, TransactionCategory.OTHER)

    async def add_expense(
        self,
        amount_text: str,
        category: TransactionCategory,
    ) -> Transaction:
        """
        Record a spending.

        Raises:
            AmountValidationError: If the amount text is invalid
            StorageError: If the transaction cannot be saved
        """
        return await self._create(TransactionKind.DEBIT, amount_text, category)

    async def _create(
        self,
        kind: TransactionKind,
        amount_text: str,
        category: TransactionCategory,
    ) -> Transaction:
        amount = parse_amount(amount_text)
        transaction = await self._storage.append(
            kind=kind,
            amount=amount,
            category=category,
            timestamp=self._clock(),
        )
        if self._event_log is not None:
            await self._event_log.record(
                AnalyticsEventBuilder.transaction_created(transaction)
            )
        return transaction


class HomeFlow:
    """
    Presentation model of the home screen.

    Wraps the paged view for a list UI: section titles, display rows,
    "load more" gating, balance and the live reference price.
    """

    def __init__(
        self,
        view: PagedTransactionView,
        storage: LedgerStorageInterface,
        feed: LiveRateFeed,
        event_log: Optional[AnalyticsEventLog] = None,
        currency: str = "BTC",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._view = view
        self._storage = storage
        self._feed = feed
        self._event_log = event_log
        self._currency = currency
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # Subscriptions

    def subscribe_rates(self) -> Subscription[float]:
        return self._feed.subscribe()

    def subscribe_updates(self) -> Subscription[LedgerUpdate]:
        return self._view.subscribe_updates()

    def subscribe_balance(self) -> Subscription[Decimal]:
        return self._view.subscribe_balance()

    # Data

    async def fetch_data(self) -> None:
        await self._view.perform_initial_fetch()

    async def load_more_if_needed(self) -> bool:
        """Load the next page only when idle and records exist beyond the window."""
        if self._view.is_loading:
            return False
        if self._view.displaying_count >= self._view.total_count:
            return False
        return await self._view.load_next_page()

    async def balance(self) -> Decimal:
        """
        Current balance over the whole ledger.

        Raises:
            StorageError: If the ledger cannot be read
        """
        return await self._storage.balance()

    async def add_demo_data(self, count: int = DEMO_DATA_COUNT) -> list[Transaction]:
        transactions = await self._storage.seed_sample_data(count)
        if self._event_log is not None:
            await self._event_log.record(AnalyticsEventBuilder.demo_data_seeded(len(transactions)))
        return transactions

    # Projections

    @property
    def displaying_count(self) -> int:
        return self._view.displaying_count

    def section_count(self) -> int:
        return self._view.section_count()

    def row_count(self, section: int) -> int:
        return self._view.row_count(section)

    def section_title(self, section: int) -> str:
        """"Today", "Yesterday", or the full date of the section's day."""
        zone = self._storage.zone
        day = self._view.section_day(section).astimezone(zone).date()
        today = self._clock().astimezone(zone).date()
        if day == today:
            return "Today"
        if day == today - timedelta(days=1):
            return "Yesterday"
        return f"{day:%A}, {day.day} {day:%B %Y}"

    def display_row(self, index_path: IndexPath) -> TransactionDisplay:
        transaction = self._view.record_at(index_path)
        local_time = transaction.timestamp.astimezone(self._storage.zone)
        return TransactionDisplay(
            transaction_id=str(transaction.id),
            category_title=transaction.category.title,
            category=transaction.category,
            kind=transaction.kind,
            time_label=local_time.strftime("%d/%m/%Y %H:%M"),
            amount=transaction.signed_amount,
            currency=self._currency,
        )


@dataclass
class AppComponents:
    """Everything the application needs, wired together."""

    app_settings: AppSettings
    database: Database
    ledger_storage: LedgerStorageInterface
    price_cache: PriceCacheInterface
    rate_source: RateSource
    rate_feed: LiveRateFeed
    event_log: AnalyticsEventLog
    rate_observer: RateAnalyticsObserver
    view: PagedTransactionView
    entry_flow: TransactionEntryFlow
    home_flow: HomeFlow

    async def start(self) -> None:
        """
        Bring the application up: schema, optional demo data, first page,
        analytics observer and rate polling.
        """
        level = "DEBUG" if self.app_settings.debug_mode else self.app_settings.log_level
        configure_logging(level, self.app_settings.log_json)
        await asyncio.to_thread(self.database.init_schema)

        seed_count = self.app_settings.seed_demo_data_count
        if seed_count and await self.ledger_storage.total_count() == 0:
            await self.home_flow.add_demo_data(seed_count)

        await self.view.perform_initial_fetch()
        self.rate_observer.start()
        self.rate_feed.start()
        logger.info(
            "app_started",
            environment=self.app_settings.app_environment,
            database=self.database.url,
        )

    async def shutdown(self) -> None:
        await self.rate_feed.aclose()
        await self.rate_observer.stop()
        self.view.close()
        close = getattr(self.rate_source, "close", None)
        if callable(close):
            close()
        self.database.dispose()
        logger.info("app_stopped")


def create_app_components(
    settings: Optional[Settings] = None,
    *,
    app_settings: Optional[AppSettings] = None,
    storage_settings: Optional[StorageSettings] = None,
    feed_settings: Optional[RateFeedSettings] = None,
    rate_source: Optional[RateSource] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Root settings; sub-settings not given explicitly are read from it
        app_settings: Overrides settings.app
        storage_settings: Overrides settings.storage
        feed_settings: Overrides settings.rate_feed
        rate_source: Price source to poll (defaults to the configured ticker client)

    Returns:
        The wired, not yet started, components
    """
    if settings is None and None in (app_settings, storage_settings, feed_settings):
        settings = get_settings()
    app_settings = app_settings or settings.app
    storage_settings = storage_settings or settings.storage
    feed_settings = feed_settings or settings.rate_feed

    database = Database.from_settings(storage_settings)
    ledger_storage = SqliteLedgerStorage(database, zone=storage_settings.zone)
    price_cache = SqlitePriceCache(database, key=feed_settings.cache_key)

    rate_source = rate_source or BinanceTickerClient.from_settings(feed_settings)
    rate_feed = LiveRateFeed(
        source=rate_source,
        cache=price_cache,
        update_interval=feed_settings.update_interval_seconds,
    )

    event_log = AnalyticsEventLog()
    rate_observer = RateAnalyticsObserver(rate_feed, event_log)

    view = PagedTransactionView(ledger_storage, page_size=storage_settings.page_size)
    entry_flow = TransactionEntryFlow(ledger_storage, event_log=event_log)
    home_flow = HomeFlow(
        view=view,
        storage=ledger_storage,
        feed=rate_feed,
        event_log=event_log,
        currency=app_settings.currency_code,
    )

    return AppComponents(
        app_settings=app_settings,
        database=database,
        ledger_storage=ledger_storage,
        price_cache=price_cache,
        rate_source=rate_source,
        rate_feed=rate_feed,
        event_log=event_log,
        rate_observer=rate_observer,
        view=view,
        entry_flow=entry_flow,
        home_flow=home_flow,
    )
