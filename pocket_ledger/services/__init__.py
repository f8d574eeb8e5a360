"""Services package."""

from pocket_ledger.services.broadcast import Broadcaster, Subscription
from pocket_ledger.services.rates import (
    BinanceTickerClient,
    LiveRateFeed,
    RateFetchError,
    RatePayloadError,
    RateSource,
    RateTransportError,
)
from pocket_ledger.services.storage import (
    Database,
    LedgerObserver,
    LedgerStorageInterface,
    PriceCacheInterface,
    SqliteLedgerStorage,
    SqlitePriceCache,
    StorageError,
    StorageUnavailableError,
)

__all__ = [
    # Channels
    "Broadcaster",
    "Subscription",
    # Rate services
    "BinanceTickerClient",
    "LiveRateFeed",
    "RateFetchError",
    "RatePayloadError",
    "RateSource",
    "RateTransportError",
    # Storage services
    "Database",
    "LedgerObserver",
    "LedgerStorageInterface",
    "PriceCacheInterface",
    "SqliteLedgerStorage",
    "SqlitePriceCache",
    "StorageError",
    "StorageUnavailableError",
]
