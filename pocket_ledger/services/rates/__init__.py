"""Reference price services package."""

from pocket_ledger.services.rates.client import (
    BinanceTickerClient,
    RateFetchError,
    RatePayloadError,
    RateSource,
    RateTransportError,
    parse_price,
)
from pocket_ledger.services.rates.feed import (
    DEFAULT_UPDATE_INTERVAL,
    MIN_UPDATE_INTERVAL,
    LiveRateFeed,
)

__all__ = [
    "BinanceTickerClient",
    "DEFAULT_UPDATE_INTERVAL",
    "LiveRateFeed",
    "MIN_UPDATE_INTERVAL",
    "RateFetchError",
    "RatePayloadError",
    "RateSource",
    "RateTransportError",
    "parse_price",
]
