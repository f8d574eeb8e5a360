"""
Reference Price Source

The price comes from a ticker endpoint that answers a GET with a JSON
object carrying the price as a string, e.g.

    {"symbol": "BTCUSDT", "price": "117290.61000000"}

This module only fetches and parses. It never retries and never falls back:
one call is one attempt, and every way it can go wrong is reported as a
RateFetchError subclass. Recovery is the feed's job.
"""

import asyncio
import math
from abc import ABC, abstractmethod
from typing import Any, Optional

import requests

from pocket_ledger.config import RateFeedSettings


class RateFetchError(Exception):
    """Base exception for a failed price fetch."""
    pass


class RateTransportError(RateFetchError):
    """Network failure or non-success HTTP status."""
    pass


class RatePayloadError(RateFetchError):
    """The response arrived but does not contain a usable price."""

    def __init__(self, message: str, raw_value: Optional[Any] = None):
        self.raw_value = raw_value
        super().__init__(message)


class RateSource(ABC):
    """Anything that can produce one reference price per call."""

    @abstractmethod
    async def fetch_rate(self) -> float:
        """
        Fetch the current price.

        Returns:
            A positive, finite price

        Raises:
            RateFetchError: If no usable price could be obtained
        """
        pass

    def describe(self) -> str:
        return type(self).__name__


def parse_price(payload: Any, price_field: str = "price") -> float:
    """
    Extract the price from a decoded ticker payload.

    The field must be a string holding a positive finite number. Zero is
    not a price.
    """
    if not isinstance(payload, dict):
        raise RatePayloadError(f"Expected a JSON object, got {type(payload).__name__}")
    if price_field not in payload:
        raise RatePayloadError(f"Missing '{price_field}' field")

    raw = payload[price_field]
    if not isinstance(raw, str):
        raise RatePayloadError(
            f"Field '{price_field}' must be a string, got {type(raw).__name__}",
            raw_value=raw,
        )
    try:
        price = float(raw)
    except ValueError as e:
        raise RatePayloadError(
            f'Failed to convert the price string "{raw}" to a number',
            raw_value=raw,
        ) from e
    if not math.isfinite(price) or price <= 0:
        raise RatePayloadError(f"Price must be a positive number, got {raw}", raw_value=raw)
    return price


class BinanceTickerClient(RateSource):
    """
    Ticker price client over a requests Session.

    The blocking request runs in a worker thread so the caller's event loop
    keeps running while the network call is in flight. No timeout is set
    unless one is configured.
    """

    def __init__(
        self,
        url: str = "https://api.binance.com/api/v3/ticker/price",
        symbol: str = "BTCUSDT",
        price_field: str = "price",
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self._url = url
        self._symbol = symbol
        self._price_field = price_field
        self._timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: RateFeedSettings) -> "BinanceTickerClient":
        return cls(
            url=settings.url,
            symbol=settings.symbol,
            price_field=settings.price_field,
            timeout=settings.request_timeout_seconds,
        )

    def describe(self) -> str:
        return f"{self._url}?symbol={self._symbol}"

    def _get(self) -> Any:
        try:
            r = self._session.get(
                self._url,
                params={"symbol": self._symbol},
                timeout=self._timeout,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            raise RateTransportError(f"Price request failed: {e}") from e
        # raise_for_status lets redirects through
        if not 200 <= r.status_code < 300:
            raise RateTransportError(f"Price request returned HTTP {r.status_code}")
        try:
            return r.json()
        except ValueError as e:
            raise RatePayloadError(f"Response body is not valid JSON: {e}") from e

    def fetch_rate_sync(self) -> float:
        """Blocking variant of fetch_rate."""
        return parse_price(self._get(), self._price_field)

    async def fetch_rate(self) -> float:
        return await asyncio.to_thread(self.fetch_rate_sync)

    def close(self) -> None:
        self._session.close()
