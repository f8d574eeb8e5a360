"""
Live Reference Price Feed

Polls a RateSource on a fixed interval and broadcasts every price it
obtains. When a fetch fails, the last good price is read back from the
PriceCache and broadcast instead; when there is no cached price either,
the iteration publishes nothing.

Lifecycle: Idle -> Running -> Idle. `start` while running and `stop` while
idle are no-ops, so there is never more than one loop.

Cancellation is logical. Every start/stop bumps a generation counter and a
result is only cached and published if it belongs to the current
generation, so a fetch that completes after `stop` is dropped.

Refreshes never overlap: an iteration or `refresh_once` requested while
another refresh is in flight is skipped. A cache write already handed to its
worker thread when `stop` is called still completes; it only ever holds a
value fetched before `stop`.
"""

import asyncio
from typing import Optional

import structlog

from pocket_ledger.services.broadcast import Broadcaster, Subscription
from pocket_ledger.services.rates.client import RateFetchError, RateSource
from pocket_ledger.services.storage import PriceCacheInterface, StorageError


logger = structlog.get_logger(__name__)

DEFAULT_UPDATE_INTERVAL = 15.0
MIN_UPDATE_INTERVAL = 0.01


class LiveRateFeed:
    """
    Resilient polling feed for the reference price.

    Subscribers receive every value published after they subscribed, in
    order. Live and cached values are published the same way; the log
    records which path produced each one.
    """

    def __init__(
        self,
        source: RateSource,
        cache: PriceCacheInterface,
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
    ):
        self._source = source
        self._cache = cache
        if update_interval < MIN_UPDATE_INTERVAL:
            logger.warning(
                "rate_update_interval_clamped",
                requested=update_interval,
                applied=MIN_UPDATE_INTERVAL,
            )
            update_interval = MIN_UPDATE_INTERVAL
        self._update_interval = update_interval
        self._rates: Broadcaster[float] = Broadcaster("rates")
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._refresh_lock = asyncio.Lock()
        self._last_value: Optional[float] = None

    @property
    def update_interval(self) -> float:
        return self._update_interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_value(self) -> Optional[float]:
        """Most recent published value. Informational only, never replayed."""
        return self._last_value

    def subscribe(self) -> Subscription[float]:
        """Receive every price published from now on."""
        return self._rates.subscribe()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """
        Start polling in the background and return immediately.

        The first fetch happens right away. Must be called from a running
        event loop.
        """
        if self.is_running:
            logger.debug("rate_feed_already_running")
            return

        self._generation += 1
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(
            self._run(self._generation),
            name="live-rate-feed",
        )
        logger.info(
            "rate_feed_started",
            source=self._source.describe(),
            interval=self._update_interval,
        )

    def stop(self) -> None:
        """
        Cancel the polling loop without waiting for it to exit.

        No value produced by the stopped loop is published afterwards.
        """
        if self._task is None:
            return
        self._generation += 1
        self._task.cancel()
        self._task = None
        logger.info("rate_feed_stopped")

    async def aclose(self) -> None:
        """Stop polling and wait until the loop has exited."""
        task = self._task
        self.stop()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    async def _run(self, generation: int) -> None:
        while generation == self._generation:
            try:
                await self._refresh(generation)
            except Exception as e:
                # A broken source must not end the loop
                logger.error("rate_refresh_crashed", error=str(e), exc_info=True)
            await asyncio.sleep(self._update_interval)

    async def refresh_once(self) -> Optional[float]:
        """
        Run one iteration outside the loop: fetch, cache and publish, or
        fall back to the cache.

        Skipped when another refresh is in flight.

        Returns:
            The published value, or None if nothing was published
        """
        return await self._refresh(self._generation)

    async def _refresh(self, generation: int) -> Optional[float]:
        if self._refresh_lock.locked():
            logger.info("rate_refresh_skipped", reason="refresh_in_flight")
            return None
        async with self._refresh_lock:
            return await self._refresh_locked(generation)

    async def _refresh_locked(self, generation: int) -> Optional[float]:
        try:
            rate = await self._source.fetch_rate()
        except RateFetchError as e:
            logger.warning(
                "rate_fetch_failed",
                source=self._source.describe(),
                error_type=type(e).__name__,
                error=str(e),
            )
            return await self._publish_fallback(generation)

        if generation != self._generation:
            logger.info("rate_result_discarded", rate=rate, reason="feed_stopped")
            return None

        try:
            await self._cache.save(rate)
        except StorageError as e:
            logger.warning("rate_cache_save_failed", rate=rate, error=str(e))

        return self._publish(rate, generation, source="live")

    async def _publish_fallback(self, generation: int) -> Optional[float]:
        try:
            cached = await self._cache.load()
        except StorageError as e:
            logger.warning("rate_cache_load_failed", error=str(e))
            cached = None

        if cached is None:
            logger.info("rate_publish_skipped", reason="no_cached_value")
            return None
        return self._publish(cached, generation, source="cache")

    def _publish(self, rate: float, generation: int, source: str) -> Optional[float]:
        if generation != self._generation:
            logger.info("rate_result_discarded", rate=rate, reason="feed_stopped")
            return None
        self._last_value = rate
        delivered = self._rates.publish(rate)
        if source == "live":
            logger.info("rate_published", rate=rate, subscribers=delivered)
        else:
            logger.info("rate_fallback_published", rate=rate, subscribers=delivered)
        return rate
