"""
Bridge from the live rate feed to the analytics log.

The feed knows nothing about analytics. This observer subscribes like any
other consumer and records one `bitcoin_rate_update` event per published
value, so adding or removing analytics never touches the feed.
"""

import asyncio
from typing import Optional

import structlog

from pocket_ledger.analytics.event_log import AnalyticsEventLog
from pocket_ledger.models.analytics import AnalyticsEventBuilder
from pocket_ledger.services.broadcast import Subscription
from pocket_ledger.services.rates import LiveRateFeed


logger = structlog.get_logger(__name__)


class RateAnalyticsObserver:
    """Records every published rate as an analytics event."""

    def __init__(self, feed: LiveRateFeed, event_log: AnalyticsEventLog):
        self._feed = feed
        self._event_log = event_log
        self._subscription: Optional[Subscription[float]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Subscribe to the feed. Must be called from a running event loop."""
        if self.is_running:
            return
        self._subscription = self._feed.subscribe()
        self._task = asyncio.get_running_loop().create_task(
            self._consume(self._subscription),
            name="rate-analytics-observer",
        )

    async def stop(self) -> None:
        """Unsubscribe and record whatever was already delivered."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        task, self._task = self._task, None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def handle_rate(self, rate: float) -> None:
        await self._event_log.record(AnalyticsEventBuilder.rate_update(rate))

    async def _consume(self, subscription: Subscription[float]) -> None:
        async for rate in subscription:
            try:
                await self.handle_rate(rate)
            except Exception as e:
                logger.error("rate_analytics_failed", rate=rate, error=str(e), exc_info=True)
