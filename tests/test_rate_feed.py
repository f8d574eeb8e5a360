"""
Tests for the live reference price feed.

Loop tests use short intervals and poll for the expected state instead of
sleeping for fixed amounts of time.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from pocket_ledger.analytics import AnalyticsEventLog, RateAnalyticsObserver
from pocket_ledger.services.rates import (
    MIN_UPDATE_INTERVAL,
    LiveRateFeed,
    RatePayloadError,
    RateTransportError,
)


EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)
FAR_FUTURE = datetime(2100, 1, 1, tzinfo=timezone.utc)


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class TestRefreshOnce:
    """Tests for a single iteration."""

    def test_success_caches_and_publishes(self, fake_source, memory_cache):
        """Test the live path."""
        fake_source.results = [117290.61]

        async def scenario():
            feed = LiveRateFeed(fake_source, memory_cache)
            subscription = feed.subscribe()
            published = await feed.refresh_once()
            return published, subscription.drain(), feed.last_value

        assert asyncio.run(scenario()) == (117290.61, [117290.61], 117290.61)
        assert memory_cache.saved == [117290.61]

    @pytest.mark.parametrize("error", [
        RateTransportError("offline"),
        RatePayloadError('Failed to convert the price string "abc" to a number', "abc"),
    ])
    def test_failure_publishes_cached_value(self, fake_source, memory_cache, error):
        """Test the fallback path for transport and payload failures."""
        fake_source.results = [error]
        memory_cache.value = 100.0

        async def scenario():
            feed = LiveRateFeed(fake_source, memory_cache)
            subscription = feed.subscribe()
            published = await feed.refresh_once()
            return published, subscription.drain()

        assert asyncio.run(scenario()) == (100.0, [100.0])
        assert memory_cache.saved == []

    def test_cold_failure_publishes_nothing(self, fake_source, memory_cache):
        """Test that a failure with an empty cache publishes nothing."""
        async def scenario():
            feed = LiveRateFeed(fake_source, memory_cache)
            subscription = feed.subscribe()
            published = await feed.refresh_once()
            return published, subscription.pending, feed.last_value

        assert asyncio.run(scenario()) == (None, 0, None)

    def test_cache_read_failure_publishes_nothing(self, fake_source, memory_cache):
        """Test that an unreadable cache is treated as empty."""
        memory_cache.fail_load = True

        async def scenario():
            feed = LiveRateFeed(fake_source, memory_cache)
            subscription = feed.subscribe()
            return await feed.refresh_once(), subscription.pending

        assert asyncio.run(scenario()) == (None, 0)

    def test_cache_save_failure_still_publishes(self, fake_source, memory_cache):
        """Test that a failed cache write does not hold back the live value."""
        fake_source.results = [5.0]
        memory_cache.fail_save = True

        async def scenario():
            feed = LiveRateFeed(fake_source, memory_cache)
            subscription = feed.subscribe()
            await feed.refresh_once()
            return subscription.drain()

        assert asyncio.run(scenario()) == [5.0]

    def test_fallback_after_success_uses_last_saved(self, fake_source, memory_cache):
        """Test 'success then failure' republishes the saved value."""
        fake_source.results = [117290.61, RateTransportError("offline")]

        async def scenario():
            feed = LiveRateFeed(fake_source, memory_cache)
            subscription = feed.subscribe()
            await feed.refresh_once()
            await feed.refresh_once()
            return subscription.drain()

        assert asyncio.run(scenario()) == [117290.61, 117290.61]
        assert memory_cache.saved == [117290.61]


class TestFeedLifecycle:
    """Tests for start/stop and the polling loop."""

    def test_interval_is_clamped(self, fake_source, memory_cache):
        """Test that a zero interval cannot produce a busy loop."""
        feed = LiveRateFeed(fake_source, memory_cache, update_interval=0)
        assert feed.update_interval == MIN_UPDATE_INTERVAL

    def test_default_interval(self, fake_source, memory_cache):
        """Test the default refresh interval."""
        assert LiveRateFeed(fake_source, memory_cache).update_interval == 15.0

    def test_start_fetches_immediately(self, fake_source, memory_cache):
        """Test that the first value arrives without waiting an interval."""
        fake_source.results = [1.5]

        async def scenario():
            feed = LiveRateFeed(fake_source, memory_cache, update_interval=60)
            subscription = feed.subscribe()
            feed.start()
            value = await subscription.get(timeout=2)
            await feed.aclose()
            return value

        assert asyncio.run(scenario()) == 1.5

    def test_double_start_runs_one_loop(self, fake_source, memory_cache):
        """Test that start() while running is a no-op."""
        fake_source.results = [1.0, 2.0, 3.0]

        async def scenario():
            feed = LiveRateFeed(fake_source, memory_cache, update_interval=60)
            feed.start()
            feed.start()
            await wait_until(lambda: fake_source.calls >= 1)
            await asyncio.sleep(0.05)
            running = feed.is_running
            await feed.aclose()
            return running, fake_source.calls, feed.is_running

        assert asyncio.run(scenario()) == (True, 1, False)

    def test_stop_when_idle_is_noop(self, fake_source, memory_cache):
        """Test stop() without start()."""
        feed = LiveRateFeed(fake_source, memory_cache)
        feed.stop()
        assert feed.is_running is False

    def test_loop_keeps_running_through_failures(self, fake_source, memory_cache):
        """Test failure, fallback and recovery across iterations."""
        fake_source.results = [RateTransportError("offline"), 5.0]
        memory_cache.value = 4.0

        async def scenario():
            feed = LiveRateFeed(fake_source, memory_cache, update_interval=0.01)
            subscription = feed.subscribe()
            feed.start()
            values = [await subscription.get(timeout=2), await subscription.get(timeout=2)]
            await feed.aclose()
            return values

        assert asyncio.run(scenario()) == [4.0, 5.0]

    def test_stop_discards_in_flight_fetch(self, gated_source_factory, memory_cache):
        """Test that a fetch completing after stop() is neither cached nor published."""
        async def scenario():
            source = gated_source_factory(99.0)
            feed = LiveRateFeed(source, memory_cache, update_interval=60)
            subscription = feed.subscribe()

            in_flight = asyncio.create_task(feed.refresh_once())
            await source.started.wait()
            feed.start()
            feed.stop()
            source.gate.set()

            result = await in_flight
            await asyncio.sleep(0.02)
            return result, subscription.pending, feed.last_value

        assert asyncio.run(scenario()) == (None, 0, None)
        assert memory_cache.saved == []

    def test_stopped_loop_publishes_nothing(self, gated_source_factory, memory_cache):
        """Test that the loop's own pending fetch is dropped on stop()."""
        async def scenario():
            source = gated_source_factory(99.0)
            feed = LiveRateFeed(source, memory_cache, update_interval=60)
            subscription = feed.subscribe()
            feed.start()
            await source.started.wait()
            feed.stop()
            source.gate.set()
            await asyncio.sleep(0.02)
            return subscription.pending, feed.is_running

        assert asyncio.run(scenario()) == (0, False)
        assert memory_cache.saved == []

    def test_refresh_during_loop_fetch_is_skipped(self, gated_source_factory, memory_cache):
        """Test that a manual refresh never overlaps the loop's fetch."""
        async def scenario():
            source = gated_source_factory(99.0)
            feed = LiveRateFeed(source, memory_cache, update_interval=60)
            subscription = feed.subscribe()
            feed.start()
            await source.started.wait()

            manual = await feed.refresh_once()
            source.gate.set()
            value = await subscription.get(timeout=2)
            await asyncio.sleep(0.02)
            await feed.aclose()
            return manual, value, subscription.pending, source.calls

        assert asyncio.run(scenario()) == (None, 99.0, 0, 1)
        assert memory_cache.saved == [99.0]

    def test_restart_after_stop(self, fake_source, memory_cache):
        """Test Idle -> Running -> Idle -> Running."""
        fake_source.results = [1.0, 2.0]

        async def scenario():
            feed = LiveRateFeed(fake_source, memory_cache, update_interval=60)
            subscription = feed.subscribe()
            feed.start()
            first = await subscription.get(timeout=2)
            await feed.aclose()
            feed.start()
            second = await subscription.get(timeout=2)
            await feed.aclose()
            return first, second

        assert asyncio.run(scenario()) == (1.0, 2.0)


class TestFeedWithAnalytics:
    """End-to-end: feed, price cache and analytics observer together."""

    def test_live_value_is_cached_published_and_tracked(self, fake_source, price_cache):
        """Test one successful refresh through every collaborator."""
        fake_source.results = [117290.61]

        async def scenario():
            feed = LiveRateFeed(fake_source, price_cache, update_interval=60)
            event_log = AnalyticsEventLog()
            observer = RateAnalyticsObserver(feed, event_log)
            subscription = feed.subscribe()

            observer.start()
            feed.start()
            value = await subscription.get(timeout=2)
            await wait_until(lambda: len(event_log) == 1)
            await feed.aclose()
            await observer.stop()

            cached = await price_cache.load()
            events = await event_log.events(EPOCH, FAR_FUTURE)
            return value, cached, events

        value, cached, events = asyncio.run(scenario())
        assert value == 117290.61
        assert cached == 117290.61
        assert [(e.name, e.parameters) for e in events] == [
            ("bitcoin_rate_update", {"rate": "117290.61"}),
        ]

    def test_fallback_values_are_tracked_too(self, fake_source, memory_cache):
        """Test that cached values are reported like live ones."""
        memory_cache.value = 100.0

        async def scenario():
            feed = LiveRateFeed(fake_source, memory_cache)
            event_log = AnalyticsEventLog()
            observer = RateAnalyticsObserver(feed, event_log)
            observer.start()
            await feed.refresh_once()
            await wait_until(lambda: len(event_log) == 1)
            await observer.stop()
            return await event_log.events(EPOCH, FAR_FUTURE)

        events = asyncio.run(scenario())
        assert events[0].parameters == {"rate": "100.00"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
