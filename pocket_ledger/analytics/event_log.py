"""
Analytics Event Log

Significant application events are recorded here. This provides:
1. A queryable history of rate updates and ledger entries
2. A structured log line for every event, for debugging

The log:
- Is async and safe to call from concurrent tasks
- Is append-only: events are never modified or removed
- Filters by event name and inclusive time range
"""

import asyncio
from datetime import datetime
from typing import Optional

import structlog

from pocket_ledger.models.analytics import AnalyticsEvent
from pocket_ledger.models.transaction import as_utc


class AnalyticsEventLog:
    """
    In-memory analytics event store.

    Every event is also written to the structured log, so nothing is lost
    from the diagnostics stream when the process exits.
    """

    def __init__(self):
        self._events: list[AnalyticsEvent] = []
        self._lock = asyncio.Lock()
        self._logger = structlog.get_logger(__name__)

    async def record(self, event: AnalyticsEvent) -> AnalyticsEvent:
        """Append a prebuilt event."""
        async with self._lock:
            self._events.append(event)
        self._logger.info("analytics_event", **event.to_log_dict())
        return event

    async def track_event(
        self,
        name: str,
        parameters: Optional[dict[str, str]] = None,
        timestamp: Optional[datetime] = None,
    ) -> AnalyticsEvent:
        """
        Record an event.

        Args:
            name: Event name
            parameters: String-valued parameters
            timestamp: When it happened (defaults to now)
        """
        fields = {"name": name, "parameters": parameters or {}}
        if timestamp is not None:
            fields["timestamp"] = timestamp
        return await self.record(AnalyticsEvent(**fields))

    async def events(
        self,
        start: datetime,
        end: datetime,
        name: Optional[str] = None,
    ) -> list[AnalyticsEvent]:
        """
        Events with start <= timestamp <= end, in recording order.

        Args:
            start: Range start (inclusive)
            end: Range end (inclusive)
            name: Only events with exactly this name, if given
        """
        start, end = as_utc(start), as_utc(end)
        async with self._lock:
            snapshot = list(self._events)
        matching = [e for e in snapshot if start <= e.timestamp <= end]
        if name is not None:
            matching = [e for e in matching if e.name == name]
        return matching

    def __len__(self) -> int:
        return len(self._events)
