"""Analytics package."""

from pocket_ledger.analytics.event_log import AnalyticsEventLog
from pocket_ledger.analytics.rate_observer import RateAnalyticsObserver

__all__ = ["AnalyticsEventLog", "RateAnalyticsObserver"]
