"""
Analytics Models for Pocket Ledger

Analytics events are append-only. Once recorded they are never modified or
removed; the log only grows and can be filtered by name and time range.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pocket_ledger.models.transaction import Transaction, as_utc


class AnalyticsEventName(str, Enum):
    """Names of the events the application itself emits."""
    RATE_UPDATE = "bitcoin_rate_update"
    TRANSACTION_CREATED = "transaction_created"
    DEMO_DATA_SEEDED = "demo_data_seeded"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalyticsEvent(BaseModel):
    """A single analytics event: a name, string parameters and a timestamp."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Event name"
    )
    parameters: dict[str, str] = Field(
        default_factory=dict,
        description="Event-specific string parameters"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    @field_validator("timestamp")
    @classmethod
    def normalize_to_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_name": self.name,
            "timestamp": self.timestamp.isoformat(),
            "parameters": dict(self.parameters),
        }


class AnalyticsEventBuilder:
    """
    Helper class to build analytics events with common patterns.

    Usage:
        event = AnalyticsEventBuilder.rate_update(117290.61)
        event = AnalyticsEventBuilder.transaction_created(transaction)
    """

    @staticmethod
    def format_rate(rate: float) -> str:
        return f"{rate:.2f}"

    @staticmethod
    def rate_update(
        rate: float,
        timestamp: Optional[datetime] = None,
    ) -> AnalyticsEvent:
        return AnalyticsEvent(
            name=AnalyticsEventName.RATE_UPDATE.value,
            parameters={"rate": AnalyticsEventBuilder.format_rate(rate)},
            timestamp=timestamp or _utcnow(),
        )

    @staticmethod
    def transaction_created(transaction: Transaction) -> AnalyticsEvent:
        return AnalyticsEvent(
            name=AnalyticsEventName.TRANSACTION_CREATED.value,
            parameters={
                "transaction_id": str(transaction.id),
                "kind": transaction.kind.value,
                "category": transaction.category.value,
                "amount": str(transaction.amount),
            },
        )

    @staticmethod
    def demo_data_seeded(count: int) -> AnalyticsEvent:
        return AnalyticsEvent(
            name=AnalyticsEventName.DEMO_DATA_SEEDED.value,
            parameters={"count": str(count)},
        )
