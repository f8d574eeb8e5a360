"""
Core Ledger Models for Pocket Ledger

These models define the strict schemas for ledger data flowing through the
system. A Transaction is immutable once created: there is no update or delete
path anywhere in the application.

The day bucket is derived once, at creation time, in the ledger's reference
calendar and stored next to the record. Grouping and sorting use the stored
value and never recompute it.
"""

from datetime import datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """
    Direction of a transaction.

    Credits add to the balance and debits subtract from it. UNKNOWN records
    stay in the ledger and in the list, but never count towards the balance.
    """
    CREDIT = "credit"
    DEBIT = "debit"
    UNKNOWN = "unknown"


class TransactionCategory(str, Enum):
    """Display bucket for a transaction. Has no effect on aggregation."""
    GROCERIES = "groceries"
    TAXI = "taxi"
    ELECTRONICS = "electronics"
    RESTAURANT = "restaurant"
    OTHER = "other"

    @property
    def title(self) -> str:
        return self.value.capitalize()


# =============================================================================
# CALENDAR HELPERS
# =============================================================================

def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(value: datetime, zone: tzinfo) -> datetime:
    """
    Truncate an instant to the start of its calendar day in `zone`.

    Returns the result as aware UTC so that day buckets from any zone
    compare and sort as instants.
    """
    local = as_utc(value).astimezone(zone)
    midnight = datetime.combine(local.date(), time.min, tzinfo=zone)
    return midnight.astimezone(timezone.utc)


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    A single ledger record.

    `sequence` is the storage insertion order. It is assigned when the
    record is committed and breaks ties between identical timestamps.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Opaque unique identifier"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        max_digits=18,
        decimal_places=8,
        description="Non-negative magnitude in the ledger's unit"
    )
    kind: TransactionKind
    category: TransactionCategory = TransactionCategory.OTHER
    timestamp: datetime = Field(
        ...,
        description="When the transaction happened (stored as UTC)"
    )
    day_bucket: datetime = Field(
        ...,
        description="Start of the timestamp's calendar day (stored as UTC)"
    )
    sequence: Optional[int] = Field(
        default=None,
        ge=1,
        description="Storage insertion order"
    )

    @field_validator("timestamp", "day_bucket")
    @classmethod
    def normalize_to_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @model_validator(mode="after")
    def validate_day_bucket(self) -> "Transaction":
        """The bucket must open the calendar day that contains the timestamp."""
        # 25h covers the long day of a DST transition
        if not (self.day_bucket <= self.timestamp < self.day_bucket + timedelta(hours=25)):
            raise ValueError("Day bucket must be the start of the timestamp's day")
        return self

    @classmethod
    def create(
        cls,
        kind: TransactionKind,
        amount: Decimal,
        category: TransactionCategory,
        timestamp: datetime,
        zone: tzinfo = timezone.utc,
    ) -> "Transaction":
        """Build a new record, deriving its day bucket in `zone`."""
        return cls(
            kind=kind,
            amount=amount,
            category=category,
            timestamp=timestamp,
            day_bucket=start_of_day(timestamp, zone),
        )

    @property
    def balance_effect(self) -> Decimal:
        """Contribution to the aggregate balance."""
        if self.kind == TransactionKind.CREDIT:
            return self.amount
        if self.kind == TransactionKind.DEBIT:
            return -self.amount
        return Decimal("0")

    @property
    def signed_amount(self) -> Decimal:
        """Amount as shown in a list: debits negative, everything else as is."""
        return -self.amount if self.kind == TransactionKind.DEBIT else self.amount

    @property
    def sort_key(self) -> tuple[datetime, datetime, int]:
        """
        Key of the ledger's display order, to be sorted descending:
        newest day first, newest timestamp first, latest insertion first.
        """
        return (self.day_bucket, self.timestamp, self.sequence or 0)
