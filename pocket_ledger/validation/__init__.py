"""Input validation package."""

from pocket_ledger.validation.amounts import (
    MAX_AMOUNT,
    MAX_DECIMAL_PLACES,
    AmountValidationError,
    parse_amount,
)

__all__ = [
    "AmountValidationError",
    "MAX_AMOUNT",
    "MAX_DECIMAL_PLACES",
    "parse_amount",
]
