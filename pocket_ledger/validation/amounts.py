"""
Amount Input Validation

Amounts typed by the user arrive as text. Both "." and "," are accepted as
the decimal separator.

IMPORTANT: Validation NEVER silently fixes issues. Text that is not a
positive amount is rejected with an explicit error instead of being
recorded as zero.
"""

from decimal import Decimal, InvalidOperation


MAX_DECIMAL_PLACES = 8
MAX_AMOUNT = Decimal("1000000000")


class AmountValidationError(ValueError):
    """User-supplied amount text is not a valid amount."""

    def __init__(self, raw_value: str, message: str):
        self.raw_value = raw_value
        super().__init__(message)


def parse_amount(text: str) -> Decimal:
    """
    Parse user input into a positive Decimal amount.

    Raises:
        AmountValidationError: If the text is empty, not a number, not
            positive, too large or more precise than the ledger stores
    """
    cleaned = (text or "").strip().replace(" ", "").replace(",", ".")
    if not cleaned:
        raise AmountValidationError(text, "Amount is required")
    if cleaned.count(".") > 1:
        raise AmountValidationError(text, f"Amount has more than one decimal separator: {text}")

    try:
        amount = Decimal(cleaned)
    except InvalidOperation as e:
        raise AmountValidationError(text, f"Amount is not a number: {text}") from e

    if not amount.is_finite():
        raise AmountValidationError(text, f"Amount must be a finite number: {text}")
    if amount <= 0:
        raise AmountValidationError(text, "Amount must be greater than zero")
    if amount > MAX_AMOUNT:
        raise AmountValidationError(text, f"Amount exceeds the maximum of {MAX_AMOUNT}")
    if -amount.as_tuple().exponent > MAX_DECIMAL_PLACES:
        raise AmountValidationError(
            text,
            f"Amount has more than {MAX_DECIMAL_PLACES} decimal places",
        )
    return amount
