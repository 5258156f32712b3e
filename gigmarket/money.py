"""Money conversion helpers.

Amounts are stored as integer cents; the public API speaks Decimal.
"""

from decimal import Decimal, InvalidOperation
from typing import Union

CENT = Decimal("0.01")

Amount = Union[Decimal, int, str]


def to_cents(amount: Amount) -> int:
    """Convert a Decimal-like amount to integer cents.

    Floats are refused; more than two decimal places raises ValueError.
    """
    if isinstance(amount, float):
        raise ValueError("Use Decimal or str for money, not float")
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    if value != value.quantize(CENT):
        raise ValueError(f"Amount has more than two decimal places: {amount}")
    return int(value * 100)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents to a two-place Decimal."""
    return (Decimal(cents) / 100).quantize(CENT)


def fee_cents(amount_cents: int, rate: Decimal) -> int:
    """Platform fee for an amount, rounded down to whole cents."""
    if rate <= 0:
        return 0
    return int(Decimal(amount_cents) * rate)
