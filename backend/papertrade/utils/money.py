"""
Decimal helpers for monetary arithmetic.

Every balance, price and total in the ledger goes through these helpers so
that binary floating point never touches money.
"""

import math
from decimal import ROUND_HALF_EVEN, Context, Decimal, InvalidOperation
from typing import Any

MONEY_CONTEXT = Context(prec=28, rounding=ROUND_HALF_EVEN)
ZERO = Decimal("0")
HUNDRED = Decimal("100")


class Money:
    """Utility class for decimal money operations."""

    @staticmethod
    def to_decimal(value: Any) -> Decimal:
        """
        Convert a numeric value to Decimal.

        Floats are converted through their shortest repr, so 96.5 becomes
        Decimal("96.5") rather than its binary expansion.

        Raises:
            ValueError: if the value is not numeric
        """
        if isinstance(value, bool):
            raise ValueError(f"not a monetary value: {value!r}")
        if isinstance(value, Decimal):
            return value
        if isinstance(value, int):
            return Decimal(value)
        if isinstance(value, float):
            return Decimal(repr(value))
        if isinstance(value, str):
            try:
                return Decimal(value.strip())
            except InvalidOperation as exc:
                raise ValueError(f"not a monetary value: {value!r}") from exc
        raise ValueError(f"not a monetary value: {value!r}")

    @staticmethod
    def parse_price(value: Any) -> Decimal | None:
        """Return the price as Decimal when it is a finite number above zero, else None."""
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            return None
        if isinstance(value, float) and not math.isfinite(value):
            return None
        price = Money.to_decimal(value)
        if not price.is_finite() or price <= ZERO:
            return None
        return price

    @staticmethod
    def multiply(price: Decimal, quantity: int) -> Decimal:
        return MONEY_CONTEXT.multiply(price, Decimal(quantity))

    @staticmethod
    def add(a: Decimal, b: Decimal) -> Decimal:
        return MONEY_CONTEXT.add(a, b)

    @staticmethod
    def subtract(a: Decimal, b: Decimal) -> Decimal:
        return MONEY_CONTEXT.subtract(a, b)

    @staticmethod
    def weighted_average(old_price: Decimal, old_quantity: int, fill_price: Decimal, fill_quantity: int) -> Decimal:
        """Volume-weighted average cost after adding fill_quantity shares at fill_price."""
        total_quantity = old_quantity + fill_quantity
        if total_quantity <= 0:
            raise ValueError("total quantity must be positive")
        old_value = Money.multiply(old_price, old_quantity)
        new_value = Money.multiply(fill_price, fill_quantity)
        return MONEY_CONTEXT.divide(MONEY_CONTEXT.add(old_value, new_value), Decimal(total_quantity))

    @staticmethod
    def percentage(part: Decimal, whole: Decimal) -> Decimal:
        """part / whole * 100, or 0 when whole is zero."""
        if whole == ZERO:
            return ZERO
        return MONEY_CONTEXT.multiply(MONEY_CONTEXT.divide(part, whole), HUNDRED)

    @staticmethod
    def total(values: list[Decimal]) -> Decimal:
        out = ZERO
        for value in values:
            out = MONEY_CONTEXT.add(out, value)
        return out
