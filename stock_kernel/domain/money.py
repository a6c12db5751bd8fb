"""
Decimal helpers for monetary amounts.

Pure functions, no ORM.  Monetary values are always ``Decimal``; floats
accepted at the boundary are converted through ``str`` so that 0.1 stays
0.1.
"""

from decimal import ROUND_HALF_UP, Decimal

CURRENCY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_currency(
    amount: Decimal,
    decimal_places: int = CURRENCY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary amount half-up to ``decimal_places``.

    Only call this at the point of persistence.  Per-unit or per-lot
    intermediate values stay unrounded.

        >>> round_currency(Decimal("0.125"))
        Decimal('0.13')
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return Decimal(amount).quantize(quantum, rounding=rounding)


def to_decimal(value: Decimal | int | float | str | None) -> Decimal | None:
    """Coerce an int/float/str/Decimal input to Decimal, passing None through."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)
