"""
Pure domain layer.

No ORM, no database, no I/O: the injectable clock and Decimal helpers.
"""

from stock_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SequentialClock,
    SystemClock,
)
from stock_kernel.domain.money import ZERO, round_currency, to_decimal

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "SequentialClock",
    "ZERO",
    "round_currency",
    "to_decimal",
]
