"""
Module: stock_kernel.db.types
Responsibility: Column types and rounding helpers shared by every model and
    service.  Centralizes monetary precision so that lot costs, COGS and
    exchange rates are stored and rounded identically everywhere.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/ or outer layers.

Invariants enforced:
    - No floats for money.  Every monetary column is Numeric(38, 9); rates are
      Numeric(38, 18).
    - Timestamps are always timezone-aware on read, whatever the backend.
      SQLite drops tzinfo on storage; UTCDateTime restores UTC on load.
    - round_currency() (domain/money.py) is the single rounding entry point
      (ROUND_HALF_UP); it is re-exported here for model-side callers.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated

from sqlalchemy import DateTime, Numeric
from sqlalchemy.types import TypeDecorator

from stock_kernel.domain.money import (  # noqa: F401  (re-exported)
    CURRENCY_DECIMAL_PLACES,
    DEFAULT_ROUNDING,
    round_currency,
    to_decimal,
)

# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Exchange rate (USD -> source currency)
Rate = Annotated[Decimal, Numeric(38, 18)]


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware DateTime that always loads as UTC.

    PostgreSQL stores ``timestamptz`` natively.  SQLite stores naive text;
    values written here are normalized to UTC first, so a naive value read
    back is UTC by construction.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
