"""Database layer - engine, base classes, types, and immutability listeners."""

from stock_kernel.db.base import UUID, Base, UUIDString
from stock_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from stock_kernel.db.types import Money, Rate, UTCDateTime, round_currency

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "UUIDString",
    "UUID",
    "Money",
    "Rate",
    "UTCDateTime",
    "round_currency",
]
