"""Shared helpers for the stock ledger tests."""

from datetime import datetime, timezone


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)
