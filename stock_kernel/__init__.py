"""
Stock Kernel

The persistence core of the stock ledger:
- ORM models for variants, lots, orders and the stock change log
- Append-only audit entries and undeletable lots
- Typed exceptions, structured logging and an injectable clock
- Read-only selectors that derive available stock from lots
"""

__version__ = "0.1.0"
