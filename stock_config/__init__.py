"""
stock_config -- runtime configuration for the stock ledger.

The single runtime entry point is ``get_active_config()``.  Services take a
``LedgerConfig`` at construction and never read files or the environment
themselves.
"""

from stock_config.loader import get_active_config, load_config, set_active_config
from stock_config.schema import LedgerConfig

__all__ = [
    "LedgerConfig",
    "get_active_config",
    "load_config",
    "set_active_config",
]
