"""
Configuration schema (``stock_config.schema``).

Responsibility
--------------
Typed, frozen description of every runtime setting of the stock ledger:
database connection, FIFO ordering policy, rounding precision, and logging.

Invariants enforced
-------------------
* Every field is validated in ``__post_init__``; an invalid value raises
  ``ValueError`` naming the field.
* Instances are frozen.  A change of configuration means a new instance.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Self

VALID_MISSING_ARRIVAL_POLICIES = {"epoch", "created_at", "last"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

DEFAULT_DATABASE_URL = "sqlite:///stock_ledger.db"


@dataclass(frozen=True)
class LedgerConfig:
    """
    Runtime configuration for the stock ledger.

    missing_arrival_policy decides where a lot with no resolvable arrival
    date sorts in FIFO order:

        epoch       sorts first, as if it arrived at the Unix epoch
        created_at  sorts by the lot's own creation time
        last        sorts after every dated lot

    use_lot_arrival_fallback lets a lot with no purchase order link (void
    restocks, manual lots) sort by its own arrival_date.  This departs from
    strict purchase-order-arrival ordering, where such lots have no arrival
    date and fall under missing_arrival_policy ("epoch": consumed first).
    Set it to False for the strict ordering.
    """

    database_url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30

    missing_arrival_policy: str = "epoch"
    # True: restocked units queue by their restock date, not at epoch zero.
    use_lot_arrival_fallback: bool = True

    cogs_decimal_places: int = 2
    cost_decimal_places: int = 2

    default_actor: str = "system"
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.database_url:
            raise ValueError("database_url must not be empty")

        if self.pool_size <= 0:
            raise ValueError("pool_size must be positive")
        if self.max_overflow < 0:
            raise ValueError("max_overflow cannot be negative")
        if self.pool_timeout <= 0:
            raise ValueError("pool_timeout must be positive")

        if self.missing_arrival_policy not in VALID_MISSING_ARRIVAL_POLICIES:
            raise ValueError(
                f"missing_arrival_policy must be one of "
                f"{sorted(VALID_MISSING_ARRIVAL_POLICIES)}, "
                f"got '{self.missing_arrival_policy}'"
            )

        for name in ("cogs_decimal_places", "cost_decimal_places"):
            places = getattr(self, name)
            if places < 0 or places > 9:
                raise ValueError(f"{name} must be between 0 and 9, got {places}")

        if not self.default_actor:
            raise ValueError("default_actor must not be empty")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, "
                f"got '{self.log_level}'"
            )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the built-in defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """
        Create config from a dictionary (e.g. parsed YAML).

        Raises:
            ValueError: on an unknown key or an invalid value.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
