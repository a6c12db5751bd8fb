"""
Process start-up for the stock ledger.

Responsibility:
    Turn a ``LedgerConfig`` into a running process: structured logging at
    the configured level, the SQLAlchemy engine and pool, the immutability
    listeners, and (optionally) the schema.

Usage::

    config = init_ledger()               # packaged defaults + environment
    with session_scope() as session:
        controller = build_controller(session, config=config)
        controller.receive_purchase_order(po_id)
"""

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from stock_config import LedgerConfig, get_active_config, set_active_config
from stock_kernel.db.engine import create_tables, init_engine_from_url
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.domain.clock import Clock
from stock_kernel.logging_config import configure_logging, get_logger
from stock_services.order_lifecycle_service import OrderLifecycleController

logger = get_logger("services.bootstrap")


def init_ledger(
    config: LedgerConfig | None = None,
    create_schema: bool = False,
) -> LedgerConfig:
    """
    Configure logging and the database for this process.

    Args:
        config: Settings to use.  Defaults to ``get_active_config()``; a
            supplied config becomes the active one.
        create_schema: Create missing tables (local runs and tests).

    Returns:
        The active LedgerConfig.
    """
    if config is None:
        config = get_active_config()
    else:
        set_active_config(config)

    configure_logging(level=config.log_level)

    engine: Engine = init_engine_from_url(
        config.database_url,
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
    )
    register_immutability_listeners()
    if create_schema:
        create_tables()

    logger.info(
        "stock_ledger_initialized",
        extra={
            "dialect": engine.dialect.name,
            "schema_created": create_schema,
            "missing_arrival_policy": config.missing_arrival_policy,
        },
    )
    return config


def build_controller(
    session: Session,
    clock: Clock | None = None,
    config: LedgerConfig | None = None,
) -> OrderLifecycleController:
    """An OrderLifecycleController bound to ``session`` and the active config."""
    return OrderLifecycleController(session, clock, config or get_active_config())
