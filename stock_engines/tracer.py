"""
stock_engines.tracer -- Engine invocation tracer emitting STOCK_ENGINE_TRACE.

Wraps a pure engine function and emits one structured log record per call
with the engine name, version, outcome and duration.  Reads nothing but
its arguments' names and mutates nothing.

Usage:
    from stock_engines.tracer import traced_engine

    @traced_engine("fifo_planner", "1.0")
    def plan_fifo_consumption(lots, quantity, ordering):
        ...
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable
from typing import Any

# Own namespace under the kernel root so configure_logging() picks it up
_logger = logging.getLogger("stock_kernel.engines.tracer")


def traced_engine(engine_name: str, engine_version: str) -> Callable:
    """Decorator that emits STOCK_ENGINE_TRACE for pure engine invocations."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.monotonic()
            outcome = "ok"
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                outcome = type(exc).__name__
                raise
            finally:
                _logger.info(
                    "STOCK_ENGINE_TRACE",
                    extra={
                        "trace_type": "STOCK_ENGINE_TRACE",
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "outcome": outcome,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        "function": func.__qualname__,
                    },
                )

        return wrapper

    return decorator
