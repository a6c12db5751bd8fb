"""Tests for the structured logging system (stock_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "stock_kernel.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        lot_id = uuid4()
        get_logger("test").info(
            "lot_consumed", extra={"lot_id": lot_id, "unit_cost_usd": Decimal("3.33")}
        )

        record = _parse_log(stream)
        assert record["lot_id"] == str(lot_id)
        assert record["unit_cost_usd"] == "3.33"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(actor="Ada", order_id="ord-1")
        get_logger("test").info("sale")

        record = _parse_log(stream)
        assert record["actor"] == "Ada"
        assert record["order_id"] == "ord-1"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare")

        record = _parse_log(stream)
        assert "actor" not in record
        assert "order_id" not in record

    def test_ledger_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InsufficientStockError("v-1", "Shirt - SKU: S1", available=2, requested=5)
        except InsufficientStockError:
            get_logger("test").warning("rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_available"] == 2
        assert record["exc_requested"] == 5
        assert "traceback" in record

    def test_debug_filtered_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.debug("second")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_clear(self):
        LogContext.set(actor="x", variant_id="v")
        assert LogContext.get_all() == {"actor": "x", "variant_id": "v"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(actor="outer")
        with LogContext.bind(actor="inner", order_id=uuid4()):
            assert LogContext.get_all()["actor"] == "inner"
        assert LogContext.get_all() == {"actor": "outer"}

    def test_bind_ignores_none(self):
        with LogContext.bind(actor=None, correlation_id="c"):
            assert LogContext.get_all() == {"correlation_id": "c"}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)

        handlers = logging.getLogger("stock_kernel").handlers
        assert h1 in handlers
        assert h2 not in handlers

    def test_later_call_changes_level(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler, level="INFO")
        configure_logging(level="WARNING")

        assert logging.getLogger("stock_kernel").level == logging.WARNING

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="debug")
        get_logger("deep.nested").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "stock_kernel.deep.nested"
