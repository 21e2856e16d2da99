"""Tests for the structured logging system (settlement_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from settlement_kernel.domain.enums import SettlementCycle
from settlement_kernel.exceptions import InvalidPeriodKeyError
from settlement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


def _parse_log(stream: StringIO) -> dict:
    return _parse_all_logs(stream)[0]


# ---------------------------------------------------------------------------
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "settlement_kernel.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        order_id = uuid4()
        get_logger("test").info(
            "commission_payment_applied",
            extra={"applied_amount": Decimal("12.50"), "order_id": order_id, "updated_count": 2},
        )

        record = _parse_log(stream)
        assert record["applied_amount"] == "12.50"
        assert record["order_id"] == str(order_id)
        assert record["updated_count"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", period_key="06/2025")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["period_key"] == "06/2025"

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InvalidPeriodKeyError("13/2025", "MONTHLY")
        except InvalidPeriodKeyError:
            get_logger("test").error("bad_key", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "InvalidPeriodKeyError"
        assert record["exc_code"] == "INVALID_PERIOD_KEY"
        assert record["exc_period_key"] == "13/2025"
        assert record["exc_cycle"] == "MONTHLY"
        assert "traceback" in record


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_bind_restores_previous_values(self):
        LogContext.set(operation="outer")
        with LogContext.bind(operation="inner", pharmacy_id=uuid4()):
            assert LogContext.get_all()["operation"] == "inner"
            assert isinstance(LogContext.get_all()["pharmacy_id"], str)
        assert LogContext.get_all() == {"operation": "outer"}

    def test_bind_ignores_none(self):
        with LogContext.bind(actor_id=None):
            assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="not_a_field"):
            LogContext.bind(not_a_field="x")
        with pytest.raises(TypeError):
            LogContext.set(pharmacy="x")
        assert LogContext.get_all() == {}

    def test_enum_stored_by_value(self):
        with LogContext.bind(cycle=SettlementCycle.WEEKLY):
            assert LogContext.get_all() == {"cycle": "WEEKLY"}

    def test_clear(self):
        LogContext.set(actor_id="admin")
        LogContext.clear()
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        get_logger("test").info("once")

        assert len(_parse_all_logs(stream)) == 1

    def test_level_filters(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)
        logger = get_logger("test")
        logger.info("hidden")
        logger.warning("shown")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["shown"]

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(level="warning", handler=handler)
        logger = get_logger("test")
        logger.info("hidden")
        logger.error("shown", extra={"cycle": SettlementCycle.MONTHLY, "periods": {"06/2025"}})

        [record] = _parse_all_logs(stream)
        assert record["cycle"] == "MONTHLY"
        assert record["periods"] == ["06/2025"]
