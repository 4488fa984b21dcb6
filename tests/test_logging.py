"""Tests for the structured logging system (billing_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from billing_kernel.domain.dtos import InvoiceStatus, ReconciliationTrigger
from billing_kernel.logging_config import (
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
    configure_logging(level=logging.DEBUG)


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
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "billing_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("allocated", extra={"invoices_touched": 2, "credit": "0"})

        record = _parse_log(stream)
        assert record["invoices_touched"] == 2
        assert record["credit"] == "0"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", customer_id="cust-1", trigger="payment")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["customer_id"] == "cust-1"
        assert record["trigger"] == "payment"

    def test_billing_exception_fields_extracted(self):
        """Kernel exceptions carry a .code and structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from billing_kernel.exceptions import NegativeOwedAmountError

        try:
            raise NegativeOwedAmountError("inv-1", "-5")
        except NegativeOwedAmountError:
            get_logger("test").critical("invariant_broken", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "NEGATIVE_OWED_AMOUNT"
        assert record["exc_type"] == "NegativeOwedAmountError"
        assert record["exc_invoice_id"] == "inv-1"
        assert record["exc_amount_owed"] == "-5"
        assert "traceback" in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_values", extra={"payment_ref": uid, "amount": Decimal("1500")})

        record = _parse_log(stream)
        assert record["payment_ref"] == str(uid)
        assert record["amount"] == "1500"

    def test_kernel_enums_logged_by_value(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "projection_written",
            extra={
                "status": InvoiceStatus.PARTIAL,
                "triggers": [ReconciliationTrigger.CREDIT_NOTE, ReconciliationTrigger.RECOMPUTE],
            },
        )

        record = _parse_log(stream)
        assert record["status"] == "partial"
        assert record["triggers"] == ["credit_note", "recompute"]

    def test_money_never_in_exponent_form(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("credit", extra={"amount": Decimal("1E+3")})

        assert _parse_log(stream)["amount"] == "1000"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "customer_id" not in record

    def test_debug_suppressed_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(correlation_id="x", payment_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "payment_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(customer_id="outer")
        with LogContext.bind(customer_id="inner"):
            assert LogContext.get_all()["customer_id"] == "inner"
        assert LogContext.get_all()["customer_id"] == "outer"

    def test_enum_trigger_stored_by_value(self):
        LogContext.set(trigger=ReconciliationTrigger.OPENING_BALANCE)
        assert LogContext.get_all() == {"trigger": "opening_balance"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(invoice_status="paid")

    def test_bind_skips_none(self):
        LogContext.set(actor_id="clerk")
        with LogContext.bind(actor_id=None, trigger="recompute"):
            assert LogContext.get_all() == {"actor_id": "clerk", "trigger": "recompute"}
        assert "trigger" not in LogContext.get_all()


class TestConfigureLogging:
    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("billing_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.reconciliation").name == "billing_kernel.services.reconciliation"

    def test_engine_tracer_is_under_kernel_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        from billing_engines.repactacion import RepactacionPlan, installment_due

        plan = RepactacionPlan.create(date(2025, 1, 1), 6, Decimal("60000"))
        installment_due(plan, date(2025, 2, 1))

        traces = [r for r in _parse_all_logs(stream) if r["message"] == "BILLING_ENGINE_TRACE"]
        assert traces[0]["logger"] == "billing_kernel.engines.tracer"
        assert traces[0]["engine_name"] == "repactacion"
