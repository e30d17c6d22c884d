"""Structured logging: JSON formatting, context propagation, configuration."""

import json
import logging
import sys
from datetime import date
from io import StringIO
from uuid import uuid4

import pytest

from inventory_kernel.exceptions import InsufficientStockError
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


def _format(record: logging.LogRecord) -> dict:
    return json.loads(StructuredFormatter().format(record))


def _record(msg="event_name", exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord("inventory_kernel.test", logging.INFO, __file__, 1, msg, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:

    def test_base_fields(self):
        payload = _format(_record())
        assert payload["message"] == "event_name"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "inventory_kernel.test"
        assert payload["ts"].endswith("+00:00")

    def test_extra_fields(self):
        movement_id = uuid4()
        payload = _format(_record(movement_id=movement_id, expires=date(2025, 1, 2), attempt=3))
        assert payload["movement_id"] == str(movement_id)
        assert payload["expires"] == "2025-01-02"
        assert payload["attempt"] == 3

    def test_context_fields(self):
        with LogContext.bind(product_code="ZR001", actor_id="u1"):
            payload = _format(_record())
        assert payload["product_code"] == "ZR001"
        assert payload["actor_id"] == "u1"

    def test_kernel_exception_fields(self):
        try:
            raise InsufficientStockError("ZR001", None, None, available=1, requested=2)
        except InsufficientStockError:
            payload = _format(_record(exc_info=sys.exc_info()))

        assert payload["exc_type"] == "InsufficientStockError"
        assert payload["exc_code"] == "INSUFFICIENT_STOCK"
        assert payload["exc_available"] == 1
        assert payload["exc_requested"] == 2
        assert "Traceback" in payload["traceback"]


class TestLogContext:

    def test_bind_restores_previous_values(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", movement_id="m1"):
            assert LogContext.get_all() == {"correlation_id": "inner", "movement_id": "m1"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_none_values_are_skipped(self):
        with LogContext.bind(actor_id=None, product_code="ZR001"):
            assert LogContext.get_all() == {"product_code": "ZR001"}

    def test_unknown_field_is_rejected(self):
        with pytest.raises(TypeError):
            LogContext.bind(tenant="x")

    def test_clear(self):
        LogContext.set(idempotency_key="k")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestConfiguration:

    def test_get_logger_namespace(self):
        assert get_logger("services.x").name == "inventory_kernel.services.x"

    def test_configure_is_idempotent(self):
        stream = StringIO()
        try:
            reset_logging()
            configure_logging(level="warning", stream=stream)
            configure_logging(level=logging.DEBUG)

            root = logging.getLogger("inventory_kernel")
            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
            assert root.propagate is False

            get_logger("test").warning("something_happened")
            get_logger("test").info("not_emitted")
            lines = [json.loads(line) for line in stream.getvalue().splitlines()]
            assert [line["message"] for line in lines] == ["something_happened"]
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)
