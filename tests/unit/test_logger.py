"""Test structured logging setup and trace ids."""

import logging

import structlog

from trade_intel.observability.logger import (
    get_logger,
    get_trace_id,
    new_trace_id,
    operation_context,
    set_trace_id,
    setup_logging,
)


class TestTraceId:
    def test_set_and_get(self):
        set_trace_id("trace-1")
        assert get_trace_id() == "trace-1"

    def test_new_trace_id_replaces(self):
        set_trace_id("trace-1")
        tid = new_trace_id()
        assert tid != "trace-1"
        assert get_trace_id() == tid


class TestOperationContext:
    def test_fresh_trace_per_operation(self):
        with operation_context("initialize", user_id="u1") as first:
            assert get_trace_id() == first
        with operation_context("initialize", user_id="u1") as second:
            assert second != first

    def test_binds_fields(self):
        with operation_context("on_new_trade", user_id="u1", profile_id="p1"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["operation"] == "on_new_trade"
            assert bound["profile_id"] == "p1"
        assert "operation" not in structlog.contextvars.get_contextvars()


class TestSetupLogging:
    def test_sets_root_level(self):
        setup_logging("WARNING", "console")
        assert logging.getLogger().level == logging.WARNING
        setup_logging("INFO", "json")
        assert logging.getLogger().level == logging.INFO

    def test_unknown_level_defaults_to_info(self):
        setup_logging("chatty", "json")
        assert logging.getLogger().level == logging.INFO

    def test_get_logger(self):
        assert get_logger(__name__) is not None
