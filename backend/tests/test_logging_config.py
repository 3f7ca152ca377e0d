"""Tests for flowcore.logging_config: execution id stamping and handler setup."""

from __future__ import annotations

import asyncio
import logging

import pytest

from flowcore.logging_config import (
    ExecutionContextFilter,
    bind_execution_id,
    current_execution_id,
    get_worker_logger,
    setup_logger,
)


def _record() -> logging.LogRecord:
    return logging.LogRecord("worker.activities", logging.INFO, __file__, 1, "hello", None, None)


class TestExecutionContextFilter:
    @pytest.mark.asyncio
    async def test_unbound_record_shows_dash(self):
        async def run():
            record = _record()
            ExecutionContextFilter().filter(record)
            return record.execution_id

        assert await asyncio.create_task(run()) == "-"

    @pytest.mark.asyncio
    async def test_bound_execution_is_stamped(self):
        async def run():
            bind_execution_id("exec_42")
            record = _record()
            ExecutionContextFilter().filter(record)
            return record.execution_id

        assert await asyncio.create_task(run()) == "exec_42"

    @pytest.mark.asyncio
    async def test_binding_stays_in_its_task(self):
        async def bind():
            bind_execution_id("exec_1")
            return current_execution_id()

        async def read():
            return current_execution_id()

        assert await asyncio.create_task(bind()) == "exec_1"
        assert await asyncio.create_task(read()) is None

    def test_explicit_extra_wins(self):
        record = _record()
        record.execution_id = "exec_extra"
        ExecutionContextFilter().filter(record)
        assert record.execution_id == "exec_extra"


class TestSetupLogger:
    def test_configured_once(self):
        first = setup_logger("test-logger", "test.log")
        second = setup_logger("test-logger", "test.log")
        assert first is second
        assert len(first.handlers) == 2
        assert first.propagate is False

    def test_handlers_carry_execution_filter(self):
        logger = get_worker_logger()
        for handler in logger.handlers:
            assert any(isinstance(f, ExecutionContextFilter) for f in handler.filters)
            assert "%(execution_id)s" in handler.formatter._fmt
