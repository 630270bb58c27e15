"""Unit tests for structlog configuration and tenant log bindings."""

from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from context_engine.utils.logging import bind_tenant_context, clear_tenant_context, configure_logging


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestConfigureLogging:
    def test_json_lines_carry_tenant_bindings(self) -> None:
        stream = io.StringIO()
        configure_logging("INFO", json_output=True, stream=stream)

        bind_tenant_context("t-1", context_id="c-1")
        structlog.get_logger().info("chunk_stored", chunk_index=0)

        event = json.loads(stream.getvalue().strip())
        assert event["event"] == "chunk_stored"
        assert event["tenant_id"] == "t-1"
        assert event["context_id"] == "c-1"
        assert event["level"] == "info"

    def test_level_filters_events(self) -> None:
        stream = io.StringIO()
        configure_logging("WARNING", json_output=True, stream=stream)
        structlog.get_logger().info("ignored")
        structlog.get_logger().warning("kept")
        assert "ignored" not in stream.getvalue()
        assert "kept" in stream.getvalue()

    def test_production_env_selects_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APP_ENV", "production")
        stream = io.StringIO()
        configure_logging(stream=stream)
        structlog.get_logger().info("startup")
        assert json.loads(stream.getvalue())["event"] == "startup"

    def test_stdlib_records_share_the_stream(self) -> None:
        stream = io.StringIO()
        configure_logging("INFO", json_output=True, stream=stream)
        logging.getLogger("aiosqlite").warning("database is locked")
        assert json.loads(stream.getvalue())["event"] == "database is locked"

    def test_httpx_request_lines_are_quieted(self) -> None:
        configure_logging("INFO", stream=io.StringIO())
        assert logging.getLogger("httpx").level == logging.WARNING


class TestTenantContext:
    def test_clear_removes_bindings(self) -> None:
        bind_tenant_context("t-1", context_id="c-1")
        clear_tenant_context()
        assert structlog.contextvars.get_contextvars() == {}
