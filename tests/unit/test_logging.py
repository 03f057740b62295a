"""Tests for dbgl.core.logging: structlog configuration and SQL rendering."""

from __future__ import annotations

import io
import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from dbgl.core.logging import SQL_PREVIEW, _sql_processor, configure_logging


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    level = root.level
    yield
    root.handlers.clear()
    root.setLevel(level)


class TestSqlProcessor:
    def test_multiline_sql_flattened(self) -> None:
        event = {"event": "migration_statement", "sql": "CREATE TABLE X (\n    ID INTEGER,\n    NAME TEXT\n)"}
        assert _sql_processor(None, "debug", event)["sql"] == "CREATE TABLE X ( ID INTEGER, NAME TEXT )"

    def test_long_sql_capped(self) -> None:
        sql = "INSERT INTO GAMES VALUES (" + ", ".join("?" for _ in range(200)) + ")"
        rendered = _sql_processor(None, "debug", {"sql": sql})["sql"]
        assert rendered.startswith(sql[:SQL_PREVIEW])
        assert rendered.endswith(f"... ({len(sql)} chars)")

    def test_other_keys_untouched(self) -> None:
        event = {"event": "profile_added", "title": "Space  Quest\n", "sql": 42}
        assert _sql_processor(None, "info", dict(event)) == event


class TestConfigureLogging:
    def test_json_lines_to_given_stream(self) -> None:
        buf = io.StringIO()
        configure_logging(level="DEBUG", json_output=True, stream=buf)
        structlog.get_logger("dbgl.test").debug("migration_statement", target="0.98", sql="DROP\n  TABLE X")

        line = json.loads(buf.getvalue().splitlines()[-1])
        assert line["event"] == "migration_statement"
        assert line["level"] == "debug"
        assert line["sql"] == "DROP TABLE X"

    def test_level_filters_events(self) -> None:
        buf = io.StringIO()
        configure_logging(level="WARNING", json_output=True, stream=buf)
        log = structlog.get_logger("dbgl.test")
        log.info("store_opened")
        log.warning("connection_pool_overflow")

        events = [json.loads(line)["event"] for line in buf.getvalue().splitlines()]
        assert events == ["connection_pool_overflow"]

    def test_console_output(self) -> None:
        buf = io.StringIO()
        configure_logging(level="INFO", json_output=False, stream=buf)
        structlog.get_logger("dbgl.test").info("schema_ready", version="0.98")
        assert "schema_ready" in buf.getvalue()
        assert "0.98" in buf.getvalue()

    def test_reconfigure_replaces_handler(self) -> None:
        configure_logging(stream=io.StringIO())
        configure_logging(stream=io.StringIO())
        assert len(logging.getLogger().handlers) == 1
