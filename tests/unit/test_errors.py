"""Tests for dbgl.core.errors — typed domain exceptions."""

from __future__ import annotations

import sqlite3

import pytest

from dbgl.core.errors import (
    DataRootNotFound,
    DBGLError,
    MigrationError,
    QueryError,
    ReferentialBlockError,
    StoreConnectionError,
)


def test_all_errors_inherit_from_dbgl_error() -> None:
    """Every domain exception must be catchable as DBGLError."""
    exceptions: list[DBGLError] = [
        DataRootNotFound(),
        StoreConnectionError("x"),
        MigrationError(0, 50),
        QueryError("add profile"),
        ReferentialBlockError("remove dosboxversion", "DOSBox", ["Keen"], 1),
    ]
    for exc in exceptions:
        assert isinstance(exc, DBGLError)


def test_data_root_not_found_mentions_start_path() -> None:
    exc = DataRootNotFound(start_path="/tmp/nowhere")
    assert "/tmp/nowhere" in str(exc)
    assert exc.start_path == "/tmp/nowhere"


def test_migration_error_names_target_version() -> None:
    exc = MigrationError(0, 72, "no such table: DOSBOXVERSIONS")
    assert str(exc) == "Upgrade to database version 0.72 failed: no such table: DOSBOXVERSIONS"
    assert (exc.major, exc.minor) == (0, 72)


def test_query_error_carries_action() -> None:
    exc = QueryError("remove filter", "database is locked")
    assert exc.action == "remove filter"
    assert "remove filter" in str(exc)
    assert "database is locked" in str(exc)


def test_referential_block_is_a_query_error() -> None:
    exc = ReferentialBlockError("remove dosboxversion", "DOSBox 0.74", ["Keen", "Doom"], 12)
    assert isinstance(exc, QueryError)
    assert exc.blocking_titles == ["Keen", "Doom"]
    assert exc.total == 12
    assert "12" in str(exc)
    assert "Keen, Doom" in str(exc)


def test_cause_is_preserved() -> None:
    """Raising with ``from`` keeps the driver error reachable."""
    with pytest.raises(QueryError) as excinfo:
        try:
            raise sqlite3.OperationalError("boom")
        except sqlite3.Error as exc:
            raise QueryError("add profile", str(exc)) from exc
    assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
