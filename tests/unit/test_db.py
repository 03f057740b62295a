"""Tests for dbgl.core.pool and dbgl.core.db — connection pool, store, Unit of Work."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from pathlib import Path

import pytest

from dbgl.core.db import Store
from dbgl.core.errors import StoreConnectionError
from dbgl.core.pool import ConnectionPool, connect
from dbgl.core.settings import Settings


@pytest.fixture()
def pool(tmp_path: Path) -> Iterator[ConnectionPool]:
    p = ConnectionPool(tmp_path / "pool.sqlite", pool_size=2, timeout=0.2)
    yield p
    p.close_all()


@pytest.fixture()
def bare_store(settings: Settings) -> Iterator[Store]:
    """An opened store with one scratch table and no DBGL schema."""
    s = Store.open(settings)
    with s.begin() as uow:
        uow.exec("CREATE TABLE T (ID INTEGER PRIMARY KEY, NAME TEXT NOT NULL)")
        uow.commit()
    yield s
    s.close()


def _count(store: Store) -> int:
    with store.connection() as conn:
        return conn.execute("SELECT COUNT(*) FROM T").fetchone()[0]


# ── connect ─────────────────────────────────────────────────


class TestConnect:
    def test_pragmas(self, tmp_path: Path) -> None:
        conn = connect(tmp_path / "c.sqlite")
        try:
            assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
            assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
            assert conn.row_factory is sqlite3.Row
            assert conn.isolation_level is None
        finally:
            conn.close()

    def test_unopenable_path_raises(self, tmp_path: Path) -> None:
        with pytest.raises(StoreConnectionError):
            connect(tmp_path / "missing" / "dir" / "c.sqlite")


# ── ConnectionPool ──────────────────────────────────────────


class TestConnectionPool:
    def test_connections_are_created_lazily(self, pool: ConnectionPool) -> None:
        assert pool.stats()["open"] == 0
        conn = pool.acquire()
        assert pool.stats()["open"] == 1
        pool.release(conn)
        assert pool.stats()["idle"] == 1

    def test_released_connection_is_reused(self, pool: ConnectionPool) -> None:
        first = pool.acquire()
        pool.release(first)
        second = pool.acquire()
        assert second is first
        assert pool.stats()["created"] == 1
        pool.release(second)

    def test_exhausted_pool_times_out(self, pool: ConnectionPool) -> None:
        held = [pool.acquire(), pool.acquire()]
        with pytest.raises(StoreConnectionError, match="no database connection available"):
            pool.acquire()
        for conn in held:
            pool.release(conn)

    def test_waiter_gets_connection_released_by_other_thread(self, tmp_path: Path) -> None:
        p = ConnectionPool(tmp_path / "w.sqlite", pool_size=1, timeout=5.0)
        held = p.acquire()
        timer = threading.Timer(0.05, p.release, args=(held,))
        timer.start()
        try:
            assert p.acquire() is held
        finally:
            timer.join()
            p.close_all()

    def test_release_rolls_back_open_transaction(self, pool: ConnectionPool) -> None:
        conn = pool.acquire()
        conn.execute("CREATE TABLE T (X INTEGER)")
        conn.execute("BEGIN")
        conn.execute("INSERT INTO T VALUES (1)")
        pool.release(conn)

        again = pool.acquire()
        assert not again.in_transaction
        assert again.execute("SELECT COUNT(*) FROM T").fetchone()[0] == 0
        pool.release(again)

    def test_closed_pool_refuses_acquire(self, pool: ConnectionPool) -> None:
        pool.close_all()
        assert pool.closed
        with pytest.raises(StoreConnectionError, match="closed"):
            pool.acquire()

    def test_pool_size_must_be_positive(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            ConnectionPool(tmp_path / "x.sqlite", pool_size=0)


# ── Store ───────────────────────────────────────────────────


class TestStore:
    def test_open_creates_dirs_and_file(self, settings: Settings) -> None:
        with Store.open(settings) as s:
            assert s.path == settings.db_path
            assert settings.db_path.exists()
            assert settings.profiles_dir is not None and settings.profiles_dir.is_dir()
            assert settings.captures_dir is not None and settings.captures_dir.is_dir()

    def test_close_closes_pool(self, settings: Settings) -> None:
        s = Store.open(settings)
        s.close()
        assert s.pool.closed
        with pytest.raises(StoreConnectionError):
            s.begin()

    def test_connection_is_returned_to_pool(self, bare_store: Store) -> None:
        before = bare_store.pool.stats()["idle"]
        with bare_store.connection() as conn:
            conn.execute("SELECT 1")
        assert bare_store.pool.stats()["idle"] == before


# ── UnitOfWork ──────────────────────────────────────────────


class TestUnitOfWork:
    def test_commit_makes_writes_visible(self, bare_store: Store) -> None:
        with bare_store.begin() as uow:
            uow.exec("INSERT INTO T(NAME) VALUES (?)", ("a",))
            uow.exec("INSERT INTO T(NAME) VALUES (?)", ("b",))
            uow.commit()
            assert uow.committed
        assert _count(bare_store) == 2

    def test_close_without_commit_rolls_back(self, bare_store: Store) -> None:
        with bare_store.begin() as uow:
            uow.exec("INSERT INTO T(NAME) VALUES (?)", ("a",))
        assert _count(bare_store) == 0

    def test_exception_rolls_back_every_statement(self, bare_store: Store) -> None:
        with pytest.raises(sqlite3.IntegrityError):
            with bare_store.begin() as uow:
                uow.exec("INSERT INTO T(NAME) VALUES (?)", ("a",))
                uow.exec("INSERT INTO T(NAME) VALUES (NULL)")
                uow.commit()
        assert _count(bare_store) == 0

    def test_writes_invisible_to_other_connections_until_commit(self, bare_store: Store) -> None:
        with bare_store.begin() as uow:
            uow.exec("INSERT INTO T(NAME) VALUES (?)", ("a",))
            assert _count(bare_store) == 0
            uow.commit()
        assert _count(bare_store) == 1

    def test_query_helpers(self, bare_store: Store) -> None:
        with bare_store.begin() as uow:
            uow.exec("INSERT INTO T(NAME) VALUES (:name)", {"name": "a"})
            rows = uow.query("SELECT NAME FROM T")
            one = uow.query_one("SELECT NAME FROM T WHERE NAME = ?", ("a",))
            none = uow.query_one("SELECT NAME FROM T WHERE NAME = ?", ("zzz",))
        assert [r["NAME"] for r in rows] == ["a"]
        assert one is not None and one["NAME"] == "a"
        assert none is None

    def test_closed_unit_refuses_statements(self, bare_store: Store) -> None:
        uow = bare_store.begin()
        uow.close()
        uow.close()  # idempotent
        with pytest.raises(StoreConnectionError):
            uow.exec("SELECT 1")

    def test_connection_goes_back_to_pool(self, bare_store: Store) -> None:
        idle = bare_store.pool.stats()["idle"]
        with bare_store.begin() as uow:
            assert bare_store.pool.stats()["idle"] == idle - 1
            uow.commit()
        assert bare_store.pool.stats()["idle"] == idle

    def test_foreign_keys_switched_off_then_restored(self, bare_store: Store) -> None:
        with bare_store.begin(enforce_foreign_keys=False) as uow:
            row = uow.query_one("PRAGMA foreign_keys")
            assert row is not None and row[0] == 0
            conn_id = id(uow._conn)
        with bare_store.connection() as conn:
            assert id(conn) == conn_id
            assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_second_writer_waits_and_times_out(self, settings: Settings) -> None:
        """BEGIN IMMEDIATE holds the write lock from the first statement."""
        s = Store.open(settings.model_copy(update={"pool_timeout": 0.1}))
        try:
            with s.begin() as first:
                first.exec("CREATE TABLE L (X INTEGER)")
                with pytest.raises(StoreConnectionError):
                    s.begin()
                first.commit()
        finally:
            s.close()
