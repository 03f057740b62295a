"""Store handle and Unit of Work.

Owns the connection lifecycle for the DBGL database.  Every repository
receives a :class:`Store` in its constructor and never opens its own
connection.

Design decisions
----------------
* One :class:`ConnectionPool` per store; the store is opened once at
  application start and closed at shutdown by whoever opened it.
* All multi-statement writes run inside a :class:`UnitOfWork`, which
  issues ``BEGIN IMMEDIATE`` so the write lock is held from the first
  statement until commit or rollback.
* A Unit of Work that is closed without ``commit()`` rolls back.  There
  is no nesting: one unit, one checked-out connection.
* Single reads that need no atomicity use :meth:`Store.connection`.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog

from dbgl.core.errors import StoreConnectionError
from dbgl.core.migrations import MigrationEngine, MigrationReport
from dbgl.core.pool import ConnectionPool
from dbgl.core.settings import Settings

logger = structlog.get_logger()

Params = Sequence[Any] | Mapping[str, Any]


class UnitOfWork:
    """One connection-scoped, all-or-nothing sequence of statements.

    Use as a context manager::

        with store.begin() as uow:
            uow.exec("UPDATE DOSBOXVERSIONS SET ISDEFAULT = 0")
            uow.exec("INSERT INTO DOSBOXVERSIONS(...) VALUES (...)", params)
            uow.commit()

    Leaving the ``with`` block without ``commit()`` (including through an
    exception) discards every write made by the unit.

    Statement failures surface as :class:`sqlite3.Error`; repositories
    translate them into :class:`dbgl.core.errors.QueryError` with an
    action description.
    """

    def __init__(self, pool: ConnectionPool, *, enforce_foreign_keys: bool = True) -> None:
        self._pool = pool
        self._enforce_foreign_keys = enforce_foreign_keys
        self._committed = False
        self._closed = False

        self._conn = pool.acquire()
        try:
            if not enforce_foreign_keys:
                # Only effective outside a transaction.
                self._conn.execute("PRAGMA foreign_keys=OFF")
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            self._restore_and_release()
            raise StoreConnectionError(f"cannot start transaction: {exc}") from exc

    # ── Statements ──────────────────────────────────────────
    def exec(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        """Execute one statement and return its cursor."""
        return self._connection().execute(sql, params)

    def query(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        return self._connection().execute(sql, params).fetchall()

    def query_one(self, sql: str, params: Params = ()) -> sqlite3.Row | None:
        return self._connection().execute(sql, params).fetchone()

    # ── Completion ──────────────────────────────────────────
    def commit(self) -> None:
        """Make every write of this unit visible atomically."""
        self._connection().execute("COMMIT")
        self._committed = True

    @property
    def committed(self) -> bool:
        return self._committed

    def close(self) -> None:
        """Roll back unless committed, then hand the connection back."""
        if self._closed:
            return
        self._closed = True
        try:
            if not self._committed and self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
        finally:
            self._restore_and_release()

    def _restore_and_release(self) -> None:
        try:
            if not self._enforce_foreign_keys:
                self._conn.execute("PRAGMA foreign_keys=ON")
        finally:
            self._pool.release(self._conn)

    def _connection(self) -> sqlite3.Connection:
        if self._closed:
            raise StoreConnectionError("unit of work is already closed")
        return self._conn

    def __enter__(self) -> UnitOfWork:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class Store:
    """Explicit handle on one DBGL database.

    Created with :meth:`Store.open` and passed to every repository.  The
    handle also exposes the runtime :class:`Settings` so repositories can
    read flags such as ``log_enabled`` at call time.
    """

    def __init__(self, settings: Settings, pool: ConnectionPool) -> None:
        self.settings = settings
        self._pool = pool

    @classmethod
    def open(cls, settings: Settings) -> Store:
        """Create the data directories and the connection pool.

        One connection is checked out and returned immediately so an
        unreachable database fails here rather than on first use.

        Raises
        ------
        StoreConnectionError
            If the database file cannot be opened.
        """
        settings.ensure_dirs()
        pool = ConnectionPool(
            settings.db_path,
            pool_size=settings.pool_size,
            timeout=settings.pool_timeout,
        )
        pool.release(pool.acquire())
        logger.debug("store_opened", path=str(settings.db_path), pool_size=settings.pool_size)
        return cls(settings, pool)

    @property
    def path(self) -> Path:
        return self._pool.db_path

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Lend a pooled connection for reads outside a Unit of Work."""
        conn = self._pool.acquire()
        try:
            yield conn
        finally:
            self._pool.release(conn)

    def begin(self, *, enforce_foreign_keys: bool = True) -> UnitOfWork:
        """Start a Unit of Work on a freshly checked-out connection.

        ``enforce_foreign_keys=False`` is reserved for schema migrations
        that rebuild referenced tables.
        """
        return UnitOfWork(self._pool, enforce_foreign_keys=enforce_foreign_keys)

    def close(self) -> None:
        self._pool.close_all()
        logger.debug("store_closed", path=str(self.path))

    def __enter__(self) -> Store:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def open_store(settings: Settings, *, migrate: bool = True) -> tuple[Store, MigrationReport | None]:
    """Open the store and bring its schema up to date.

    Returns the store together with the migration report (``None`` when
    *migrate* is false).  On a migration failure the store is closed
    before the :class:`~dbgl.core.errors.MigrationError` propagates.
    """
    store = Store.open(settings)
    if not migrate:
        return store, None
    try:
        report = MigrationEngine(store).run()
    except Exception:
        store.close()
        raise
    return store, report
