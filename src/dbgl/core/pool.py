"""SQLite connection pool.

Hands out connections to the single file-backed DBGL database.  The pool
is the only shared mutable resource of the store: a checked-out connection
belongs to exactly one caller (usually one Unit of Work) until it is
released.

Connection settings
-------------------
* ``isolation_level=None``: the driver never opens transactions on its
  own; :class:`dbgl.core.db.UnitOfWork` issues ``BEGIN``/``COMMIT``
  explicitly.
* ``check_same_thread=False``: a connection may be released by a
  different thread than the one that created it.
* WAL mode for concurrent reads, foreign keys enforced.
* Busy timeout equal to the pool timeout, so a writer waits for a lock
  instead of failing immediately.
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from queue import Empty, Full, Queue

import structlog

from dbgl.core.errors import StoreConnectionError

logger = structlog.get_logger()


def connect(db_path: Path, *, timeout: float = 10.0) -> sqlite3.Connection:
    """Open one configured connection to *db_path*.

    Raises
    ------
    StoreConnectionError
        If SQLite cannot open the file or apply the connection pragmas.
    """
    try:
        conn = sqlite3.connect(
            str(db_path),
            isolation_level=None,
            check_same_thread=False,
            timeout=timeout,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
    except sqlite3.Error as exc:
        raise StoreConnectionError(f"cannot open database {db_path}: {exc}") from exc
    return conn


class ConnectionPool:
    """Thread-safe pool of SQLite connections.

    Connections are created lazily, up to *pool_size*.  When every
    connection is checked out, :meth:`acquire` waits up to *timeout*
    seconds for one to be released.
    """

    def __init__(self, db_path: Path, *, pool_size: int = 5, timeout: float = 10.0) -> None:
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        self.db_path = db_path
        self.pool_size = pool_size
        self.timeout = timeout

        self._idle: Queue[sqlite3.Connection] = Queue(maxsize=pool_size)
        self._all: list[sqlite3.Connection] = []
        self._lock = threading.Lock()
        self._closed = False
        self._stats = {"created": 0, "acquired": 0, "released": 0}

    # ── Checkout ────────────────────────────────────────────
    def acquire(self) -> sqlite3.Connection:
        """Check a connection out of the pool.

        Raises
        ------
        StoreConnectionError
            If the pool is closed, a new connection cannot be opened, or
            no connection is released within *timeout* seconds.
        """
        if self._closed:
            raise StoreConnectionError("connection pool is closed")

        try:
            conn = self._idle.get(block=False)
        except Empty:
            conn = self._create_if_room()
            if conn is None:
                try:
                    conn = self._idle.get(timeout=self.timeout)
                except Empty as exc:
                    raise StoreConnectionError(
                        f"no database connection available after {self.timeout:.1f}s "
                        f"(pool size {self.pool_size})"
                    ) from exc

        with self._lock:
            self._stats["acquired"] += 1
        return conn

    def release(self, conn: sqlite3.Connection) -> None:
        """Return *conn* to the pool (or close it if the pool is closed)."""
        if self._closed:
            conn.close()
            return

        if conn.in_transaction:
            # Never hand out a connection with someone else's open writes.
            conn.execute("ROLLBACK")

        try:
            self._idle.put(conn, block=False)
        except Full:
            logger.warning("connection_pool_overflow", db_path=str(self.db_path))
            conn.close()
            return

        with self._lock:
            self._stats["released"] += 1

    def _create_if_room(self) -> sqlite3.Connection | None:
        with self._lock:
            if len(self._all) >= self.pool_size:
                return None
            conn = connect(self.db_path, timeout=self.timeout)
            self._all.append(conn)
            self._stats["created"] += 1
            logger.debug("connection_created", db_path=str(self.db_path), total=len(self._all))
            return conn

    # ── Lifecycle ───────────────────────────────────────────
    def stats(self) -> dict[str, int]:
        """Counters plus the current number of open and idle connections."""
        with self._lock:
            return {
                **self._stats,
                "open": len(self._all),
                "idle": self._idle.qsize(),
            }

    def close_all(self) -> None:
        """Close every connection this pool created."""
        with self._lock:
            self._closed = True
            connections, self._all = self._all, []

        while True:
            try:
                self._idle.get(block=False)
            except Empty:
                break

        for conn in connections:
            conn.close()
        logger.debug("connection_pool_closed", db_path=str(self.db_path), closed=len(connections))

    @property
    def closed(self) -> bool:
        return self._closed
