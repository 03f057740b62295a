"""Base repository: identity retrieval, id-based list helpers, error wrapping.

Every entity repository extends :class:`BaseRepository`.  The module-level
helpers work on plain lists of entities already read from the store and
look entities up by their stable ``id``, never by value equality.

Error policy
------------
A failing statement never leaves a repository as a bare
:class:`sqlite3.Error`.  :meth:`BaseRepository._wrap` turns it into a
:class:`QueryError` naming the action ("add profile", "remove filter",
...) with the driver error chained as ``__cause__``.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

import structlog

from dbgl.core.errors import QueryError

if TYPE_CHECKING:
    from dbgl.core.db import Params, Store, UnitOfWork

logger = structlog.get_logger()


class Identified(Protocol):
    @property
    def id(self) -> int | None: ...


class Defaultable(Identified, Protocol):
    @property
    def is_default(self) -> bool: ...


E = TypeVar("E", bound=Identified)
D = TypeVar("D", bound=Defaultable)


# ── List helpers ────────────────────────────────────────────
def find_by_id(items: Sequence[E], entity_id: int) -> E | None:
    return next((item for item in items if item.id == entity_id), None)


def find_index_by_id(items: Sequence[E], entity_id: int) -> int:
    """Position of the entity with *entity_id*, or ``-1``."""
    return next((i for i, item in enumerate(items) if item.id == entity_id), -1)


def index_of(items: Sequence[E], entity: E) -> int:
    """Position of *entity* in *items*, matched by id."""
    if entity.id is None:
        return -1
    return find_index_by_id(items, entity.id)


def find_default(items: Sequence[D]) -> D | None:
    return next((item for item in items if item.is_default), None)


def index_of_default(items: Sequence[D]) -> int:
    return next((i for i, item in enumerate(items) if item.is_default), -1)


# ── Row conversion ──────────────────────────────────────────
def parse_timestamp(value: Any) -> datetime | None:
    """SQLite ``CURRENT_TIMESTAMP`` text to :class:`datetime` (``None`` stays ``None``)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class BaseRepository:
    """Shared plumbing for every repository bound to one :class:`Store`."""

    def __init__(self, store: Store) -> None:
        self._store = store

    @property
    def store(self) -> Store:
        return self._store

    @contextmanager
    def _wrap(self, action: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            logger.warning("query_failed", action=action, error=str(exc))
            raise QueryError(action, str(exc)) from exc

    # ── Writes ──────────────────────────────────────────────
    def identity(self, uow: UnitOfWork) -> int:
        """Id generated by the most recent insert on *uow*'s connection.

        Must run inside the Unit of Work that did the insert, before commit.
        """
        with self._wrap("get identity"):
            row = uow.query_one("SELECT last_insert_rowid()")
        assert row is not None
        return int(row[0])

    def action_on_entity(self, uow: UnitOfWork, sql: str, action: str, entity: Identified) -> None:
        """Run a single-id statement (``... WHERE ID = ?``) for *entity*."""
        entity_id = self._require_id(entity, action)
        with self._wrap(action):
            uow.exec(sql, (entity_id,))

    @staticmethod
    def _require_id(entity: Identified, action: str) -> int:
        if entity.id is None:
            raise ValueError(f"{action}: entity has not been stored yet")
        return entity.id

    # ── Reads ───────────────────────────────────────────────
    def _read(
        self,
        action: str,
        sql: str,
        params: Params = (),
        uow: UnitOfWork | None = None,
    ) -> list[sqlite3.Row]:
        """Fetch all rows, inside *uow* when given, else on a pooled connection."""
        with self._wrap(action):
            if uow is not None:
                return uow.query(sql, params)
            with self._store.connection() as conn:
                return conn.execute(sql, params).fetchall()
