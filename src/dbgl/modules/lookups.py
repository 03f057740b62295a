"""Normalized lookup values: developers, publishers, genres, years, statuses
and the four custom dropdown tables.

A title has at most one row per table.  Writers go through
:meth:`TitledEntityRepository.find_or_create`, which runs inside the
caller's Unit of Work; because that unit holds the write lock
(``BEGIN IMMEDIATE``) from its first statement, two writers can never
both miss the same title and insert it twice.
"""

from __future__ import annotations

import structlog

from dbgl.core.db import UnitOfWork
from dbgl.core.models import NR_OF_CUSTOM_DROPDOWNS, TitledEntity
from dbgl.core.repository import BaseRepository
from dbgl.core.schema import LOOKUP_TABLES

logger = structlog.get_logger()

LOOKUP_KINDS: tuple[str, ...] = tuple(LOOKUP_TABLES)

# Profile column holding the id into each lookup table.
_PROFILE_COLUMNS: dict[str, str] = {
    "developers": "DEV_ID",
    "publishers": "PUBL_ID",
    "genres": "GENRE_ID",
    "years": "YEAR_ID",
    "statuses": "STAT_ID",
    **{f"custom{i}": f"CUST{i}_ID" for i in range(1, NR_OF_CUSTOM_DROPDOWNS + 1)},
}


def custom_kind(index: int) -> str:
    """Lookup kind of custom dropdown *index* (0-based)."""
    if not 0 <= index < NR_OF_CUSTOM_DROPDOWNS:
        raise ValueError(f"custom dropdown index out of range: {index}")
    return f"custom{index + 1}"


def _table(kind: str) -> tuple[str, str]:
    try:
        return LOOKUP_TABLES[kind]
    except KeyError:
        raise ValueError(f"unknown lookup kind: {kind!r}") from None


class TitledEntityRepository(BaseRepository):
    def list_values(self, kind: str, uow: UnitOfWork | None = None) -> list[TitledEntity]:
        """All rows of *kind*, ordered by value."""
        table, column = _table(kind)
        rows = self._read(
            f"read {kind}",
            f"SELECT ID, {column} FROM {table} ORDER BY {column}",
            uow=uow,
        )
        return [TitledEntity(id=row[0], title=row[1]) for row in rows]

    def values(self, kind: str) -> list[str]:
        return [entity.title for entity in self.list_values(kind)]

    def find_id(self, kind: str, title: str, uow: UnitOfWork | None = None) -> int | None:
        """Id of the row holding exactly *title*, or ``None``."""
        table, column = _table(kind)
        rows = self._read(
            f"find {kind}",
            f"SELECT ID FROM {table} WHERE {column} = ? ORDER BY ID LIMIT 1",
            (title,),
            uow=uow,
        )
        return rows[0][0] if rows else None

    def add_value(self, uow: UnitOfWork, kind: str, title: str) -> int:
        """Insert *title* unconditionally; prefer :meth:`find_or_create`."""
        table, column = _table(kind)
        with self._wrap(f"add {title}"):
            uow.exec(f"INSERT INTO {table}({column}) VALUES (?)", (title,))
        return self.identity(uow)

    def find_or_create(self, uow: UnitOfWork, kind: str, title: str) -> int:
        existing = self.find_id(kind, title, uow)
        if existing is not None:
            return existing
        new_id = self.add_value(uow, kind, title)
        logger.debug("lookup_value_added", kind=kind, lookup_id=new_id)
        return new_id

    def cleanup(self) -> int:
        """Delete values no profile refers to; returns the number removed."""
        removed = 0
        with self._wrap("cleanup"), self._store.begin() as uow:
            for kind, (table, _column) in LOOKUP_TABLES.items():
                ref = _PROFILE_COLUMNS[kind]
                removed += uow.exec(
                    f"DELETE FROM {table} WHERE ID NOT IN "
                    f"(SELECT DISTINCT {ref} FROM GAMES WHERE {ref} IS NOT NULL)"
                ).rowcount
            uow.commit()
        logger.info("lookup_cleanup", removed=removed)
        return removed
