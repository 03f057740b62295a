"""Audit log of entity lifecycle events (the ``LOG`` table).

How it works
------------
1. A repository mutates an entity inside a Unit of Work.
2. Before committing, it calls :meth:`AuditLog.log` on the *same* unit.
3. ``log()`` appends one row: event, entity type, entity id and the
   entity title as it is at that moment.
4. The unit commits both, or rolls both back.

Rows are never updated.  Titles are snapshots: renaming an entity later
does not touch its history.  The only delete is :meth:`AuditLog.clear`.

The ``log_enabled`` setting is read on every call, so the log can be
switched off (or back on) on a running store.  While it is off,
``log()`` writes nothing and the mutation behaves exactly the same.
"""

from __future__ import annotations

from typing import Protocol

import structlog

from dbgl.core.db import UnitOfWork
from dbgl.core.models import EntityType, LogEntry, LogEvent
from dbgl.core.repository import BaseRepository, parse_timestamp

logger = structlog.get_logger()

_CREATE_QRY = "INSERT INTO LOG(EVENT, ENTITY_TYPE, ENTITY_ID, ENTITY_TITLE) VALUES (?, ?, ?, ?)"
_READ_QRY = "SELECT ID, TIME, EVENT, ENTITY_TYPE, ENTITY_ID, ENTITY_TITLE FROM LOG"
_DEL_QRY = "DELETE FROM LOG"


class TitledEntityLike(Protocol):
    @property
    def id(self) -> int | None: ...

    @property
    def title(self) -> str: ...


class AuditLog(BaseRepository):
    """Append, read and clear audit entries."""

    @property
    def enabled(self) -> bool:
        return self._store.settings.log_enabled

    def log(
        self,
        uow: UnitOfWork,
        event: LogEvent,
        entity_type: EntityType,
        entity: TitledEntityLike,
    ) -> None:
        """Append one entry inside *uow* (no-op while logging is disabled)."""
        if not self.enabled:
            return
        entity_id = self._require_id(entity, "add log entry")
        with self._wrap("add log entry"):
            uow.exec(_CREATE_QRY, (int(event), int(entity_type), entity_id, entity.title))
        logger.debug(
            "audit_entry_added",
            audit_event=event.name,
            entity_type=entity_type.name,
            entity_id=entity_id,
        )

    def list(self, where_clause: str = "", order_by_clause: str = "") -> list[LogEntry]:
        """Read entries, optionally narrowed and sorted by caller-supplied SQL.

        *where_clause* (``"WHERE EVENT = 0"``) and *order_by_clause*
        (``"ORDER BY ID DESC"``) are appended to the query verbatim.  They
        are trusted input and must never carry user-typed text.
        """
        sql = " ".join(part for part in (_READ_QRY, where_clause.strip(), order_by_clause.strip()) if part)
        rows = self._read("read log entries", sql)
        return [
            LogEntry(
                id=row["ID"],
                time=parse_timestamp(row["TIME"]),
                event=LogEvent(row["EVENT"]),
                entity_type=EntityType(row["ENTITY_TYPE"]),
                entity_id=row["ENTITY_ID"],
                entity_title=row["ENTITY_TITLE"],
            )
            for row in rows
        ]

    def clear(self) -> int:
        """Delete every entry in one Unit of Work; returns the number removed."""
        with self._wrap("clear log"), self._store.begin() as uow:
            removed = uow.exec(_DEL_QRY).rowcount
            uow.commit()
        logger.info("audit_log_cleared", removed=removed)
        return removed
