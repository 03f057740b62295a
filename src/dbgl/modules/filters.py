"""Saved profile filters (``FILTERS``).

A filter is a title plus a predicate fragment that
:meth:`dbgl.modules.profiles.ProfileRepository.list` appends to its
query.  ``CONF_FILTER`` is a legacy column and is always stored empty.
"""

from __future__ import annotations

from dataclasses import replace

import structlog

from dbgl.core.audit import AuditLog
from dbgl.core.db import Store
from dbgl.core.models import EntityType, Filter, LogEvent
from dbgl.core.repository import BaseRepository

logger = structlog.get_logger()

_CREATE_QRY = "INSERT INTO FILTERS(TITLE, FILTER, CONF_FILTER) VALUES (?, ?, '')"
_READ_QRY = "SELECT ID, TITLE, FILTER FROM FILTERS ORDER BY ID"
_UPD_QRY = "UPDATE FILTERS SET TITLE = ?, FILTER = ? WHERE ID = ?"
_DEL_QRY = "DELETE FROM FILTERS WHERE ID = ?"


class FilterRepository(BaseRepository):
    def __init__(self, store: Store) -> None:
        super().__init__(store)
        self.audit = AuditLog(store)

    def add(self, flt: Filter) -> Filter:
        with self._wrap("add filter"), self._store.begin() as uow:
            uow.exec(_CREATE_QRY, (flt.title, flt.filter))
            stored = replace(flt, id=self.identity(uow))
            self.audit.log(uow, LogEvent.ADD, EntityType.FILTER, stored)
            uow.commit()
        logger.info("filter_added", filter_id=stored.id)
        return stored

    def list_all(self) -> list[Filter]:
        rows = self._read("read filters", _READ_QRY)
        return [Filter(id=row["ID"], title=row["TITLE"], filter=row["FILTER"]) for row in rows]

    def update(self, flt: Filter) -> None:
        filter_id = self._require_id(flt, "update filter")
        with self._wrap("update filter"), self._store.begin() as uow:
            uow.exec(_UPD_QRY, (flt.title, flt.filter, filter_id))
            self.audit.log(uow, LogEvent.EDIT, EntityType.FILTER, flt)
            uow.commit()
        logger.info("filter_updated", filter_id=filter_id)

    def remove(self, flt: Filter) -> None:
        with self._store.begin() as uow:
            self.action_on_entity(uow, _DEL_QRY, "remove filter", flt)
            self.audit.log(uow, LogEvent.REMOVE, EntityType.FILTER, flt)
            with self._wrap("remove filter"):
                uow.commit()
        logger.info("filter_removed", filter_id=flt.id)
