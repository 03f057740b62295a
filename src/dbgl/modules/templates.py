"""Templates repository (``TEMPLATES`` plus their native commands)."""

from __future__ import annotations

import sqlite3
from dataclasses import replace

import structlog

from dbgl.core.audit import AuditLog
from dbgl.core.db import Store, UnitOfWork
from dbgl.core.models import EntityType, LogEvent, NativeCommand, Stats, Template
from dbgl.core.repository import BaseRepository, parse_timestamp
from dbgl.modules.native_commands import NativeCommandRepository, Owner

logger = structlog.get_logger()

_COLUMNS = "ID, TITLE, ISDEFAULT, DBVERSION_ID, STATS_CREATED, STATS_LASTMODIFY, STATS_LASTRUN, STATS_RUNS"
_CREATE_QRY = (
    "INSERT INTO TEMPLATES(TITLE, ISDEFAULT, DBVERSION_ID, STATS_CREATED) VALUES (?, ?, ?, CURRENT_TIMESTAMP)"
)
_READ_QRY = f"SELECT {_COLUMNS} FROM TEMPLATES ORDER BY ID"
_READ_BY_ID_QRY = f"SELECT {_COLUMNS} FROM TEMPLATES WHERE ID = ?"
_UPD_QRY = (
    "UPDATE TEMPLATES SET TITLE = ?, ISDEFAULT = ?, DBVERSION_ID = ?, "
    "STATS_LASTMODIFY = CURRENT_TIMESTAMP WHERE ID = ?"
)
_UPD_NODEFAULT_QRY = "UPDATE TEMPLATES SET ISDEFAULT = 0"
_DEL_QRY = "DELETE FROM TEMPLATES WHERE ID = ?"
_REGISTER_RUN_QRY = "UPDATE TEMPLATES SET STATS_LASTRUN = CURRENT_TIMESTAMP, STATS_RUNS = STATS_RUNS + 1 WHERE ID = ?"


def _to_template(row: sqlite3.Row, commands: tuple[NativeCommand, ...]) -> Template:
    return Template(
        id=row["ID"],
        title=row["TITLE"],
        is_default=bool(row["ISDEFAULT"]),
        dosbox_version_id=row["DBVERSION_ID"],
        native_commands=commands,
        stats=Stats(
            created=parse_timestamp(row["STATS_CREATED"]),
            modified=parse_timestamp(row["STATS_LASTMODIFY"]),
            last_run=parse_timestamp(row["STATS_LASTRUN"]),
            runs=row["STATS_RUNS"],
        ),
    )


class TemplateRepository(BaseRepository):
    def __init__(self, store: Store) -> None:
        super().__init__(store)
        self.audit = AuditLog(store)
        self.commands = NativeCommandRepository(store)

    def add(self, template: Template) -> Template:
        with self._wrap("add template"), self._store.begin() as uow:
            stored = self._do_add(uow, template)
            self.audit.log(uow, LogEvent.ADD, EntityType.TEMPLATE, stored)
            uow.commit()
        logger.info("template_added", template_id=stored.id)
        return stored

    def _do_add(self, uow: UnitOfWork, template: Template) -> Template:
        if template.is_default:
            uow.exec(_UPD_NODEFAULT_QRY)
        uow.exec(_CREATE_QRY, (template.title, template.is_default, template.dosbox_version_id))
        stored = replace(template, id=self.identity(uow))
        self.commands.add_all(uow, Owner.TEMPLATE, stored.id, template.native_commands)
        return stored

    def list_all(self) -> list[Template]:
        """Every template, in creation order."""
        rows = self._read("read templates", _READ_QRY)
        commands = self.commands.by_owner(Owner.TEMPLATE)
        return [_to_template(row, commands.get(row["ID"], ())) for row in rows]

    def get_by_id(self, template_id: int) -> Template | None:
        rows = self._read(f"read template {template_id}", _READ_BY_ID_QRY, (template_id,))
        if not rows:
            return None
        commands = self.commands.by_owner(Owner.TEMPLATE, template_id)
        return _to_template(rows[0], commands.get(template_id, ()))

    def update(self, template: Template) -> None:
        """Rewrite the row and replace its native commands."""
        template_id = self._require_id(template, "update template")
        with self._wrap("update template"), self._store.begin() as uow:
            if template.is_default:
                uow.exec(_UPD_NODEFAULT_QRY)
            uow.exec(_UPD_QRY, (template.title, template.is_default, template.dosbox_version_id, template_id))
            self.commands.replace_all(uow, Owner.TEMPLATE, template_id, template.native_commands)
            self.audit.log(uow, LogEvent.EDIT, EntityType.TEMPLATE, template)
            uow.commit()
        logger.info("template_updated", template_id=template_id)

    def remove(self, template: Template) -> None:
        template_id = self._require_id(template, "remove template")
        with self._store.begin() as uow:
            self.commands.remove_all(uow, Owner.TEMPLATE, template_id)
            self.action_on_entity(uow, _DEL_QRY, "remove template", template)
            self.audit.log(uow, LogEvent.REMOVE, EntityType.TEMPLATE, template)
            with self._wrap("remove template"):
                uow.commit()
        logger.info("template_removed", template_id=template_id)

    def duplicate(self, template: Template) -> Template:
        """Store a non-default copy of *template* under a new id.

        The source gets a DUPLICATE entry and the copy an ADD entry, both
        in the unit that creates the copy.
        """
        self._require_id(template, "duplicate template")
        copy = replace(template, id=None, is_default=False, stats=Stats())
        with self._wrap("duplicate template"), self._store.begin() as uow:
            self.audit.log(uow, LogEvent.DUPLICATE, EntityType.TEMPLATE, template)
            stored = self._do_add(uow, copy)
            self.audit.log(uow, LogEvent.ADD, EntityType.TEMPLATE, stored)
            uow.commit()
        logger.info("template_duplicated", source_id=template.id, template_id=stored.id)
        return stored

    def register_run(self, template: Template) -> Template | None:
        """Bump the run statistics and return the freshly read row."""
        template_id = self._require_id(template, "register run template")
        with self._store.begin() as uow:
            self.action_on_entity(uow, _REGISTER_RUN_QRY, "register run template", template)
            self.audit.log(uow, LogEvent.RUN, EntityType.TEMPLATE, template)
            with self._wrap("register run template"):
                uow.commit()
        return self.get_by_id(template_id)
