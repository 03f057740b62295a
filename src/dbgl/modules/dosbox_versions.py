"""DOSBox versions repository (``DOSBOXVERSIONS``).

At most one version carries the default flag.  Adding or updating a
version with ``is_default=True`` first clears the flag on every row, in
the same Unit of Work as the write.

A version cannot be removed while profiles or templates still point at
it; :meth:`DosboxVersionRepository.remove` reports the first few of them.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Sequence
from dataclasses import replace

import structlog

from dbgl.core.audit import AuditLog
from dbgl.core.db import Store
from dbgl.core.errors import ReferentialBlockError
from dbgl.core.models import DosboxVersion, EntityType, LogEvent, Stats
from dbgl.core.repository import BaseRepository, find_default, parse_timestamp

logger = structlog.get_logger()

# Number of blocking titles quoted when a removal is refused.
USAGE_PREVIEW = 10

_COLUMNS = (
    "ID, TITLE, VERSION, ISDEFAULT, MULTICONF, USINGCURSES, PATH, EXEFILE, PARAMETERS, CONFFILE, "
    "STATS_CREATED, STATS_LASTMODIFY, STATS_LASTRUN, STATS_RUNS, DYNAMIC_OPTIONS"
)
_CREATE_QRY = (
    "INSERT INTO DOSBOXVERSIONS(TITLE, VERSION, ISDEFAULT, MULTICONF, USINGCURSES, PATH, EXEFILE, "
    "PARAMETERS, CONFFILE, DYNAMIC_OPTIONS, STATS_CREATED) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)"
)
_READ_QRY = f"SELECT {_COLUMNS} FROM DOSBOXVERSIONS ORDER BY TITLE"
_READ_BY_ID_QRY = f"SELECT {_COLUMNS} FROM DOSBOXVERSIONS WHERE ID = ?"
_UPD_QRY = (
    "UPDATE DOSBOXVERSIONS SET TITLE = ?, VERSION = ?, ISDEFAULT = ?, MULTICONF = ?, USINGCURSES = ?, "
    "PATH = ?, EXEFILE = ?, PARAMETERS = ?, CONFFILE = ?, STATS_LASTMODIFY = CURRENT_TIMESTAMP, "
    "DYNAMIC_OPTIONS = ? WHERE ID = ?"
)
_UPD_NODEFAULT_QRY = "UPDATE DOSBOXVERSIONS SET ISDEFAULT = 0"
_DEL_QRY = "DELETE FROM DOSBOXVERSIONS WHERE ID = ?"
_REGISTER_RUN_QRY = (
    "UPDATE DOSBOXVERSIONS SET STATS_LASTRUN = CURRENT_TIMESTAMP, STATS_RUNS = STATS_RUNS + 1 WHERE ID = ?"
)
_USAGE_QRY = (
    "SELECT TITLE FROM GAMES WHERE DBVERSION_ID = ? "
    "UNION ALL SELECT TITLE FROM TEMPLATES WHERE DBVERSION_ID = ?"
)


def _values(dbv: DosboxVersion) -> tuple[object, ...]:
    return (
        dbv.title,
        dbv.version,
        dbv.is_default,
        dbv.multi_config,
        dbv.using_curses,
        dbv.path,
        dbv.exe,
        dbv.parameters,
        dbv.conf_file,
        json.dumps(dbv.dynamic_options) if dbv.dynamic_options else None,
    )


def _to_dosbox_version(row: sqlite3.Row) -> DosboxVersion:
    options = row["DYNAMIC_OPTIONS"]
    return DosboxVersion(
        id=row["ID"],
        title=row["TITLE"],
        version=row["VERSION"],
        is_default=bool(row["ISDEFAULT"]),
        multi_config=bool(row["MULTICONF"]),
        using_curses=bool(row["USINGCURSES"]),
        path=row["PATH"],
        exe=row["EXEFILE"] or "",
        parameters=row["PARAMETERS"] or "",
        conf_file=row["CONFFILE"] or "",
        dynamic_options=json.loads(options) if options else {},
        stats=Stats(
            created=parse_timestamp(row["STATS_CREATED"]),
            modified=parse_timestamp(row["STATS_LASTMODIFY"]),
            last_run=parse_timestamp(row["STATS_LASTRUN"]),
            runs=row["STATS_RUNS"],
        ),
    )


def find_best_match(versions: Sequence[DosboxVersion], wanted: DosboxVersion) -> DosboxVersion | None:
    """Pick the configured version closest to *wanted*.

    Tried in order: an exact title match, the default version when its
    version number equals *wanted*'s, then the smallest version distance
    (first one wins a tie).  ``None`` only when *versions* is empty.
    """
    for dbv in versions:
        if dbv.title == wanted.title:
            return dbv
    default = find_default(versions)
    if default is not None and default.distance(wanted) == 0:
        return default
    return min(versions, key=lambda v: v.distance(wanted), default=None)


class DosboxVersionRepository(BaseRepository):
    def __init__(self, store: Store) -> None:
        super().__init__(store)
        self.audit = AuditLog(store)

    def add(self, dbv: DosboxVersion) -> DosboxVersion:
        """Insert *dbv* and return it with its new id."""
        with self._wrap("add dosboxversion"), self._store.begin() as uow:
            if dbv.is_default:
                uow.exec(_UPD_NODEFAULT_QRY)
            uow.exec(_CREATE_QRY, _values(dbv))
            stored = replace(dbv, id=self.identity(uow))
            self.audit.log(uow, LogEvent.ADD, EntityType.DOSBOXVERSION, stored)
            uow.commit()
        logger.info("dosboxversion_added", dosboxversion_id=stored.id, is_default=stored.is_default)
        return stored

    def list_all(self) -> list[DosboxVersion]:
        """Every version, ordered by title."""
        return [_to_dosbox_version(row) for row in self._read("read dosboxversions", _READ_QRY)]

    def get_by_id(self, dosbox_version_id: int) -> DosboxVersion | None:
        rows = self._read(f"read dosboxversion {dosbox_version_id}", _READ_BY_ID_QRY, (dosbox_version_id,))
        return _to_dosbox_version(rows[0]) if rows else None

    def update(self, dbv: DosboxVersion) -> None:
        dbv_id = self._require_id(dbv, "update dosboxversion")
        with self._wrap("update dosboxversion"), self._store.begin() as uow:
            if dbv.is_default:
                uow.exec(_UPD_NODEFAULT_QRY)
            uow.exec(_UPD_QRY, (*_values(dbv), dbv_id))
            self.audit.log(uow, LogEvent.EDIT, EntityType.DOSBOXVERSION, dbv)
            uow.commit()
        logger.info("dosboxversion_updated", dosboxversion_id=dbv_id)

    def remove(self, dbv: DosboxVersion) -> None:
        """Delete *dbv*.

        Raises
        ------
        ReferentialBlockError
            If any profile or template still uses this version.  Carries
            up to :data:`USAGE_PREVIEW` blocking titles and the total.
        """
        dbv_id = self._require_id(dbv, "remove dosboxversion")
        with self._store.begin() as uow:
            with self._wrap("remove dosboxversion"):
                usages = [row[0] for row in uow.query(_USAGE_QRY, (dbv_id, dbv_id))]
            if usages:
                raise ReferentialBlockError(
                    "remove dosboxversion", dbv.title, usages[:USAGE_PREVIEW], len(usages)
                )
            self.action_on_entity(uow, _DEL_QRY, "remove dosboxversion", dbv)
            self.audit.log(uow, LogEvent.REMOVE, EntityType.DOSBOXVERSION, dbv)
            with self._wrap("remove dosboxversion"):
                uow.commit()
        logger.info("dosboxversion_removed", dosboxversion_id=dbv_id)

    def register_run(self, dbv: DosboxVersion) -> DosboxVersion | None:
        """Bump the run statistics and return the freshly read row."""
        with self._store.begin() as uow:
            self.action_on_entity(uow, _REGISTER_RUN_QRY, "register run dosboxversion", dbv)
            self.audit.log(uow, LogEvent.RUN, EntityType.DOSBOXVERSION, dbv)
            with self._wrap("register run dosboxversion"):
                uow.commit()
        assert dbv.id is not None
        return self.get_by_id(dbv.id)
