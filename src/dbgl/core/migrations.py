"""Schema version gate and migration engine.

The store carries its schema version in a single-row ``VERSION`` table.
On start-up the engine:

1. Probes the catalog.  A store without a ``GAMES`` table is
   uninitialized and gets the current schema in one bootstrap step
   (:mod:`dbgl.core.schema`); the historical chain is never replayed for
   a new store.
2. Reads the stored version (``0.0`` when there is no ``VERSION`` table,
   which is how stores older than 0.50 look).
3. Applies, in ascending order, every registered step whose target minor
   is above the stored one.

Step rules
----------
* A step runs as one Unit of Work: its DDL, its data rewrite and its
  version bump commit together or not at all.
* Foreign keys are switched off while a step runs so tables can be
  rebuilt; ``PRAGMA foreign_key_check`` must come back clean before the
  step commits.
* After the statements the stored version must equal the step target,
  otherwise the step is rolled back and reported as failed.
* A failed step stops the run.  Nothing is skipped or retried.

Steps that need a runtime value (the data directory, the path separator)
take a ``params`` callable.  The mapping it returns is bound by name to
every statement of the step; values never reach the SQL text.
"""

from __future__ import annotations

import os
import sqlite3
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from dbgl.core.errors import MigrationError, StoreConnectionError
from dbgl.core.models import SchemaVersion
from dbgl.core.schema import BOOTSTRAP_STATEMENTS, LATEST_MAJOR, LATEST_MINOR

if TYPE_CHECKING:
    from dbgl.core.db import Store

logger = structlog.get_logger()

# Relative layout of a data directory.
CAPTURES_DIR = "captures"
PROFILES_DIR = "profiles"
CONF_EXT = ".conf"
DOSBOX_CONF = "dosbox.conf"


class StoreState(str, Enum):
    INITIALIZED = "initialized"
    UNINITIALIZED = "uninitialized"


@dataclass(frozen=True)
class MigrationContext:
    """Runtime values a parameterized step may bind."""

    data_dir: Path
    separator: str = os.sep


@dataclass(frozen=True)
class MigrationStep:
    target_minor: int
    statements: tuple[str, ...]
    params: Callable[[MigrationContext], Mapping[str, Any]] | None = None
    description: str = ""
    major: int = 0


@dataclass
class MigrationReport:
    initialized_new: bool
    applied: list[int] = field(default_factory=list)
    version: SchemaVersion = SchemaVersion(0, 0)


def _bump(minor: int) -> str:
    return f"UPDATE VERSION SET MINORVERSION = {minor}"


def _step(
    target_minor: int,
    *statements: str,
    params: Callable[[MigrationContext], Mapping[str, Any]] | None = None,
    description: str = "",
) -> MigrationStep:
    """Build a step whose last statement records *target_minor*."""
    return MigrationStep(
        target_minor=target_minor,
        statements=(*statements, _bump(target_minor)),
        params=params,
        description=description,
    )


def _add_columns(table: str, *definitions: str) -> tuple[str, ...]:
    return tuple(f"ALTER TABLE {table} ADD COLUMN {d}" for d in definitions)


def _rebuild(table: str, columns: str, select: str) -> tuple[str, ...]:
    """Change a column type the SQLite way: copy into a new table and swap."""
    return (
        f"CREATE TABLE {table}_NEW ({columns})",
        f"INSERT INTO {table}_NEW {select}",
        f"DROP TABLE {table}",
        f"ALTER TABLE {table}_NEW RENAME TO {table}",
    )


# SQLite refuses a non-constant default in ADD COLUMN; existing rows get
# this placeholder and are backfilled with CURRENT_TIMESTAMP.
_EPOCH = "'1970-01-01 00:00:00'"


def _v050_params(ctx: MigrationContext) -> dict[str, str]:
    return {
        "captures_prefix": CAPTURES_DIR + ctx.separator,
        "profiles_prefix": PROFILES_DIR + ctx.separator,
        "conf_ext": CONF_EXT,
    }


def _v072_params(ctx: MigrationContext) -> dict[str, str]:
    return {"conf_suffix": ctx.separator + DOSBOX_CONF}


def _v094_params(ctx: MigrationContext) -> dict[str, str]:
    return {"prefix": str(ctx.data_dir) + ctx.separator}


HISTORY: tuple[MigrationStep, ...] = (
    MigrationStep(
        target_minor=50,
        statements=(
            *_add_columns("GAMES", "CONFFILE VARCHAR(256)", "CAPTURES VARCHAR(256)"),
            "CREATE TABLE VERSION (MAJORVERSION INTEGER NOT NULL, MINORVERSION INTEGER NOT NULL)",
            "UPDATE GAMES SET CAPTURES = :captures_prefix || ID, "
            "CONFFILE = :profiles_prefix || ID || :conf_ext",
            "INSERT INTO VERSION VALUES (0, 50)",
        ),
        params=_v050_params,
        description="profile conf files and captures, version table",
    ),
    _step(
        51,
        *_add_columns("DOSBOXVERSIONS", "PARAMETERS VARCHAR(256) DEFAULT ''"),
        description="DOSBox parameters",
    ),
    _step(
        56,
        *_add_columns(
            "GAMES",
            "LINK3 VARCHAR(256) DEFAULT ''",
            "LINK4 VARCHAR(256) DEFAULT ''",
            *(f"CUST{i}_ID INTEGER DEFAULT 0" for i in range(1, 5)),
            *(f"CUSTOM{i} VARCHAR(256) DEFAULT ''" for i in range(5, 9)),
            "CUSTOM9 INTEGER DEFAULT 0",
            "CUSTOM10 INTEGER DEFAULT 0",
        ),
        *(
            f"CREATE TABLE CUSTOM{i} (ID INTEGER PRIMARY KEY AUTOINCREMENT, VALUE VARCHAR(256) NOT NULL)"
            for i in range(1, 5)
        ),
        *(f"INSERT INTO CUSTOM{i}(ID, VALUE) VALUES (0, '')" for i in range(1, 5)),
        description="custom fields",
    ),
    _step(
        62,
        *_add_columns("DOSBOXVERSIONS", "VERSION VARCHAR(256) NOT NULL DEFAULT '0.72'"),
        description="DOSBox version number",
    ),
    _step(
        65,
        *_add_columns("GAMES", *(f"LINK{i}_TITLE VARCHAR(256) DEFAULT ''" for i in range(1, 5))),
        description="link titles",
    ),
    _step(
        67,
        *_add_columns("DOSBOXVERSIONS", "USINGCURSES BOOLEAN"),
        description="curses flag",
    ),
    _step(
        68,
        "CREATE TABLE FILTERS (ID INTEGER PRIMARY KEY AUTOINCREMENT, TITLE VARCHAR(256) NOT NULL, "
        "FILTER VARCHAR(256) NOT NULL, CONF_FILTER VARCHAR(256) NOT NULL)",
        description="filters",
    ),
    _step(
        72,
        *_add_columns("DOSBOXVERSIONS", "CONFFILE VARCHAR(256) NOT NULL DEFAULT ''"),
        "UPDATE DOSBOXVERSIONS SET CONFFILE = PATH || :conf_suffix",
        params=_v072_params,
        description="DOSBox conf file",
    ),
    _step(
        73,
        *_add_columns(
            "GAMES",
            "ALT1 VARCHAR(256) DEFAULT ''",
            "ALT1_PARAMS VARCHAR(256) DEFAULT ''",
            "ALT2 VARCHAR(256) DEFAULT ''",
            "ALT2_PARAMS VARCHAR(256) DEFAULT ''",
            *(f"LINK{i} VARCHAR(256) DEFAULT ''" for i in range(5, 9)),
            *(f"LINK{i}_TITLE VARCHAR(256) DEFAULT ''" for i in range(5, 9)),
        ),
        description="alternative executables, links 5-8",
    ),
    _step(
        74,
        'ALTER TABLE DOSBOXVERSIONS RENAME COLUMN "DEFAULT" TO ISDEFAULT',
        'ALTER TABLE TEMPLATES RENAME COLUMN "DEFAULT" TO ISDEFAULT',
        description="default flag rename",
    ),
    _step(
        75,
        "CREATE TABLE NATIVECOMMANDS (ID INTEGER PRIMARY KEY AUTOINCREMENT, "
        "COMMAND VARCHAR(256) NOT NULL, PARAMETERS VARCHAR(256) NOT NULL, CWD VARCHAR(256) NOT NULL, "
        "WAITFOR BOOLEAN, ORDERNR INTEGER, "
        "GAME_ID INTEGER REFERENCES GAMES(ID), TEMPLATE_ID INTEGER REFERENCES TEMPLATES(ID))",
        description="native commands",
    ),
    _step(
        76,
        *_add_columns(
            "GAMES",
            f"STATS_CREATED TIMESTAMP NOT NULL DEFAULT {_EPOCH}",
            "STATS_LASTMODIFY TIMESTAMP",
            "STATS_LASTRUN TIMESTAMP",
            "STATS_RUNS INTEGER NOT NULL DEFAULT 0",
            "STATS_LASTSETUP TIMESTAMP",
            "STATS_SETUPS INTEGER NOT NULL DEFAULT 0",
        ),
        *(
            stmt
            for table in ("DOSBOXVERSIONS", "TEMPLATES")
            for stmt in _add_columns(
                table,
                f"STATS_CREATED TIMESTAMP NOT NULL DEFAULT {_EPOCH}",
                "STATS_LASTMODIFY TIMESTAMP",
                "STATS_LASTRUN TIMESTAMP",
                "STATS_RUNS INTEGER NOT NULL DEFAULT 0",
            )
        ),
        *(
            f"UPDATE {table} SET STATS_CREATED = CURRENT_TIMESTAMP"
            for table in ("GAMES", "DOSBOXVERSIONS", "TEMPLATES")
        ),
        description="statistics",
    ),
    _step(
        77,
        "CREATE TABLE LOG (ID INTEGER PRIMARY KEY AUTOINCREMENT, "
        "TIME TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP, "
        "EVENT TINYINT NOT NULL, ENTITY_TYPE TINYINT NOT NULL, "
        "ENTITY_ID INTEGER NOT NULL, ENTITY_TITLE VARCHAR(256) NOT NULL)",
        description="audit log",
    ),
    _step(
        81,
        *_add_columns("GAMES", *(f"CUSTOM{i} VARCHAR(256) DEFAULT ''" for i in range(11, 15))),
        description="custom fields 11-14",
    ),
    _step(
        90,
        *_add_columns("DOSBOXVERSIONS", "EXEFILE VARCHAR(256) NOT NULL DEFAULT ''"),
        description="DOSBox executable",
    ),
    _step(
        92,
        *_rebuild(
            "PUBLYEARS",
            "ID INTEGER PRIMARY KEY AUTOINCREMENT, YEAR VARCHAR(256) NOT NULL",
            "(ID, YEAR) SELECT ID, CAST(YEAR AS TEXT) FROM PUBLYEARS",
        ),
        description="textual years",
    ),
    _step(
        93,
        *_add_columns("GAMES", "MOUNT_IDX INTEGER DEFAULT 0"),
        *_add_columns("DOSBOXVERSIONS", "DYNAMIC_OPTIONS TEXT DEFAULT NULL"),
        description="mount index, dynamic options",
    ),
    _step(
        94,
        *(
            f"UPDATE GAMES SET LINK{i} = substr(LINK{i}, length(:prefix) + 1) "
            f"WHERE substr(LINK{i}, 1, length(:prefix)) = :prefix"
            for i in range(1, 9)
        ),
        params=_v094_params,
        description="links relative to the data directory",
    ),
    _step(
        98,
        *_rebuild(
            "FILTERS",
            "ID INTEGER PRIMARY KEY AUTOINCREMENT, TITLE VARCHAR(256) NOT NULL, "
            "FILTER TEXT NOT NULL, CONF_FILTER VARCHAR(256) NOT NULL",
            "(ID, TITLE, FILTER, CONF_FILTER) SELECT ID, TITLE, FILTER, CONF_FILTER FROM FILTERS",
        ),
        description="long filter text",
    ),
)


class MigrationEngine:
    """Bootstraps or upgrades the schema of one store.

    Parameters
    ----------
    store:
        The open store.  The engine assumes no other traffic while it runs.
    steps:
        Registered steps (default: :data:`HISTORY`).  Targets must be unique.
    context:
        Runtime values for parameterized steps.  Defaults to the store's
        data directory and ``os.sep``.
    """

    def __init__(
        self,
        store: Store,
        steps: Sequence[MigrationStep] = HISTORY,
        *,
        context: MigrationContext | None = None,
    ) -> None:
        targets = [s.target_minor for s in steps]
        duplicates = sorted({t for t in targets if targets.count(t) > 1})
        if duplicates:
            raise ValueError(f"duplicate migration targets: {duplicates}")

        self._store = store
        self._steps = sorted(steps, key=lambda s: s.target_minor)
        if context is None:
            assert store.settings.data_dir is not None  # guaranteed after validation
            context = MigrationContext(data_dir=store.settings.data_dir)
        self._context = context

    @property
    def steps(self) -> list[MigrationStep]:
        return list(self._steps)

    @property
    def latest(self) -> SchemaVersion:
        """Version a fully migrated store ends up at."""
        top = max((s.target_minor for s in self._steps), default=LATEST_MINOR)
        return SchemaVersion(LATEST_MAJOR, max(top, LATEST_MINOR))

    # ── Version gate ────────────────────────────────────────
    def probe(self) -> StoreState:
        """Classify the store by an explicit catalog lookup."""
        if self._table_exists("GAMES"):
            return StoreState.INITIALIZED
        return StoreState.UNINITIALIZED

    def current_version(self) -> SchemaVersion:
        """Stored schema version, ``0.0`` when the version row is missing or unreadable."""
        if not self._table_exists("VERSION"):
            return SchemaVersion(0, 0)
        try:
            with self._store.connection() as conn:
                row = conn.execute("SELECT MAJORVERSION, MINORVERSION FROM VERSION").fetchone()
        except sqlite3.Error as exc:
            logger.warning("schema_version_unreadable", error=str(exc))
            return SchemaVersion(0, 0)
        if row is None:
            return SchemaVersion(0, 0)
        return SchemaVersion(row[0], row[1])

    def _table_exists(self, name: str) -> bool:
        try:
            with self._store.connection() as conn:
                row = conn.execute(
                    "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ? COLLATE NOCASE",
                    (name,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreConnectionError(f"cannot read the schema catalog: {exc}") from exc
        return row is not None

    # ── Run ─────────────────────────────────────────────────
    def run(self) -> MigrationReport:
        """Bring the store to :attr:`latest`.

        Raises
        ------
        MigrationError
            If the bootstrap or any step fails.  Steps applied before the
            failure stay committed.
        """
        report = MigrationReport(initialized_new=False)

        if self.probe() is StoreState.UNINITIALIZED:
            self._bootstrap()
            report.initialized_new = True

        version = self.current_version()
        for step in self._steps:
            if version.major <= step.major and version.minor < step.target_minor:
                version = self._apply(step)
                report.applied.append(step.target_minor)

        report.version = version
        logger.info(
            "schema_ready",
            version=str(version),
            initialized_new=report.initialized_new,
            applied=len(report.applied),
        )
        return report

    def _bootstrap(self) -> None:
        logger.info("schema_bootstrap_started", target=f"{LATEST_MAJOR}.{LATEST_MINOR}")
        try:
            with self._store.begin() as uow:
                for sql in BOOTSTRAP_STATEMENTS:
                    uow.exec(sql)
                uow.commit()
        except sqlite3.Error as exc:
            raise MigrationError(LATEST_MAJOR, LATEST_MINOR, f"create initial tables: {exc}") from exc
        logger.info("schema_bootstrapped", version=f"{LATEST_MAJOR}.{LATEST_MINOR}")

    def _apply(self, step: MigrationStep) -> SchemaVersion:
        target = SchemaVersion(step.major, step.target_minor)
        logger.info("migration_step_started", target=str(target), description=step.description)
        params = step.params(self._context) if step.params is not None else {}

        try:
            with self._store.begin(enforce_foreign_keys=False) as uow:
                for sql in step.statements:
                    logger.debug("migration_statement", target=str(target), sql=sql)
                    uow.exec(sql, params)

                violations = uow.query("PRAGMA foreign_key_check")
                if violations:
                    raise MigrationError(
                        step.major,
                        step.target_minor,
                        f"{len(violations)} foreign key violation(s), first in table {violations[0][0]}",
                    )

                row = uow.query_one("SELECT MAJORVERSION, MINORVERSION FROM VERSION")
                stored = SchemaVersion(row[0], row[1]) if row is not None else None
                if stored != target:
                    raise MigrationError(
                        step.major, step.target_minor, f"step left the store at version {stored}"
                    )
                uow.commit()
        except sqlite3.Error as exc:
            raise MigrationError(step.major, step.target_minor, str(exc)) from exc

        logger.info("migration_step_applied", version=str(target))
        return target
