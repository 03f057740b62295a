"""Profiles repository (``GAMES`` with its lookup values and native commands).

Lookup values (developer, publisher, genre, year, status, custom 1-4)
are stored as ids into their tables.  Every write resolves them with
find-or-create inside the same Unit of Work as the profile row.

Reads join all nine lookup tables.  The join uses the aliases ``GAM``,
``DEV``, ``PUBL``, ``GEN``, ``YR``, ``STAT`` and ``CUST1`` - ``CUST4``;
filter and ordering fragments passed to :meth:`ProfileRepository.list`
refer to columns through these aliases, e.g. ``"GAM.FAVORITE = 1"`` or
``"ORDER BY GAM.TITLE"``.

Captures and configuration paths
--------------------------------
A profile added without ``captures`` / ``conf_file`` gets them derived
from its new id (``captures/<id>`` and ``profiles/<id>.conf``, relative
to the data directory).  The insert first stores both as NULL and the
same unit then fills them in, so a row with NULL paths only survives an
interrupted write; :meth:`ProfileRepository.list_invalid` finds those.
"""

from __future__ import annotations

import os
import sqlite3
from dataclasses import replace

import structlog

from dbgl.core.audit import AuditLog
from dbgl.core.db import Store, UnitOfWork
from dbgl.core.migrations import CAPTURES_DIR, CONF_EXT, PROFILES_DIR
from dbgl.core.models import (
    NR_OF_ALT_EXECUTABLES,
    NR_OF_CUSTOM_DROPDOWNS,
    NR_OF_LINKS,
    EntityType,
    Link,
    LogEvent,
    NativeCommand,
    Profile,
    ProfileStats,
)
from dbgl.core.repository import BaseRepository, parse_timestamp
from dbgl.modules.lookups import TitledEntityRepository, custom_kind
from dbgl.modules.native_commands import NativeCommandRepository, Owner

logger = structlog.get_logger()

# GAMES columns holding the free-text custom strings 5..12 of a profile.
_CUSTOM_FIELD_COLUMNS = ("CUSTOM5", "CUSTOM6", "CUSTOM7", "CUSTOM8", "CUSTOM11", "CUSTOM12", "CUSTOM13", "CUSTOM14")
_CUSTOM_INT_COLUMNS = ("CUSTOM9", "CUSTOM10")

_READ_QRY = (
    "SELECT GAM.ID, GAM.TITLE, GAM.FAVORITE, DEV.NAME AS DEVELOPER, PUBL.NAME AS PUBLISHER, "
    "GEN.NAME AS GENRE, YR.YEAR AS PUBLYEAR, STAT.STAT AS STATUS, GAM.NOTES, "
    + "".join(f"CUST{i}.VALUE AS CUSTVALUE{i}, " for i in range(1, NR_OF_CUSTOM_DROPDOWNS + 1))
    + "".join(f"GAM.{col}, " for col in _CUSTOM_FIELD_COLUMNS + _CUSTOM_INT_COLUMNS)
    + "".join(f"GAM.LINK{i}_TITLE, GAM.LINK{i}, " for i in range(1, NR_OF_LINKS + 1))
    + "GAM.CAPTURES, GAM.SETUP, GAM.SETUP_PARAMS, GAM.ALT1, GAM.ALT1_PARAMS, GAM.ALT2, GAM.ALT2_PARAMS, "
    "GAM.DBVERSION_ID, GAM.CONFFILE, GAM.STATS_CREATED, GAM.STATS_LASTMODIFY, GAM.STATS_LASTRUN, "
    "GAM.STATS_LASTSETUP, GAM.STATS_RUNS, GAM.STATS_SETUPS "
    "FROM GAMES GAM, DEVELOPERS DEV, PUBLISHERS PUBL, GENRES GEN, PUBLYEARS YR, STATUS STAT, "
    "CUSTOM1 CUST1, CUSTOM2 CUST2, CUSTOM3 CUST3, CUSTOM4 CUST4 "
    "WHERE GAM.DEV_ID = DEV.ID AND GAM.PUBL_ID = PUBL.ID AND GAM.GENRE_ID = GEN.ID "
    "AND GAM.YEAR_ID = YR.ID AND GAM.STAT_ID = STAT.ID "
    "AND GAM.CUST1_ID = CUST1.ID AND GAM.CUST2_ID = CUST2.ID AND GAM.CUST3_ID = CUST3.ID AND GAM.CUST4_ID = CUST4.ID"
)
_READ_BY_ID_QRY = _READ_QRY + " AND GAM.ID = ?"
_READ_INVALID_QRY = _READ_QRY + " AND (GAM.CONFFILE IS NULL OR GAM.CAPTURES IS NULL)"

_SET_PATHS_QRY = "UPDATE GAMES SET CAPTURES = ?, CONFFILE = ? WHERE ID = ?"
_DEL_QRY = "DELETE FROM GAMES WHERE ID = ?"
_REGISTER_RUN_QRY = "UPDATE GAMES SET STATS_LASTRUN = CURRENT_TIMESTAMP, STATS_RUNS = STATS_RUNS + 1 WHERE ID = ?"
_REGISTER_SETUP_QRY = (
    "UPDATE GAMES SET STATS_LASTSETUP = CURRENT_TIMESTAMP, STATS_SETUPS = STATS_SETUPS + 1 WHERE ID = ?"
)


def default_captures(profile_id: int) -> str:
    return os.path.join(CAPTURES_DIR, str(profile_id))


def default_conf_file(profile_id: int) -> str:
    return os.path.join(PROFILES_DIR, f"{profile_id}{CONF_EXT}")


def _to_profile(row: sqlite3.Row, commands: tuple[NativeCommand, ...]) -> Profile:
    return Profile(
        id=row["ID"],
        title=row["TITLE"],
        favorite=bool(row["FAVORITE"]),
        developer=row["DEVELOPER"],
        publisher=row["PUBLISHER"],
        genre=row["GENRE"],
        year=str(row["PUBLYEAR"]),
        status=row["STATUS"],
        notes=row["NOTES"] or "",
        custom_strings=(
            *(row[f"CUSTVALUE{i}"] for i in range(1, NR_OF_CUSTOM_DROPDOWNS + 1)),
            *(row[col] or "" for col in _CUSTOM_FIELD_COLUMNS),
        ),
        custom_ints=tuple(row[col] or 0 for col in _CUSTOM_INT_COLUMNS),
        links=tuple(
            Link(title=row[f"LINK{i}_TITLE"] or "", destination=row[f"LINK{i}"] or "")
            for i in range(1, NR_OF_LINKS + 1)
        ),
        captures=row["CAPTURES"] or "",
        setup=row["SETUP"] or "",
        setup_params=row["SETUP_PARAMS"] or "",
        alt_exes=tuple(row[f"ALT{i}"] or "" for i in range(1, NR_OF_ALT_EXECUTABLES + 1)),
        alt_exe_params=tuple(row[f"ALT{i}_PARAMS"] or "" for i in range(1, NR_OF_ALT_EXECUTABLES + 1)),
        dosbox_version_id=row["DBVERSION_ID"],
        conf_file=row["CONFFILE"] or "",
        native_commands=commands,
        stats=ProfileStats(
            created=parse_timestamp(row["STATS_CREATED"]),
            modified=parse_timestamp(row["STATS_LASTMODIFY"]),
            last_run=parse_timestamp(row["STATS_LASTRUN"]),
            runs=row["STATS_RUNS"],
            last_setup=parse_timestamp(row["STATS_LASTSETUP"]),
            setups=row["STATS_SETUPS"],
        ),
    )


class ProfileRepository(BaseRepository):
    def __init__(self, store: Store) -> None:
        super().__init__(store)
        self.audit = AuditLog(store)
        self.lookups = TitledEntityRepository(store)
        self.commands = NativeCommandRepository(store)

    # ── Column values ───────────────────────────────────────
    def _column_values(self, uow: UnitOfWork, profile: Profile) -> dict[str, object]:
        """Every writable GAMES column for *profile*, lookups resolved to ids."""
        lookup = self.lookups.find_or_create
        values: dict[str, object] = {
            "TITLE": profile.title,
            "FAVORITE": profile.favorite,
            "DEV_ID": lookup(uow, "developers", profile.developer),
            "PUBL_ID": lookup(uow, "publishers", profile.publisher),
            "GENRE_ID": lookup(uow, "genres", profile.genre),
            "YEAR_ID": lookup(uow, "years", profile.year),
            "STAT_ID": lookup(uow, "statuses", profile.status),
            "NOTES": profile.notes,
        }
        for i in range(NR_OF_CUSTOM_DROPDOWNS):
            values[f"CUST{i + 1}_ID"] = lookup(uow, custom_kind(i), profile.custom_strings[i])
        for i, col in enumerate(_CUSTOM_FIELD_COLUMNS):
            values[col] = profile.custom_strings[NR_OF_CUSTOM_DROPDOWNS + i]
        for i, col in enumerate(_CUSTOM_INT_COLUMNS):
            values[col] = profile.custom_ints[i]
        for i, link in enumerate(profile.links, start=1):
            values[f"LINK{i}_TITLE"] = link.title
            values[f"LINK{i}"] = link.destination
        values["CAPTURES"] = profile.captures
        values["SETUP"] = profile.setup
        values["SETUP_PARAMS"] = profile.setup_params
        for i in range(NR_OF_ALT_EXECUTABLES):
            values[f"ALT{i + 1}"] = profile.alt_exes[i]
            values[f"ALT{i + 1}_PARAMS"] = profile.alt_exe_params[i]
        values["DBVERSION_ID"] = profile.dosbox_version_id
        values["CONFFILE"] = profile.conf_file
        return values

    # ── Create ──────────────────────────────────────────────
    def add(self, profile: Profile) -> Profile:
        """Insert *profile* and return it with its id and derived paths.

        A profile that already carries an id is inserted under that id
        (used when restoring profiles whose files already exist).
        """
        with self._wrap("add profile"), self._store.begin() as uow:
            stored = self._do_add(uow, profile)
            self.audit.log(uow, LogEvent.ADD, EntityType.PROFILE, stored)
            uow.commit()
        logger.info("profile_added", profile_id=stored.id)
        return stored

    def _do_add(self, uow: UnitOfWork, profile: Profile) -> Profile:
        values = self._column_values(uow, profile)
        values["CAPTURES"] = None
        values["CONFFILE"] = None
        if profile.id is not None:
            values["ID"] = profile.id

        columns = ", ".join(values)
        placeholders = ", ".join(f":{col}" for col in values)
        uow.exec(
            f"INSERT INTO GAMES({columns}, STATS_CREATED) VALUES ({placeholders}, CURRENT_TIMESTAMP)",
            values,
        )
        profile_id = profile.id if profile.id is not None else self.identity(uow)

        self.commands.add_all(uow, Owner.PROFILE, profile_id, profile.native_commands)

        stored = replace(
            profile,
            id=profile_id,
            captures=profile.captures or default_captures(profile_id),
            conf_file=profile.conf_file or default_conf_file(profile_id),
        )
        uow.exec(_SET_PATHS_QRY, (stored.captures, stored.conf_file, profile_id))
        return stored

    # ── Read ────────────────────────────────────────────────
    def _read_profiles(self, action: str, sql: str, params: tuple[object, ...] = ()) -> list[Profile]:
        rows = self._read(action, sql, params)
        if not rows:
            return []
        owner_id = rows[0]["ID"] if len(rows) == 1 else None
        commands = self.commands.by_owner(Owner.PROFILE, owner_id)
        return [_to_profile(row, commands.get(row["ID"], ())) for row in rows]

    def list(self, order_by_clause: str = "", filter_clause: str = "") -> list[Profile]:
        """Profiles matching *filter_clause*, sorted by *order_by_clause*.

        Both fragments are appended verbatim (``AND (<filter>)`` and the
        ordering clause as given).  They are trusted input: saved filters
        and sort orders built by the application, never user-typed text.
        """
        sql = _READ_QRY
        if filter_clause.strip():
            sql += f" AND ({filter_clause})"
        if order_by_clause.strip():
            sql += f" {order_by_clause.strip()}"
        return self._read_profiles("read profiles", sql)

    def get_by_id(self, profile_id: int) -> Profile | None:
        found = self._read_profiles(f"read profile {profile_id}", _READ_BY_ID_QRY, (profile_id,))
        return found[0] if found else None

    def list_invalid(self) -> list[Profile]:
        """Profiles without a conf file or captures path."""
        return self._read_profiles("list invalid profiles", _READ_INVALID_QRY)

    # ── Update / delete ─────────────────────────────────────
    def update(self, profile: Profile) -> None:
        """Rewrite the row, resolving lookups, and replace its native commands."""
        profile_id = self._require_id(profile, "update profile")
        with self._wrap("update profile"), self._store.begin() as uow:
            values = self._column_values(uow, profile)
            assignments = ", ".join(f"{col} = :{col}" for col in values)
            uow.exec(
                f"UPDATE GAMES SET {assignments}, STATS_LASTMODIFY = CURRENT_TIMESTAMP WHERE ID = :ID",
                {**values, "ID": profile_id},
            )
            self.commands.replace_all(uow, Owner.PROFILE, profile_id, profile.native_commands)
            self.audit.log(uow, LogEvent.EDIT, EntityType.PROFILE, profile)
            uow.commit()
        logger.info("profile_updated", profile_id=profile_id)

    def remove(self, profile: Profile) -> None:
        profile_id = self._require_id(profile, "remove profile")
        with self._store.begin() as uow:
            self.commands.remove_all(uow, Owner.PROFILE, profile_id)
            self.action_on_entity(uow, _DEL_QRY, "remove profile", profile)
            self.audit.log(uow, LogEvent.REMOVE, EntityType.PROFILE, profile)
            with self._wrap("remove profile"):
                uow.commit()
        logger.info("profile_removed", profile_id=profile_id)

    def duplicate(self, profile: Profile) -> Profile:
        """Store a copy of *profile* under a new id with its own paths."""
        self._require_id(profile, "duplicate profile")
        copy = replace(profile, id=None, captures="", conf_file="", stats=ProfileStats())
        with self._wrap("duplicate profile"), self._store.begin() as uow:
            self.audit.log(uow, LogEvent.DUPLICATE, EntityType.PROFILE, profile)
            stored = self._do_add(uow, copy)
            self.audit.log(uow, LogEvent.ADD, EntityType.PROFILE, stored)
            uow.commit()
        logger.info("profile_duplicated", source_id=profile.id, profile_id=stored.id)
        return stored

    # ── Statistics ──────────────────────────────────────────
    def register_run(self, profile: Profile) -> Profile | None:
        return self._register(profile, _REGISTER_RUN_QRY, "register run profile", LogEvent.RUN)

    def register_setup(self, profile: Profile) -> Profile | None:
        return self._register(profile, _REGISTER_SETUP_QRY, "register setup profile", LogEvent.SETUP)

    def _register(self, profile: Profile, sql: str, action: str, event: LogEvent) -> Profile | None:
        profile_id = self._require_id(profile, action)
        with self._store.begin() as uow:
            self.action_on_entity(uow, sql, action, profile)
            self.audit.log(uow, event, EntityType.PROFILE, profile)
            with self._wrap(action):
                uow.commit()
        return self.get_by_id(profile_id)
