"""Shared fixtures: settings rooted in tmp_path, an opened store, repositories,
and a builder for a pre-0.50 database that exercises the full migration chain.
"""

from __future__ import annotations

import os
import sqlite3
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from dbgl.core.audit import AuditLog
from dbgl.core.db import Store, open_store
from dbgl.core.models import DosboxVersion, Profile
from dbgl.core.settings import Settings
from dbgl.modules.dosbox_versions import DosboxVersionRepository
from dbgl.modules.filters import FilterRepository
from dbgl.modules.lookups import TitledEntityRepository
from dbgl.modules.profiles import ProfileRepository
from dbgl.modules.templates import TemplateRepository


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(data_dir=tmp_path, pool_size=3, pool_timeout=1.0)


@pytest.fixture()
def store(settings: Settings) -> Iterator[Store]:
    """A freshly bootstrapped store at the latest schema version."""
    s, _report = open_store(settings)
    yield s
    s.close()


@pytest.fixture()
def audit(store: Store) -> AuditLog:
    return AuditLog(store)


@pytest.fixture()
def lookups(store: Store) -> TitledEntityRepository:
    return TitledEntityRepository(store)


@pytest.fixture()
def dosbox_repo(store: Store) -> DosboxVersionRepository:
    return DosboxVersionRepository(store)


@pytest.fixture()
def template_repo(store: Store) -> TemplateRepository:
    return TemplateRepository(store)


@pytest.fixture()
def profile_repo(store: Store) -> ProfileRepository:
    return ProfileRepository(store)


@pytest.fixture()
def filter_repo(store: Store) -> FilterRepository:
    return FilterRepository(store)


@pytest.fixture()
def dosbox_version(dosbox_repo: DosboxVersionRepository) -> DosboxVersion:
    return dosbox_repo.add(
        DosboxVersion(title="DOSBox 0.74-3", version="0.74", path="/opt/dosbox", is_default=True)
    )


@pytest.fixture()
def make_profile(dosbox_version: DosboxVersion) -> Callable[..., Profile]:
    """Factory for unsaved profiles bound to the default DOSBox version."""

    def _make(title: str = "Commander Keen", **overrides: object) -> Profile:
        fields: dict[str, object] = {
            "title": title,
            "dosbox_version_id": dosbox_version.id,
            "developer": "id Software",
            "publisher": "Apogee",
            "genre": "Platform",
            "year": "1990",
            "status": "Finished",
        }
        fields.update(overrides)
        return Profile(**fields)  # type: ignore[arg-type]

    return _make


# ── Legacy (pre-0.50) database ──────────────────────────────
LEGACY_SCHEMA = (
    "CREATE TABLE DEVELOPERS (ID INTEGER PRIMARY KEY, NAME VARCHAR(256) NOT NULL)",
    "CREATE TABLE PUBLISHERS (ID INTEGER PRIMARY KEY, NAME VARCHAR(256) NOT NULL)",
    "CREATE TABLE GENRES (ID INTEGER PRIMARY KEY, NAME VARCHAR(256) NOT NULL)",
    "CREATE TABLE PUBLYEARS (ID INTEGER PRIMARY KEY, YEAR INTEGER NOT NULL)",
    "CREATE TABLE STATUS (ID INTEGER PRIMARY KEY, STAT VARCHAR(256) NOT NULL)",
    'CREATE TABLE DOSBOXVERSIONS (ID INTEGER PRIMARY KEY, TITLE VARCHAR(256) NOT NULL, '
    'PATH VARCHAR(256) NOT NULL, MULTICONF BOOLEAN, "DEFAULT" BOOLEAN)',
    'CREATE TABLE TEMPLATES (ID INTEGER PRIMARY KEY, TITLE VARCHAR(256) NOT NULL, '
    'DBVERSION_ID INTEGER REFERENCES DOSBOXVERSIONS(ID), "DEFAULT" BOOLEAN)',
    "CREATE TABLE GAMES (ID INTEGER PRIMARY KEY, TITLE VARCHAR(256) NOT NULL, "
    "DEV_ID INTEGER REFERENCES DEVELOPERS(ID), PUBL_ID INTEGER REFERENCES PUBLISHERS(ID), "
    "GENRE_ID INTEGER REFERENCES GENRES(ID), YEAR_ID INTEGER REFERENCES PUBLYEARS(ID), "
    "STAT_ID INTEGER REFERENCES STATUS(ID), NOTES TEXT, FAVORITE BOOLEAN, "
    "SETUP VARCHAR(256), SETUP_PARAMS VARCHAR(256), "
    "DBVERSION_ID INTEGER REFERENCES DOSBOXVERSIONS(ID), LINK1 VARCHAR(256), LINK2 VARCHAR(256))",
)

LEGACY_GAME_ID = 3


def legacy_link(data_dir: Path) -> str:
    """An absolute link inside the data directory, as stored before 0.94."""
    return f"{data_dir}{os.sep}docs{os.sep}keen.txt"


def build_legacy_db(db_path: Path, data_dir: Path) -> None:
    """Write a small pre-0.50 database (no VERSION table) to *db_path*."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    try:
        for sql in LEGACY_SCHEMA:
            conn.execute(sql)
        conn.execute("INSERT INTO DEVELOPERS VALUES (0, 'id Software')")
        conn.execute("INSERT INTO PUBLISHERS VALUES (0, 'Apogee')")
        conn.execute("INSERT INTO GENRES VALUES (0, 'Platform')")
        conn.execute("INSERT INTO PUBLYEARS VALUES (0, 1990)")
        conn.execute("INSERT INTO STATUS VALUES (0, 'Finished')")
        conn.execute("INSERT INTO DOSBOXVERSIONS VALUES (0, 'DOSBox 0.72', '/opt/dosbox', 0, 1)")
        conn.execute("INSERT INTO TEMPLATES VALUES (0, 'Default template', 0, 1)")
        conn.execute(
            "INSERT INTO GAMES VALUES (?, 'Commander Keen', 0, 0, 0, 0, 0, 'episode 1', 1, "
            "'SETUP.EXE', '', 0, ?, 'http://example.com/keen')",
            (LEGACY_GAME_ID, legacy_link(data_dir)),
        )
        conn.commit()
    finally:
        conn.close()


@pytest.fixture()
def legacy_settings(settings: Settings) -> Settings:
    """Settings whose database file holds a pre-0.50 store."""
    assert settings.data_dir is not None
    build_legacy_db(settings.db_path, settings.data_dir)
    return settings


@pytest.fixture()
def build_legacy() -> Callable[[Path, Path], None]:
    """The legacy database builder, for tests that need their own settings."""
    return build_legacy_db
