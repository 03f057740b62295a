"""Current (0.98) DBGL schema, created in one go for a brand-new store.

Existing stores reach the same shape through the historical steps in
:mod:`dbgl.core.migrations`; a fresh store skips that chain entirely.

Conventions
-----------
* ``INTEGER PRIMARY KEY AUTOINCREMENT`` so ids of deleted rows are never
  handed out again.
* Timestamps are SQLite ``CURRENT_TIMESTAMP`` text (UTC,
  ``YYYY-MM-DD HH:MM:SS``).
* Booleans are stored as 0/1.
* ``DOSBOXVERSIONS.DYNAMIC_OPTIONS`` holds a JSON object.
* Each ``CUSTOMn`` lookup table starts with an empty-string row at id 0.
"""

from __future__ import annotations

LATEST_MAJOR = 0
LATEST_MINOR = 98

# Lookup tables: (table, value column).  Shared with the repositories.
LOOKUP_TABLES: dict[str, tuple[str, str]] = {
    "developers": ("DEVELOPERS", "NAME"),
    "publishers": ("PUBLISHERS", "NAME"),
    "genres": ("GENRES", "NAME"),
    "years": ("PUBLYEARS", "YEAR"),
    "statuses": ("STATUS", "STAT"),
    "custom1": ("CUSTOM1", "VALUE"),
    "custom2": ("CUSTOM2", "VALUE"),
    "custom3": ("CUSTOM3", "VALUE"),
    "custom4": ("CUSTOM4", "VALUE"),
}


def _lookup_table(table: str, column: str) -> str:
    return (
        f"CREATE TABLE {table} ("
        "ID INTEGER PRIMARY KEY AUTOINCREMENT, "
        f"{column} VARCHAR(256) NOT NULL)"
    )


def _link_columns() -> str:
    links = ", ".join(f"LINK{i} VARCHAR(256) DEFAULT ''" for i in range(1, 9))
    titles = ", ".join(f"LINK{i}_TITLE VARCHAR(256) DEFAULT ''" for i in range(1, 9))
    return f"{links}, {titles}"


CREATE_TABLES: tuple[str, ...] = (
    "CREATE TABLE VERSION (MAJORVERSION INTEGER NOT NULL, MINORVERSION INTEGER NOT NULL)",
    *(_lookup_table(table, column) for table, column in LOOKUP_TABLES.values()),
    """
    CREATE TABLE DOSBOXVERSIONS (
        ID               INTEGER PRIMARY KEY AUTOINCREMENT,
        TITLE            VARCHAR(256) NOT NULL,
        PATH             VARCHAR(256) NOT NULL,
        EXEFILE          VARCHAR(256) NOT NULL DEFAULT '',
        CONFFILE         VARCHAR(256) NOT NULL DEFAULT '',
        MULTICONF        BOOLEAN,
        ISDEFAULT        BOOLEAN,
        PARAMETERS       VARCHAR(256) DEFAULT '',
        VERSION          VARCHAR(256) NOT NULL,
        USINGCURSES      BOOLEAN,
        STATS_CREATED    TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        STATS_LASTMODIFY TIMESTAMP,
        STATS_LASTRUN    TIMESTAMP,
        STATS_RUNS       INTEGER NOT NULL DEFAULT 0,
        DYNAMIC_OPTIONS  TEXT DEFAULT NULL
    )
    """,
    """
    CREATE TABLE TEMPLATES (
        ID               INTEGER PRIMARY KEY AUTOINCREMENT,
        TITLE            VARCHAR(256) NOT NULL,
        DBVERSION_ID     INTEGER REFERENCES DOSBOXVERSIONS(ID),
        ISDEFAULT        BOOLEAN,
        STATS_CREATED    TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        STATS_LASTMODIFY TIMESTAMP,
        STATS_LASTRUN    TIMESTAMP,
        STATS_RUNS       INTEGER NOT NULL DEFAULT 0
    )
    """,
    f"""
    CREATE TABLE GAMES (
        ID               INTEGER PRIMARY KEY AUTOINCREMENT,
        TITLE            VARCHAR(256) NOT NULL,
        DEV_ID           INTEGER REFERENCES DEVELOPERS(ID),
        PUBL_ID          INTEGER REFERENCES PUBLISHERS(ID),
        GENRE_ID         INTEGER REFERENCES GENRES(ID),
        YEAR_ID          INTEGER REFERENCES PUBLYEARS(ID),
        STAT_ID          INTEGER REFERENCES STATUS(ID),
        NOTES            TEXT,
        FAVORITE         BOOLEAN,
        SETUP            VARCHAR(256),
        SETUP_PARAMS     VARCHAR(256),
        ALT1             VARCHAR(256) DEFAULT '',
        ALT1_PARAMS      VARCHAR(256) DEFAULT '',
        ALT2             VARCHAR(256) DEFAULT '',
        ALT2_PARAMS      VARCHAR(256) DEFAULT '',
        CONFFILE         VARCHAR(256),
        CAPTURES         VARCHAR(256),
        DBVERSION_ID     INTEGER REFERENCES DOSBOXVERSIONS(ID),
        {_link_columns()},
        CUST1_ID         INTEGER DEFAULT 0,
        CUST2_ID         INTEGER DEFAULT 0,
        CUST3_ID         INTEGER DEFAULT 0,
        CUST4_ID         INTEGER DEFAULT 0,
        CUSTOM5          VARCHAR(256) DEFAULT '',
        CUSTOM6          VARCHAR(256) DEFAULT '',
        CUSTOM7          VARCHAR(256) DEFAULT '',
        CUSTOM8          VARCHAR(256) DEFAULT '',
        CUSTOM9          INTEGER DEFAULT 0,
        CUSTOM10         INTEGER DEFAULT 0,
        CUSTOM11         VARCHAR(256) DEFAULT '',
        CUSTOM12         VARCHAR(256) DEFAULT '',
        CUSTOM13         VARCHAR(256) DEFAULT '',
        CUSTOM14         VARCHAR(256) DEFAULT '',
        MOUNT_IDX        INTEGER DEFAULT 0,
        STATS_CREATED    TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        STATS_LASTMODIFY TIMESTAMP,
        STATS_LASTRUN    TIMESTAMP,
        STATS_RUNS       INTEGER NOT NULL DEFAULT 0,
        STATS_LASTSETUP  TIMESTAMP,
        STATS_SETUPS     INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE FILTERS (
        ID          INTEGER PRIMARY KEY AUTOINCREMENT,
        TITLE       VARCHAR(256) NOT NULL,
        FILTER      TEXT NOT NULL,
        CONF_FILTER VARCHAR(256) NOT NULL
    )
    """,
    """
    CREATE TABLE NATIVECOMMANDS (
        ID          INTEGER PRIMARY KEY AUTOINCREMENT,
        COMMAND     VARCHAR(256) NOT NULL,
        PARAMETERS  VARCHAR(256) NOT NULL,
        CWD         VARCHAR(256) NOT NULL,
        WAITFOR     BOOLEAN,
        ORDERNR     INTEGER,
        GAME_ID     INTEGER REFERENCES GAMES(ID),
        TEMPLATE_ID INTEGER REFERENCES TEMPLATES(ID)
    )
    """,
    """
    CREATE TABLE LOG (
        ID           INTEGER PRIMARY KEY AUTOINCREMENT,
        TIME         TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        EVENT        TINYINT NOT NULL,
        ENTITY_TYPE  TINYINT NOT NULL,
        ENTITY_ID    INTEGER NOT NULL,
        ENTITY_TITLE VARCHAR(256) NOT NULL
    )
    """,
)

SEED_ROWS: tuple[str, ...] = (
    "INSERT INTO CUSTOM1(ID, VALUE) VALUES (0, '')",
    "INSERT INTO CUSTOM2(ID, VALUE) VALUES (0, '')",
    "INSERT INTO CUSTOM3(ID, VALUE) VALUES (0, '')",
    "INSERT INTO CUSTOM4(ID, VALUE) VALUES (0, '')",
    f"INSERT INTO VERSION VALUES ({LATEST_MAJOR}, {LATEST_MINOR})",
)

BOOTSTRAP_STATEMENTS: tuple[str, ...] = CREATE_TABLES + SEED_ROWS
