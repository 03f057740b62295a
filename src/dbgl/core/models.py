"""DBGL domain models — enums and entity value objects.

Entities are frozen: repositories hand back a new instance (via
:func:`dataclasses.replace`) once the store has assigned an id or
computed a timestamp.  ``id is None`` means "not stored yet".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum


# Stored as TINYINT ordinals in LOG.EVENT / LOG.ENTITY_TYPE; order matters.
class LogEvent(IntEnum):
    ADD = 0
    EDIT = 1
    REMOVE = 2
    DUPLICATE = 3
    RUN = 4
    SETUP = 5


class EntityType(IntEnum):
    PROFILE = 0
    DOSBOXVERSION = 1
    TEMPLATE = 2
    FILTER = 3


@dataclass(frozen=True)
class SchemaVersion:
    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class TitledEntity:
    """A row of a normalized lookup table (developer, genre, custom1, ...)."""

    id: int | None
    title: str


@dataclass(frozen=True)
class Stats:
    created: datetime | None = None
    modified: datetime | None = None
    last_run: datetime | None = None
    runs: int = 0


@dataclass(frozen=True)
class ProfileStats(Stats):
    last_setup: datetime | None = None
    setups: int = 0


@dataclass(frozen=True)
class NativeCommand:
    """A host command run before/after DOSBox for a profile or template."""

    command: str
    parameters: str = ""
    cwd: str = ""
    wait_for: bool = False
    order_nr: int = 0


@dataclass(frozen=True)
class Link:
    title: str = ""
    destination: str = ""


@dataclass(frozen=True)
class DosboxVersion:
    title: str
    version: str
    path: str
    exe: str = ""
    parameters: str = ""
    conf_file: str = ""
    is_default: bool = False
    multi_config: bool = False
    using_curses: bool = False
    dynamic_options: dict[str, str] = field(default_factory=dict)
    id: int | None = None
    stats: Stats = field(default_factory=Stats)

    @property
    def version_as_int(self) -> int:
        """``"0.74-3"`` -> 743, ``"0.74"`` -> 740, blank -> 0."""
        if not self.version.strip():
            return 0
        minor, _, revision = self.version[2:].partition("-")
        return int(minor) * 10 + (int(revision) if revision else 0)

    def distance(self, other: DosboxVersion) -> int:
        return abs(other.version_as_int - self.version_as_int)


@dataclass(frozen=True)
class Template:
    title: str
    dosbox_version_id: int
    is_default: bool = False
    native_commands: tuple[NativeCommand, ...] = ()
    id: int | None = None
    stats: Stats = field(default_factory=Stats)


# Profile field counts (GAMES table layout).
NR_OF_CUSTOM_DROPDOWNS = 4  # CUST1_ID..CUST4_ID -> CUSTOM1..CUSTOM4 lookup tables
NR_OF_CUSTOM_FIELDS = 8  # CUSTOM5..CUSTOM8, CUSTOM11..CUSTOM14
NR_OF_CUSTOM_STRINGS = NR_OF_CUSTOM_DROPDOWNS + NR_OF_CUSTOM_FIELDS
NR_OF_CUSTOM_INTS = 2  # CUSTOM9, CUSTOM10
NR_OF_LINKS = 8
NR_OF_ALT_EXECUTABLES = 2


@dataclass(frozen=True)
class Profile:
    """A game profile (one GAMES row plus its lookup values and commands)."""

    title: str
    dosbox_version_id: int
    developer: str = ""
    publisher: str = ""
    genre: str = ""
    year: str = ""
    status: str = ""
    notes: str = ""
    favorite: bool = False
    custom_strings: tuple[str, ...] = ("",) * NR_OF_CUSTOM_STRINGS
    custom_ints: tuple[int, ...] = (0,) * NR_OF_CUSTOM_INTS
    links: tuple[Link, ...] = (Link(),) * NR_OF_LINKS
    setup: str = ""
    setup_params: str = ""
    alt_exes: tuple[str, ...] = ("",) * NR_OF_ALT_EXECUTABLES
    alt_exe_params: tuple[str, ...] = ("",) * NR_OF_ALT_EXECUTABLES
    captures: str = ""
    conf_file: str = ""
    native_commands: tuple[NativeCommand, ...] = ()
    id: int | None = None
    stats: ProfileStats = field(default_factory=ProfileStats)

    def __post_init__(self) -> None:
        expected = {
            "custom_strings": NR_OF_CUSTOM_STRINGS,
            "custom_ints": NR_OF_CUSTOM_INTS,
            "links": NR_OF_LINKS,
            "alt_exes": NR_OF_ALT_EXECUTABLES,
            "alt_exe_params": NR_OF_ALT_EXECUTABLES,
        }
        for name, size in expected.items():
            if len(getattr(self, name)) != size:
                raise ValueError(f"Profile.{name} must have {size} entries")


@dataclass(frozen=True)
class Filter:
    """A saved profile filter: a raw predicate fragment over the profile query."""

    title: str
    filter: str
    id: int | None = None


@dataclass(frozen=True)
class LogEntry:
    id: int
    time: datetime | None
    event: LogEvent
    entity_type: EntityType
    entity_id: int
    entity_title: str
