"""DBGL store domain exceptions.

Every module raises typed exceptions so callers can handle failures
explicitly instead of catching bare ``sqlite3.Error``.  The original
low-level error is always chained as ``__cause__``.
"""

from __future__ import annotations

from collections.abc import Sequence


# ── Base ────────────────────────────────────────────────────
class DBGLError(Exception):
    """Root exception for all DBGL store errors."""


# ── Filesystem ─────────────────────────────────────────────
class DataRootNotFound(DBGLError):
    """Could not locate the data root (a directory holding ``profiles/``)."""

    def __init__(self, start_path: str | None = None) -> None:
        where = f" (searched from {start_path})" if start_path else ""
        super().__init__(f"Data root not found{where}: no profiles/ directory in parent chain")
        self.start_path = start_path


# ── Store / connection ─────────────────────────────────────
class StoreConnectionError(DBGLError):
    """A connection could not be obtained from the pool or used."""


# ── Schema migration ───────────────────────────────────────
class MigrationError(DBGLError):
    """A migration step failed; the store stays at the previous version."""

    def __init__(self, major: int, minor: int, detail: str = "") -> None:
        msg = f"Upgrade to database version {major}.{minor} failed"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
        self.major = major
        self.minor = minor


# ── Queries ────────────────────────────────────────────────
class QueryError(DBGLError):
    """A statement failed while performing *action* (e.g. ``add profile``)."""

    def __init__(self, action: str, detail: str = "") -> None:
        msg = f"Database query failed: {action}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)
        self.action = action


class ReferentialBlockError(QueryError):
    """A delete was refused because other rows still reference the entity."""

    def __init__(self, action: str, entity_title: str, blocking_titles: Sequence[str], total: int) -> None:
        preview = ", ".join(blocking_titles)
        super().__init__(
            action,
            f"'{entity_title}' is still used by {total} profile(s)/template(s): {preview}",
        )
        self.entity_title = entity_title
        self.blocking_titles = list(blocking_titles)
        self.total = total
