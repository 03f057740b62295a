"""DBGL runtime settings (Pydantic v2 Settings).

Centralises every configurable path / flag so that:

* The store never hard-codes relative paths.
* Environment overrides work (``DBGL_DATA_DIR``, ``DBGL_LOG_ENABLED``, etc.).
* Tests can inject a custom root via ``Settings(data_dir=tmp_path)``.

``log_enabled`` is the audit-log switch.  The audit log reads it on every
append, so flipping it on a live ``Settings`` instance takes effect
without reopening the store.

Usage
-----
::

    from dbgl.core.db import open_store
    from dbgl.core.settings import Settings

    s = Settings()              # auto-detects the data root from cwd
    s.db_path                   # <data_dir>/db/database.sqlite
    store, _ = open_store(s)    # handed to every repository explicitly
"""

from __future__ import annotations

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dbgl.core.errors import DataRootNotFound
from dbgl.core.paths import find_data_root


class Settings(BaseSettings):
    """All runtime configuration for the DBGL store.

    *data_dir* anchors every derived path.  If not supplied, it is
    auto-detected via :func:`dbgl.core.paths.find_data_root`, falling back
    to the current directory for a fresh installation.
    """

    model_config = SettingsConfigDict(
        env_prefix="DBGL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Root ────────────────────────────────────────────────
    data_dir: Path | None = None

    # ── Derived directory paths ─────────────────────────────
    db_dir: Path | None = None
    profiles_dir: Path | None = None
    captures_dir: Path | None = None

    # ── Database ────────────────────────────────────────────
    database_file: str = "database.sqlite"
    pool_size: int = 5
    pool_timeout: float = 10.0  # seconds to wait for a pooled connection

    # ── Audit log ───────────────────────────────────────────
    log_enabled: bool = True

    # ── Logging ─────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True  # structured JSON by default

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Fill in any path that was not explicitly overridden."""
        if self.data_dir is None:
            try:
                self.data_dir = find_data_root()
            except DataRootNotFound:
                self.data_dir = Path.cwd().resolve()

        root = self.data_dir
        defaults: dict[str, Path] = {
            "db_dir": root / "db",
            "profiles_dir": root / "profiles",
            "captures_dir": root / "captures",
        }
        for attr, default_val in defaults.items():
            if getattr(self, attr) is None:
                setattr(self, attr, default_val)
        return self

    # ── Convenience ─────────────────────────────────────────
    @property
    def db_path(self) -> Path:
        """Full path to the SQLite database file."""
        assert self.db_dir is not None  # guaranteed after validation
        return self.db_dir / self.database_file

    def ensure_dirs(self) -> None:
        """Create all local-state directories if they don't exist."""
        for d in (self.db_dir, self.profiles_dir, self.captures_dir):
            assert d is not None  # guaranteed after validation
            d.mkdir(parents=True, exist_ok=True)

