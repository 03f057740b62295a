"""Tests for dbgl.core.settings — runtime settings resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from dbgl.core.settings import Settings


def test_settings_auto_resolves_paths(tmp_path: Path) -> None:
    """Given an explicit data_dir, all sub-dirs derive from it."""
    s = Settings(data_dir=tmp_path)

    assert s.data_dir == tmp_path
    assert s.db_dir == tmp_path / "db"
    assert s.profiles_dir == tmp_path / "profiles"
    assert s.captures_dir == tmp_path / "captures"


def test_settings_db_path(tmp_path: Path) -> None:
    """db_path combines db_dir + database_file."""
    s = Settings(data_dir=tmp_path, database_file="test.sqlite")
    assert s.db_path == tmp_path / "db" / "test.sqlite"


def test_settings_explicit_override_wins(tmp_path: Path) -> None:
    elsewhere = tmp_path / "elsewhere"
    s = Settings(data_dir=tmp_path, db_dir=elsewhere)
    assert s.db_path == elsewhere / "database.sqlite"
    assert s.profiles_dir == tmp_path / "profiles"


def test_settings_ensure_dirs_creates_directories(tmp_path: Path) -> None:
    """ensure_dirs() must create db/, profiles/ and captures/."""
    s = Settings(data_dir=tmp_path)
    s.ensure_dirs()

    for name in ("db", "profiles", "captures"):
        assert (tmp_path / name).is_dir()


def test_settings_defaults(tmp_path: Path) -> None:
    s = Settings(data_dir=tmp_path)
    assert s.log_enabled is True
    assert s.pool_size == 5
    assert s.pool_timeout == 10.0


def test_settings_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DBGL_LOG_ENABLED", "false")
    monkeypatch.setenv("DBGL_POOL_SIZE", "2")
    s = Settings(data_dir=tmp_path)
    assert s.log_enabled is False
    assert s.pool_size == 2


def test_settings_detects_data_root_from_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "profiles").mkdir()
    sub = tmp_path / "captures"
    sub.mkdir()
    monkeypatch.chdir(sub)
    s = Settings()
    assert s.data_dir == tmp_path.resolve()


def test_each_settings_instance_is_independent(tmp_path: Path) -> None:
    first = Settings(data_dir=tmp_path / "a")
    second = Settings(data_dir=tmp_path / "b")
    first.log_enabled = False
    assert second.log_enabled is True
    assert first.db_path != second.db_path
