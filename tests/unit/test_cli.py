"""Tests for dbgl.cli — the dbgl-db maintenance commands."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from click.testing import Result
from typer.testing import CliRunner

from dbgl.cli import app
from dbgl.core.db import open_store
from dbgl.core.migrations import HISTORY
from dbgl.core.models import DosboxVersion
from dbgl.core.settings import Settings
from dbgl.modules.dosbox_versions import DosboxVersionRepository

# Wide enough that rich does not wrap status lines; assertions also collapse whitespace.
runner = CliRunner(env={"COLUMNS": "200"})


@pytest.fixture(autouse=True)
def _detach_log_handlers() -> Iterator[None]:
    """The CLI points the root handler at the runner's stream; drop it afterwards."""
    yield
    logging.getLogger().handlers.clear()


def _invoke(data_dir: Path, *args: str) -> Result:
    return runner.invoke(app, ["--data-dir", str(data_dir), "--log-level", "WARNING", *args])


def _text(result: Result) -> str:
    """Command output with line wrapping undone."""
    return " ".join(result.output.split())


class TestSchemaCommands:
    def test_status_before_init(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "status")
        assert result.exit_code == 0
        assert "NOT CREATED" in _text(result)

    def test_status_with_long_data_dir(self, tmp_path: Path) -> None:
        deep = tmp_path.joinpath(*(["nested-directory-level"] * 6))
        deep.mkdir(parents=True)
        result = _invoke(deep, "status")
        assert result.exit_code == 0
        assert "NOT CREATED (run dbgl-db init)" in _text(result)

    def test_init_then_status(self, tmp_path: Path) -> None:
        first = _invoke(tmp_path, "init")
        assert first.exit_code == 0
        assert "Database created" in _text(first)

        again = _invoke(tmp_path, "init")
        assert "Database ready" in _text(again)

        status = _invoke(tmp_path, "status")
        assert status.exit_code == 0
        assert "0.98" in _text(status)
        assert "GAMES" in _text(status)

    def test_upgrade_legacy(self, legacy_settings: Settings) -> None:
        assert legacy_settings.data_dir is not None
        result = _invoke(legacy_settings.data_dir, "upgrade")
        assert result.exit_code == 0
        assert "Upgraded" in _text(result)
        assert str(len(HISTORY)) in _text(result)

        again = _invoke(legacy_settings.data_dir, "upgrade")
        assert "Up to date" in _text(again)


class TestMaintenanceCommands:
    def test_log_clear_requires_confirmation(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "log-clear")
        assert result.exit_code == 1
        assert "--yes" in _text(result)

    def test_log_and_clear(self, settings: Settings) -> None:
        store, _ = open_store(settings)
        try:
            DosboxVersionRepository(store).add(DosboxVersion(title="ECE", version="0.74", path="/opt/ece"))
        finally:
            store.close()
        assert settings.data_dir is not None

        listed = _invoke(settings.data_dir, "log")
        assert listed.exit_code == 0
        assert "ECE" in _text(listed)

        cleared = _invoke(settings.data_dir, "log-clear", "--yes")
        assert cleared.exit_code == 0
        assert "Cleared" in _text(cleared)
        assert "empty" in _text(_invoke(settings.data_dir, "log"))

    def test_dosbox_listing(self, settings: Settings) -> None:
        assert settings.data_dir is not None
        assert "No DOSBox versions" in _text(_invoke(settings.data_dir, "dosbox"))

        store, _ = open_store(settings)
        try:
            DosboxVersionRepository(store).add(
                DosboxVersion(title="Staging", version="0.81", path="/opt/staging", is_default=True)
            )
        finally:
            store.close()
        assert "Staging" in _text(_invoke(settings.data_dir, "dosbox"))

    def test_cleanup_and_invalid_on_empty_store(self, tmp_path: Path) -> None:
        cleanup = _invoke(tmp_path, "cleanup")
        assert cleanup.exit_code == 0
        assert "Removed" in _text(cleanup)

        invalid = _invoke(tmp_path, "invalid")
        assert invalid.exit_code == 0
        assert "No invalid profiles" in _text(invalid)
