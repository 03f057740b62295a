"""dbgl-db: operator CLI for the DBGL store.

Thin adapter over the core: it opens the store, calls repositories and
formats their results.  No SQL beyond read-only row counts lives here.
"""

from __future__ import annotations

from pathlib import Path

import structlog
import typer
from rich import print
from rich.table import Table

from dbgl.core.audit import AuditLog
from dbgl.core.db import Store, open_store
from dbgl.core.errors import DBGLError, MigrationError
from dbgl.core.logging import configure_logging
from dbgl.core.migrations import MigrationEngine, StoreState
from dbgl.core.settings import Settings
from dbgl.modules.dosbox_versions import DosboxVersionRepository
from dbgl.modules.lookups import TitledEntityRepository
from dbgl.modules.profiles import ProfileRepository

logger = structlog.get_logger()

app = typer.Typer(help="DBGL store maintenance: schema upgrades, audit log, lookup cleanup.")

# Tables counted by `status`.
_COUNTED_TABLES = ("GAMES", "DOSBOXVERSIONS", "TEMPLATES", "FILTERS", "NATIVECOMMANDS", "LOG")


# ── Callback (runs before every command) ────────────────────
@app.callback(invoke_without_command=True)
def _main_callback(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d", envvar="DBGL_DATA_DIR", help="DBGL data directory."),
    log_level: str = typer.Option("INFO", "--log-level", envvar="DBGL_LOG_LEVEL", help="Log level."),
    log_json: bool = typer.Option(True, "--log-json/--log-text", envvar="DBGL_LOG_JSON", help="JSON or human logs."),
) -> None:
    """Configure logging + settings, then store them in the context."""
    configure_logging(level=log_level, json_output=log_json)
    settings = Settings(data_dir=data_dir, log_level=log_level, log_json=log_json)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings

    if ctx.invoked_subcommand is None:
        print(ctx.get_help())


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj["settings"]


def _store(ctx: typer.Context, *, migrate: bool = True) -> Store:
    """Open the store once per invocation; it is closed when the command ends."""
    if "store" not in ctx.obj:
        try:
            store, report = open_store(_settings(ctx), migrate=migrate)
        except MigrationError as exc:
            print(f"[red]ERROR:[/red] {exc}")
            raise typer.Exit(code=1) from exc
        except DBGLError as exc:
            print(f"[red]ERROR:[/red] {exc}")
            raise typer.Exit(code=2) from exc
        ctx.obj["store"] = store
        ctx.obj["report"] = report
        ctx.call_on_close(store.close)
    return ctx.obj["store"]


# ── Schema ──────────────────────────────────────────────────
@app.command()
def status(ctx: typer.Context) -> None:
    """Show the database location, schema version and row counts."""
    s = _settings(ctx)
    print("[bold]DBGL store[/bold]")
    print(f"  Data dir    : {s.data_dir}")
    if not s.db_path.exists():
        print(f"  Database    : {s.db_path}  [yellow]NOT CREATED[/yellow] (run [bold]dbgl-db init[/bold])")
        return

    store = _store(ctx, migrate=False)
    engine = MigrationEngine(store)
    if engine.probe() is StoreState.UNINITIALIZED:
        print(f"  Database    : {s.db_path}  [yellow]EMPTY[/yellow]")
        return

    version = engine.current_version()
    colour = "green" if version == engine.latest else "yellow"
    print(f"  Database    : {s.db_path}")
    print(f"  Schema      : [{colour}]{version}[/{colour}] (latest {engine.latest})")
    print(f"  Audit log   : {'enabled' if s.log_enabled else 'disabled'}")
    with store.connection() as conn:
        for table in _COUNTED_TABLES:
            exists = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
            ).fetchone()
            count = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0] if exists else "-"
            print(f"    {table:<15}: {count}")


@app.command()
def init(ctx: typer.Context) -> None:
    """Create the data directories and the database at the latest schema."""
    _store(ctx)
    report = ctx.obj["report"]
    if report.initialized_new:
        print(f"[green]Database created[/green] at version {report.version}.")
    else:
        print(f"[green]Database ready[/green] at version {report.version}.")


@app.command()
def upgrade(ctx: typer.Context) -> None:
    """Apply every pending schema migration."""
    _store(ctx)
    report = ctx.obj["report"]
    if not report.applied:
        print(f"[green]Up to date[/green] ({report.version}).")
        return
    steps = ", ".join(f"0.{minor}" for minor in report.applied)
    print(f"[green]Upgraded[/green] to {report.version}; applied {len(report.applied)} step(s): {steps}")


# ── Audit log ───────────────────────────────────────────────
@app.command(name="log")
def log_cmd(
    ctx: typer.Context,
    where: str = typer.Option("", "--where", help="SQL WHERE clause, e.g. 'WHERE ENTITY_TYPE = 0'."),
    order_by: str = typer.Option("ORDER BY ID", "--order-by", help="SQL ORDER BY clause."),
) -> None:
    """List audit log entries."""
    entries = AuditLog(_store(ctx)).list(where, order_by)
    if not entries:
        print("[yellow]Audit log is empty.[/yellow]")
        return

    table = Table(title="Audit log")
    table.add_column("ID", justify="right")
    table.add_column("Time")
    table.add_column("Event", style="bold")
    table.add_column("Entity")
    table.add_column("Entity ID", justify="right")
    table.add_column("Title")
    for e in entries:
        table.add_row(
            str(e.id),
            e.time.isoformat(sep=" ") if e.time else "",
            e.event.name,
            e.entity_type.name,
            str(e.entity_id),
            e.entity_title,
        )
    print(table)


@app.command(name="log-clear")
def log_clear(
    ctx: typer.Context,
    confirm_clear: bool = typer.Option(False, "--yes", help="Skip confirmation."),
) -> None:
    """Delete every audit log entry."""
    if not confirm_clear:
        print("[red bold]WARNING:[/red bold] This deletes the whole audit log. Run with --yes to confirm.")
        raise typer.Exit(code=1)
    removed = AuditLog(_store(ctx)).clear()
    print(f"[green]Cleared[/green] {removed} log entries.")


# ── Maintenance ─────────────────────────────────────────────
@app.command()
def cleanup(ctx: typer.Context) -> None:
    """Remove developer/publisher/genre/... values no profile uses."""
    removed = TitledEntityRepository(_store(ctx)).cleanup()
    print(f"[green]Removed[/green] {removed} unused lookup values.")


@app.command()
def dosbox(ctx: typer.Context) -> None:
    """List DOSBox versions; the default one is marked."""
    versions = DosboxVersionRepository(_store(ctx)).list_all()
    if not versions:
        print("[yellow]No DOSBox versions configured.[/yellow]")
        return

    table = Table(title="DOSBox versions")
    table.add_column("ID", justify="right")
    table.add_column("Default")
    table.add_column("Title", style="bold")
    table.add_column("Version")
    table.add_column("Path")
    table.add_column("Runs", justify="right")
    for v in versions:
        table.add_row(
            str(v.id), "[green]*[/green]" if v.is_default else "", v.title, v.version, v.path, str(v.stats.runs)
        )
    print(table)


@app.command()
def invalid(ctx: typer.Context) -> None:
    """List profiles missing their conf file or captures path."""
    profiles = ProfileRepository(_store(ctx)).list_invalid()
    if not profiles:
        print("[green]No invalid profiles.[/green]")
        return
    for p in profiles:
        print(f"  [red]{p.id}[/red]  {p.title}")
    print(f"{len(profiles)} invalid profile(s).")
    raise typer.Exit(code=1)


# ── Entrypoint ──────────────────────────────────────────────
def main() -> None:  # noqa: D103
    app()
