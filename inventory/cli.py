"""Inventory CLI - serve the API, apply migrations, run imports from files."""

from __future__ import annotations

import asyncio
import csv
import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .models import Base
from .services import sync_run_svc
from .sync.directory import CachedDirectory, build_directory_service
from .sync.engine import ImportEngine, ImportJob
from .sync.errors import ImportPipelineError
from .sync.progress import ProgressStore
from .sync.resolver import POLICY_OVERWRITE

app = typer.Typer(
    name="inventory",
    help="Asset inventory import engine",
    no_args_is_help=True,
)
console = Console()


def read_rows(path: Path) -> list[dict[str, Any]]:
    """Load spreadsheet rows from a CSV export or a JSON array of objects."""
    if path.suffix.lower() == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise typer.BadParameter("JSON input must be an array of row objects")
        return [dict(row) for row in data]
    with path.open(newline="", encoding="utf-8-sig") as fh:
        return [dict(row) for row in csv.DictReader(fh)]


async def _session_factory():
    sqlite = "sqlite" in settings.database_url
    engine = create_async_engine(
        settings.database_url,
        echo=settings.echo_sql,
        connect_args={"timeout": 30} if sqlite else {},
    )
    if sqlite:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def _run_import(job: ImportJob) -> dict[str, Any]:
    engine, factory = await _session_factory()
    directory = CachedDirectory(build_directory_service())
    try:
        result = await ImportEngine(factory, directory=directory, progress=ProgressStore(0)).run(job)
        return result.to_dict()
    finally:
        await directory.service.aclose()
        await engine.dispose()


async def _list_runs(source: str | None, limit: int) -> list[dict[str, Any]]:
    engine, factory = await _session_factory()
    try:
        async with factory() as db:
            runs = await sync_run_svc.list_runs(db, source_system=source, limit=limit)
        return [
            {
                "id": str(run.id),
                "source_system": run.source_system,
                "status": run.status,
                "is_full_snapshot": run.is_full_snapshot,
                "started_at": run.started_at,
                "stats": run.stats_json or {},
            }
            for run in runs
        ]
    finally:
        await engine.dispose()


@app.command("serve")
def serve(
    port: int = typer.Option(8030, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Launch the import API."""
    import uvicorn

    console.print(f"[bold cyan]Starting inventory import API at http://{host}:{port}[/bold cyan]")
    uvicorn.run("inventory.app:app", host=host, port=port, reload=reload)


@app.command("migrate")
def migrate(revision: str = typer.Argument("head", help="Target revision")):
    """Apply Alembic migrations to the configured database."""
    from alembic import command
    from alembic.config import Config

    command.upgrade(Config(str(settings.alembic_ini_path)), revision)
    console.print(f"[green]Database upgraded to {revision}[/green]")


@app.command("import")
def import_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV or JSON file of rows"),
    source: str = typer.Option(..., "--source", "-s", help="Source system, e.g. ninjaone or telus"),
    partial: bool = typer.Option(False, "--partial", help="Do not retire assets missing from the file"),
    policy: str = typer.Option(POLICY_OVERWRITE, "--policy", help="Conflict resolution: overwrite or skip"),
    approve: list[str] = typer.Option([], "--approve", help="Serial number approved for reactivation"),
    user: str | None = typer.Option(None, "--user", help="Acting user id recorded in the audit log"),
    json_output: bool = typer.Option(False, "--json", help="Output the full result as JSON"),
):
    """Import a spreadsheet export into the inventory."""
    rows = read_rows(path)
    job = ImportJob(
        source=source,
        rows=rows,
        conflict_resolution=policy,
        is_full_snapshot=False if partial else None,
        allowed_reactivations=list(approve),
        user_id=user,
    )
    try:
        result = asyncio.run(_run_import(job))
    except ImportPipelineError as exc:
        console.print(f"[red]Import failed: {exc.message}[/red]")
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(result, indent=2, default=str))
        return

    table = Table(title=f"Import of {path.name}")
    table.add_column("Outcome")
    table.add_column("Count", justify="right")
    for label, key in (
        ("Created", "created"),
        ("Updated", "updated"),
        ("Reactivated", "reactivated"),
        ("Retired", "retired"),
    ):
        table.add_row(label, str(len(result[key])))
    table.add_row("Skipped", str(result["skipped"]))
    table.add_row("Failed", str(result["failed"]))
    console.print(table)
    for item in result["errors"]:
        console.print(f"[red]Row {item['index']}: {item['error']}[/red]")


@app.command("runs")
def runs(
    source: str | None = typer.Option(None, "--source", "-s", help="Filter by source system"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum runs to show"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List recent import runs."""
    items = asyncio.run(_list_runs(source, limit))
    if json_output:
        typer.echo(json.dumps(items, indent=2, default=str))
        return

    table = Table(title="Import Runs")
    table.add_column("Started")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Snapshot")
    table.add_column("Created", justify="right")
    table.add_column("Retired", justify="right")
    for item in items:
        table.add_row(
            str(item["started_at"])[:19],
            item["source_system"],
            item["status"],
            "yes" if item["is_full_snapshot"] else "no",
            str(item["stats"].get("created", 0)),
            str(item["stats"].get("retired", 0)),
        )
    console.print(table)


if __name__ == "__main__":
    app()
