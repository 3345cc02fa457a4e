import asyncio
import json
from pathlib import Path

import typer
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.markup import escape

from vps_dashboard.core.logging import configure_logging
from vps_dashboard.db.base import Base
from vps_dashboard.db.session import AsyncSessionLocal, engine
from vps_dashboard.migration.loader import LegacyRecord, LoadReport, load_records

app = typer.Typer(
    name="vps-migrate",
    help="Load legacy hosting records into the VPS dashboard database",
    add_completion=False,
)
console = Console()

_records_adapter = TypeAdapter(list[LegacyRecord])

RecordsFile = typer.Argument(..., exists=True, dir_okay=False, help="JSON array of records")


def _read_records(path: Path) -> list[LegacyRecord]:
    try:
        return _records_adapter.validate_python(json.loads(path.read_text()))
    except (json.JSONDecodeError, ValidationError) as exc:
        console.print(f"[bold red]Invalid input file:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc


async def _load(records: list[LegacyRecord]) -> LoadReport:
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        return await load_records(AsyncSessionLocal, records)
    finally:
        await engine.dispose()


@app.command()
def load(path: Path = RecordsFile):
    """Insert legacy servers; records already loaded are skipped."""
    configure_logging()
    records = _read_records(path)
    report = asyncio.run(_load(records))
    console.print(
        f"[green]Inserted:[/green] {report.inserted}  [yellow]Skipped:[/yellow] {report.skipped}"
    )


@app.command()
def validate(path: Path = RecordsFile):
    """Check a records file without touching the database."""
    records = _read_records(path)
    console.print(f"[green]{len(records)} record(s) valid[/green]")


if __name__ == "__main__":
    app()
