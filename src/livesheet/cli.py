"""Command-line interface for livesheet.

The CLI is a terminal presentation layer: every command opens the sheet
from the project's storage directory, feeds edits through the same cell
engine an interactive front end would use, lets the virtual clock run past
the debounce and removal windows, and waits for storage writes.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Callable

import click

from livesheet import __version__
from livesheet.cell import Cell, CellView, is_valid_name
from livesheet.formulas import compile_formula
from livesheet.logging.events import set_log_dir
from livesheet.project import load_project_config, scaffold_project, storage_dir
from livesheet.scheduler import VirtualScheduler
from livesheet.sheet import Sheet, SheetError
from livesheet.storage import FileStorage


@click.group()
@click.version_option(version=__version__, prog_name="livesheet")
def main() -> None:
    """livesheet -- named formula cells that recompute as their inputs change."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _project(directory: str) -> tuple[Path, dict[str, Any]]:
    """Load the project config and point event logging at the project."""
    project_dir = Path(directory)
    config = load_project_config(project_dir)
    set_log_dir(
        project_dir,
        fsync=bool(config["logging_fsync"]),
        tail_bytes=int(config["logging_tail_bytes"]),
    )
    return project_dir, config


def _run(directory: str, action: Callable[[Sheet], Any] | None = None) -> list[CellView]:
    """Open the project's sheet, apply *action*, settle, and save.

    Returns the rows as they stand after the writes.  The sheet is closed
    even when *action* fails; writes not yet flushed are then dropped.
    """
    project_dir, config = _project(directory)
    storage = FileStorage(storage_dir(project_dir, config))

    async def session() -> list[CellView]:
        scheduler = VirtualScheduler(max_steps=int(config["max_propagation_steps"]))
        sheet = Sheet(storage, scheduler, config)
        try:
            await sheet.load()
            scheduler.run_until_idle()
            if action is not None:
                action(sheet)
                scheduler.run_until_idle()
            await sheet.flush()
            return sheet.rows()
        finally:
            sheet.close()

    return asyncio.run(session())


def _echo_rows(rows: list[CellView]) -> None:
    if not rows:
        click.echo("No cells.")
        return
    for row in rows:
        click.echo(f"{row.name}: {row.formula_text}{row.label}")


def _require_cell(sheet: Sheet, name: str) -> Cell:
    try:
        return sheet.require(name)
    except SheetError as exc:
        raise click.ClickException(str(exc)) from exc


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
def init(directory: str) -> None:
    """Create a new project at DIRECTORY."""
    try:
        project_dir = scaffold_project(Path(directory))
    except FileExistsError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Created livesheet project at {project_dir}")


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def show(directory: str, as_json: bool) -> None:
    """Show every cell with its formula and current value."""
    rows = _run(directory)
    if as_json:
        payload = [
            {"name": r.name, "formula": r.formula_text, "value": r.value}
            for r in rows
        ]
        click.echo(json.dumps(payload, indent=2))
        return
    _echo_rows(rows)


@main.command("set")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("name")
@click.argument("formula")
def set_cell(directory: str, name: str, formula: str) -> None:
    """Create or update the cell NAME with FORMULA."""
    if not is_valid_name(name):
        raise click.ClickException(f"Invalid cell name: {name!r}.")

    _project(directory)
    parsed = compile_formula(formula)
    if not parsed.valid:
        raise click.ClickException(f"Invalid formula: {parsed.error}")

    def action(sheet: Sheet) -> None:
        cell = sheet.cell(name) or sheet.add_cell()
        if cell.name.value != name:
            cell.edit_name(name)
        cell.edit_formula(formula)

    _echo_rows(_run(directory, action))


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("old")
@click.argument("new")
def rename(directory: str, old: str, new: str) -> None:
    """Rename cell OLD to NEW (formulas that reference OLD are not rewritten)."""
    if not is_valid_name(new):
        raise click.ClickException(f"Invalid cell name: {new!r}.")

    def action(sheet: Sheet) -> None:
        _require_cell(sheet, old).edit_name(new)

    _echo_rows(_run(directory, action))


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("name")
def remove(directory: str, name: str) -> None:
    """Remove the cell NAME."""

    def action(sheet: Sheet) -> None:
        _require_cell(sheet, name).request_remove()

    _echo_rows(_run(directory, action))


@main.command("events")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--cell", default=None, help="Filter by cell name.")
@click.option("--limit", default=50, type=int, help="Max events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    cell: str | None,
    limit: int,
) -> None:
    """Show the structured event log for DIRECTORY."""
    from livesheet.logging.sink import EventSink

    sink = EventSink(Path(directory))
    events = sink.read_global(level=level, event_type=event_type, cell=cell, limit=limit)

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)


if __name__ == "__main__":
    main()
