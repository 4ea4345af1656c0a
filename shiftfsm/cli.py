"""
shiftfsm CLI
============

Command-line interface for checking state machines and inspecting the
event log.

Commands:
    shiftfsm verify <module:attr> [options]   - Run the reachability verifier
    shiftfsm events [options]                 - List stored events
"""

import importlib
import logging
import sys
from typing import Any, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from sqlalchemy import MetaData

from . import __version__
from .config import load_config
from .errors import VerificationError
from .state.arc import ArcFSM
from .state.database import create_database
from .state.events import create_events_table
from .state.fsm import FSM
from .status import status_name
from .verify import verify_arc_fsm, verify_fsm


console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="shiftfsm")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Log level (default: WARNING)"
)
def main(log_level: str):
    """shiftfsm - transactional state machines with an event outbox"""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@main.command()
@click.argument("target")
@click.option("--db", default=None, help="Database URL (default: from config)")
@click.option("--config", "config_path", default=None, help="Path to YAML config")
@click.option("--seed", type=int, default=None, help="Seed for random request fields")
@click.option(
    "--metadata", "metadata_ref",
    default=None,
    help="MODULE:ATTR of a SQLAlchemy MetaData whose tables are created first"
)
def verify(target: str, db: Optional[str], config_path: Optional[str], seed: Optional[int], metadata_ref: Optional[str]):
    """Verify that every status of TARGET (MODULE:ATTR) is reachable."""
    config = load_config(config_path)
    if db:
        config["database"]["url"] = db
    if seed is None:
        seed = config.get("verify", {}).get("seed")

    fsm = _load_object(target)
    if not isinstance(fsm, (FSM, ArcFSM)) and callable(fsm):
        fsm = fsm()
    if not isinstance(fsm, (FSM, ArcFSM)):
        raise click.BadParameter(f"{target} is not an FSM or ArcFSM", param_hint="TARGET")

    metadata = None
    if metadata_ref:
        metadata = _load_object(metadata_ref)
        if not isinstance(metadata, MetaData):
            raise click.BadParameter(f"{metadata_ref} is not a MetaData", param_hint="--metadata")

    database = create_database(config)
    if metadata is not None:
        metadata.create_all(database.engine)

    console.print(f"\n[bold blue]shiftfsm[/bold blue] - verifying {target}\n")

    try:
        if isinstance(fsm, ArcFSM):
            report = verify_arc_fsm(database.engine, fsm, seed=seed)
        else:
            report = verify_fsm(database.engine, fsm, seed=seed)
    except VerificationError as e:
        console.print(f"[red]✗ Verification failed:[/red] {escape(str(e))}")
        if e.__cause__ is not None:
            console.print(f"[dim]Cause:[/dim] {escape(repr(e.__cause__))}")
        sys.exit(1)
    finally:
        database.dispose()

    table = Table(title="Paths")
    table.add_column("#")
    table.add_column("Path")
    table.add_column("Identifier")

    for i, (path, identifier) in enumerate(zip(report.paths, report.identifiers)):
        table.add_row(str(i), " → ".join(status_name(s) for s in path), str(identifier))

    console.print(table)
    console.print()
    console.print(f"[green]✓ All {len(report.visited)} statuses reachable[/green]")


@main.command()
@click.option("--db", default=None, help="Database URL (default: from config)")
@click.option("--config", "config_path", default=None, help="Path to YAML config")
@click.option("--table", "table_name", default=None, help="Events table name (default: from config)")
@click.option("--after", type=int, default=0, help="Only show events with a greater id")
@click.option("--limit", type=int, default=50, help="Maximum number of events (default: 50)")
def events(db: Optional[str], config_path: Optional[str], table_name: Optional[str], after: int, limit: int):
    """List stored events."""
    config = load_config(config_path)
    if db:
        config["database"]["url"] = db
    if table_name:
        config["events"]["table"] = table_name

    database = create_database(config)
    events_table = create_events_table(config, MetaData())

    try:
        with database.connect() as conn:
            rows = events_table.read_events(conn, after_id=after, limit=limit)
    finally:
        database.dispose()

    if not rows:
        console.print("[dim]No events found[/dim]")
        return

    table = Table(title=f"Events ({events_table.name})")
    table.add_column("ID")
    table.add_column("Foreign ID")
    table.add_column("Type")
    table.add_column("Timestamp")
    table.add_column("Metadata")

    for event in rows:
        table.add_row(
            str(event.id),
            str(event.foreign_id),
            str(event.type),
            str(event.timestamp)[:19],
            _format_metadata(event.metadata),
        )

    console.print(table)


def _load_object(ref: str) -> Any:
    """Resolve a MODULE:ATTR reference"""
    module_name, _, attr = ref.partition(":")
    if not module_name or not attr:
        raise click.BadParameter(f"expected MODULE:ATTR, got {ref!r}")

    obj = importlib.import_module(module_name)
    for part in attr.split("."):
        obj = getattr(obj, part)
    return obj


def _format_metadata(metadata: bytes) -> str:
    """Short hex preview of event metadata"""
    if not metadata:
        return "-"
    preview = metadata[:16].hex()
    return preview + "…" if len(metadata) > 16 else preview


if __name__ == "__main__":
    main()
