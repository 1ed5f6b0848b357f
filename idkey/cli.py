"""
idkey CLI - browse an identification key from the terminal

Loads a key (filtered by its record list, or the full key) and prints
steps, species and single leads.
"""
import asyncio
import json
from typing import Callable

import click
from rich.console import Console
from rich.table import Table

from idkey.session import KeySession
from idkey.settings import settings
from idkey.utils import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)


def _with_session(key_id: str, refresh: bool, render: Callable[[KeySession], None]) -> None:
    """Load ``key_id`` and hand the ready session to ``render``."""

    async def run() -> None:
        async with KeySession.from_settings(settings) as session:
            with console.status(f"[bold green]Loading key {key_id}..."):
                await session.load(key_id, force_refresh=refresh)
            if session.error:
                raise click.ClickException(session.error)
            if session.is_empty:
                console.print(f"[yellow]Key {key_id} has no leads for its records[/yellow]")
                return
            render(session)

    asyncio.run(run())


def _node_or_fail(session: KeySession, node: int | None) -> None:
    if node is not None and session.find_node(node) is None:
        raise click.ClickException(f"Lead {node} is not part of this key")


# ═══════════════════════════════════════════════════════════════════
# MAIN CLI GROUP
# ═══════════════════════════════════════════════════════════════════

@click.group()
@click.version_option(version='0.1.0')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
def main(verbose):
    """
    idkey - interactive identification key browser

    Builds the key tree from the remote lead dataset, prunes it to the
    records of the selected key and lets you walk it.
    """
    setup_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


# ═══════════════════════════════════════════════════════════════════
# STEP COMMANDS
# ═══════════════════════════════════════════════════════════════════

@main.command()
@click.argument('key_id')
@click.option('--node', '-n', type=int, help='Start from this lead instead of the root')
@click.option('--json', 'as_json', is_flag=True, help='Print steps as JSON')
@click.option('--refresh', is_flag=True, help='Ignore the local cache')
def steps(key_id, node, as_json, refresh):
    """Print the step list of a key"""

    def render(session: KeySession) -> None:
        _node_or_fail(session, node)
        items = session.steps if node is None else session.steps_for_node(node)

        if as_json:
            click.echo(json.dumps([s.model_dump(by_alias=True) for s in items], indent=2))
            return

        table = Table(title=f"Key {key_id} steps")
        table.add_column("Lead", style="cyan", justify="right")
        table.add_column("Parent", style="cyan", justify="right")
        table.add_column("Text")
        table.add_column("Species", style="magenta")
        for s in items:
            table.add_row(str(s.lead_id), str(s.parent_id), s.text, s.species or "")
        console.print(table)

    _with_session(key_id, refresh, render)


# ═══════════════════════════════════════════════════════════════════
# SPECIES COMMANDS
# ═══════════════════════════════════════════════════════════════════

@main.command()
@click.argument('key_id')
@click.option('--node', '-n', type=int, help='Only species below this lead')
@click.option('--records', is_flag=True, help='Show the record ids of each species')
@click.option('--names', 'names_only', is_flag=True, help='Print only the sorted species names')
@click.option('--refresh', is_flag=True, help='Ignore the local cache')
def species(key_id, node, records, names_only, refresh):
    """List the species reachable in a key"""

    def render(session: KeySession) -> None:
        _node_or_fail(session, node)
        if names_only:
            for name in session.species_names(node):
                click.echo(name)
            return

        table = Table(title=f"Key {key_id} species")
        table.add_column("Species", style="magenta")

        if records:
            table.add_column("Records", style="cyan")
            entries = (
                session.unique_species_with_records() if node is None
                else session.species_with_records_for_node(node)
            )
            for entry in entries:
                table.add_row(entry.name, ", ".join(str(r) for r in entry.records))
        else:
            table.add_column("Image")
            entries = (
                session.unique_species_with_images() if node is None
                else session.species_with_images_for_node(node)
            )
            for entry in entries:
                table.add_row(entry.name, entry.image or "")

        console.print(table)
        console.print(f"\n[green]✓ {len(entries)} species[/green]")

    _with_session(key_id, refresh, render)


# ═══════════════════════════════════════════════════════════════════
# LEAD COMMANDS
# ═══════════════════════════════════════════════════════════════════

@main.command()
@click.argument('key_id')
@click.argument('lead_id', type=int)
@click.option('--refresh', is_flag=True, help='Ignore the local cache')
def lead(key_id, lead_id, refresh):
    """Show one lead and the choices below it"""

    def render(session: KeySession) -> None:
        _node_or_fail(session, lead_id)
        found = session.find_node(lead_id)
        console.print(f"\n[bold blue]Lead {found.lead_id}:[/bold blue] {found.record.text}")
        if found.record.species:
            console.print(f"[magenta]Species:[/magenta] {found.record.species}")
        for i, child in enumerate(found.children, 1):
            console.print(f"  {i}. [cyan]{child.lead_id}[/cyan] {child.record.text}")

    _with_session(key_id, refresh, render)


if __name__ == '__main__':
    main()
