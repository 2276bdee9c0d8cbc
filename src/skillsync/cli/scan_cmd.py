"""Unmanaged skill commands: scan, ignore, unignore."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import SKILLSYNC_HOME, console, fail, get_coordinator, short_hash
from ..config import ConfigError


def register_scan_commands(main: click.Group) -> None:
    """Register scan, ignore, and unignore."""

    @main.command("scan")
    @click.option("--location", "location_id", default=None, help="Only scan this location.")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def scan(location_id, home):
        """Find skills in tool folders that skillsync does not manage."""
        coordinator = get_coordinator(home)
        try:
            candidates = coordinator.scan_unmanaged(location_id)
        except ConfigError as exc:
            fail(str(exc))

        if not candidates:
            console.print("[green]No unmanaged skills found.[/]")
            return

        table = Table(title="Unmanaged skills")
        table.add_column("Location", style="cyan")
        table.add_column("Kind")
        table.add_column("Path")
        table.add_column("Hash", style="dim")
        for candidate in candidates:
            table.add_row(
                candidate.location_id,
                candidate.source.value,
                candidate.path,
                short_hash(candidate.content_hash),
            )
        console.print(table)

    @main.command("ignore")
    @click.argument("location_id")
    @click.argument("path")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def ignore(location_id, path, home):
        """Hide the unmanaged skill at PATH until it changes."""
        coordinator = get_coordinator(home)
        try:
            rule = coordinator.ignore(location_id, path)
        except ConfigError as exc:
            fail(str(exc))
        console.print(f"[green]Ignoring[/] {rule.directory_path}")

    @main.command("unignore")
    @click.argument("location_id")
    @click.argument("path")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def unignore(location_id, path, home):
        """Show the skill at PATH in scans again."""
        coordinator = get_coordinator(home)
        if coordinator.unignore(location_id, path):
            console.print(f"[green]No longer ignoring[/] {path}")
        else:
            console.print(f"[yellow]No ignore rule for[/] {path}")
