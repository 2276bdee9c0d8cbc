"""Location commands: templates, list, add, add-template, remove."""

from __future__ import annotations

from typing import Optional

import click
from rich.table import Table

from ._common import SKILLSYNC_HOME, console, fail, get_coordinator
from ..config import ConfigError, custom_location, location_from_template
from ..coordinator import SYNC_ERRORS
from ..templates import TEMPLATES


def register_location_commands(main: click.Group) -> None:
    """Register the location command group."""

    @main.group()
    def location():
        """Tool skill folders that skills are exported to."""

    @location.command("templates")
    def location_templates():
        """List the built-in locations for known tools."""
        table = Table(title="Location templates")
        table.add_column("Key", style="cyan")
        table.add_column("Tool")
        table.add_column("Root")
        table.add_column("Disabled root", style="dim")
        for template in TEMPLATES:
            table.add_row(
                template.key,
                template.display_name,
                template.root_path,
                template.disabled_root_path,
            )
        console.print(table)

    @location.command("list")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def location_list(home):
        """Show configured locations."""
        coordinator = get_coordinator(home)
        locations = coordinator.config.locations
        if not locations:
            console.print("[dim]No locations configured.[/] Try: skillsync location add-template claude")
            return

        table = Table(title="Locations")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Root")
        table.add_column("Disabled root", style="dim")
        for loc in locations:
            table.add_row(
                loc.location_id, loc.display_name, str(loc.root), str(loc.disabled_root)
            )
        console.print(table)

    @location.command("add")
    @click.argument("location_id")
    @click.argument("root")
    @click.option("--name", default=None, help="Display name (defaults to the id).")
    @click.option("--disabled-root", default=None, help="Folder disabled copies move to.")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def location_add(location_id, root, name: Optional[str], disabled_root, home):
        """Add a custom location rooted at ROOT."""
        coordinator = get_coordinator(home)
        try:
            loc = coordinator.add_location(
                custom_location(location_id, root, display_name=name, disabled_root=disabled_root)
            )
        except ConfigError as exc:
            fail(str(exc))
        console.print(f"[green]Added[/] [cyan]{loc.location_id}[/] at {loc.root}")

    @location.command("add-template")
    @click.argument("key")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def location_add_template(key, home):
        """Add a built-in location by template KEY."""
        coordinator = get_coordinator(home)
        try:
            loc = coordinator.add_location(location_from_template(key))
        except ConfigError as exc:
            fail(str(exc))
        console.print(f"[green]Added[/] [cyan]{loc.location_id}[/] at {loc.root}")

    @location.command("remove")
    @click.argument("location_id")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def location_remove(location_id, home):
        """Delete every managed copy at a location and forget it."""
        coordinator = get_coordinator(home)
        try:
            removed = coordinator.remove_location(location_id)
        except (ConfigError, *SYNC_ERRORS) as exc:
            fail(str(exc))
        console.print(f"[green]Removed[/] [cyan]{location_id}[/]")
        for path in removed:
            console.print(f"  [dim]deleted {path}[/]")
