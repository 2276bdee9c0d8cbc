"""Skill commands: list, add, enable, disable, remove."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import SKILLSYNC_HOME, console, fail, get_coordinator
from ..config import ConfigError
from ..coordinator import SYNC_ERRORS


def register_skill_commands(main: click.Group) -> None:
    """Register the skill command group."""

    @main.group()
    def skill():
        """Skills in the library and where they are enabled."""

    @skill.command("list")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def skill_list(home):
        """Show managed skills."""
        coordinator = get_coordinator(home)
        skills = coordinator.config.skills
        if not skills:
            console.print("[dim]No skills registered.[/] Try: skillsync skill add PATH")
            return

        table = Table(title="Skills")
        table.add_column("Name", style="cyan")
        table.add_column("ID", style="dim")
        table.add_column("Library path")
        table.add_column("Enabled at")
        for entry in sorted(skills, key=lambda s: s.name.casefold()):
            table.add_row(
                entry.name,
                entry.skill_id,
                str(entry.canonical_dir),
                ", ".join(entry.enabled_locations) or "[dim]none[/]",
            )
        console.print(table)

    @skill.command("add")
    @click.argument("path", type=click.Path(exists=True, file_okay=True))
    @click.option("--name", default=None, help="Skill name (defaults to the folder name).")
    @click.option("--id", "skill_id", default=None, help="Use this skill id instead of a new one.")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def skill_add(path, name, skill_id, home):
        """Register the library directory at PATH as a managed skill."""
        coordinator = get_coordinator(home)
        try:
            entry = coordinator.add_skill(path, name=name, skill_id=skill_id)
        except (ConfigError, *SYNC_ERRORS) as exc:
            fail(str(exc))
        console.print(f"[green]Registered[/] [cyan]{entry.name}[/] [dim]({entry.skill_id})[/]")

    @skill.command("enable")
    @click.argument("name")
    @click.argument("location_id")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def skill_enable(name, location_id, home):
        """Export skill NAME into LOCATION_ID."""
        coordinator = get_coordinator(home)
        try:
            path = coordinator.set_enabled(name, location_id, True)
        except (ConfigError, *SYNC_ERRORS) as exc:
            fail(str(exc))
        console.print(f"[green]Enabled[/] [cyan]{name}[/] at {location_id}: {path}")

    @skill.command("disable")
    @click.argument("name")
    @click.argument("location_id")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def skill_disable(name, location_id, home):
        """Move skill NAME's copy at LOCATION_ID to the disabled folder."""
        coordinator = get_coordinator(home)
        try:
            path = coordinator.set_enabled(name, location_id, False)
        except (ConfigError, *SYNC_ERRORS) as exc:
            fail(str(exc))
        if path is None:
            console.print(f"[yellow]Disabled[/] [cyan]{name}[/] at {location_id} (no managed copy found)")
        else:
            console.print(f"[yellow]Disabled[/] [cyan]{name}[/] at {location_id}: {path}")

    @skill.command("remove")
    @click.argument("name")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def skill_remove(name, home):
        """Delete every export of NAME and stop managing it.

        The library directory itself is kept.
        """
        coordinator = get_coordinator(home)
        try:
            removed = coordinator.remove_skill(name)
        except (ConfigError, *SYNC_ERRORS) as exc:
            fail(str(exc))
        console.print(f"[green]Removed[/] [cyan]{name}[/]")
        for path in removed:
            console.print(f"  [dim]deleted {path}[/]")
