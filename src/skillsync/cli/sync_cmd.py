"""Sync commands: run, status, resolve."""

from __future__ import annotations

import sys

import click
from rich.panel import Panel
from rich.table import Table

from ._common import (
    SKILLSYNC_HOME,
    console,
    describe_outcome,
    fail,
    get_coordinator,
    short_hash,
)
from ..config import ConfigError
from ..coordinator import SYNC_ERRORS
from ..models import Conflict, SyncConflict


def _print_conflict(conflict: SyncConflict) -> None:
    table = Table(title=f"Conflict: {conflict.name}", title_style="bold yellow")
    table.add_column("Location", style="cyan")
    table.add_column("Hash")
    table.add_column("Changed")
    table.add_column("Path", style="dim")
    for state in conflict.states:
        table.add_row(
            state.location_id,
            short_hash(state.current_hash),
            "[bold yellow]yes[/]" if state.changed_from_baseline else "no",
            state.directory_path,
        )
    console.print(table)
    console.print(
        f"  [dim]Baseline {short_hash(conflict.baseline_hash)}. "
        f"Resolve with: skillsync sync resolve {conflict.name} --keep LOCATION[/]"
    )


def register_sync_commands(main: click.Group) -> None:
    """Register the sync command group."""

    @main.group()
    def sync():
        """Keep the library and every export in step."""

    @sync.command("run")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def sync_run(home):
        """Sync every managed skill once."""
        coordinator = get_coordinator(home)
        if not coordinator.config.skills:
            console.print("[dim]No skills registered.[/]")
            return

        report = coordinator.sync_all()

        table = Table(title="Sync")
        table.add_column("Skill", style="cyan")
        table.add_column("Result")
        for result in report.results:
            if result.error:
                table.add_row(result.name, f"[bold red]error[/] {result.error}")
            else:
                table.add_row(result.name, describe_outcome(result.outcome))
        console.print(table)

        for conflict in report.conflicts:
            _print_conflict(conflict)

        if report.errors:
            sys.exit(1)

    @sync.command("status")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def sync_status(home):
        """Show the last sweep and any outstanding conflicts."""
        coordinator = get_coordinator(home)
        state = coordinator.state
        console.print(
            Panel(
                f"Skills: [bold]{len(coordinator.config.skills)}[/]\n"
                f"Locations: [bold]{len(coordinator.config.locations)}[/]\n"
                f"Sweeps: [bold]{state.sweep_count}[/]\n"
                f"Last sweep: {state.last_sweep or '[dim]never[/]'}\n"
                f"Last error: {state.last_error or '[dim]none[/]'}\n"
                f"Conflicts: [bold]{len(state.conflicts)}[/]",
                title="SkillSync",
                border_style="cyan",
            )
        )
        for conflict in state.conflicts:
            _print_conflict(conflict)

    @sync.command("resolve")
    @click.argument("name")
    @click.option("--keep", required=True, help="Location id (or 'library') whose copy wins.")
    @click.option("--home", default=SKILLSYNC_HOME, type=click.Path())
    def sync_resolve(name, keep, home):
        """Settle a conflict on NAME by keeping one copy."""
        coordinator = get_coordinator(home)
        try:
            outcome = coordinator.resolve(name, keep)
        except (ConfigError, *SYNC_ERRORS) as exc:
            fail(str(exc))
        console.print(f"[cyan]{name}[/]: {describe_outcome(outcome)}")
        if isinstance(outcome, Conflict):
            _print_conflict(outcome.conflict)
