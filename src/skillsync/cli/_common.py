"""Shared utilities for all CLI command modules.

Provides the Rich console instance, coordinator construction, and
outcome formatting used across every command group.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import NoReturn

from rich.console import Console

from .. import SKILLSYNC_HOME
from ..coordinator import SyncCoordinator
from ..models import Conflict, ExportsCreated, Propagated, SyncOutcome, UpToDate

console = Console()
logger = logging.getLogger("skillsync.cli")

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"

__all__ = [
    "SKILLSYNC_HOME",
    "console",
    "describe_outcome",
    "fail",
    "get_coordinator",
    "logger",
    "short_hash",
    "terminal_handler",
]


def terminal_handler(verbose: bool) -> logging.Handler:
    """Stderr handler for the root logger; INFO stays off the terminal unless verbose."""
    handler = logging.StreamHandler()
    handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    return handler


def _attach_log_file(log_file: str) -> None:
    path = Path(log_file).expanduser()
    root = logging.getLogger("skillsync")
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == path.resolve():
            return
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    if root.getEffectiveLevel() > logging.INFO:
        root.setLevel(logging.INFO)


def get_coordinator(home: str) -> SyncCoordinator:
    """Open the skillsync home, wiring up the configured log file.

    Args:
        home: Path to the skillsync home (``~`` allowed).

    Returns:
        SyncCoordinator: Ready to use.
    """
    coordinator = SyncCoordinator(Path(home).expanduser())
    if coordinator.config.log_file:
        _attach_log_file(coordinator.config.log_file)
    return coordinator


def fail(message: str) -> NoReturn:
    """Print an error and exit 1."""
    console.print(f"[bold red]Error:[/] {message}")
    sys.exit(1)


def short_hash(value) -> str:
    return value[:12] if value else "-"


def describe_outcome(outcome: SyncOutcome) -> str:
    """Map a sync outcome to a Rich-formatted one-liner.

    Args:
        outcome: Result of syncing one skill.

    Returns:
        str: Rich markup string.
    """
    if isinstance(outcome, UpToDate):
        return "[green]up to date[/]"
    if isinstance(outcome, ExportsCreated):
        return f"[cyan]exported[/] to {', '.join(outcome.location_ids)}"
    if isinstance(outcome, Propagated):
        return f"[bold cyan]propagated[/] from {outcome.source}"
    if isinstance(outcome, Conflict):
        changed = ", ".join(outcome.conflict.diverged)
        return f"[bold yellow]conflict[/] ({changed} changed)"
    return "[dim]unknown[/]"
