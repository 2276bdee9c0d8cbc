"""
Built-in sync locations for the tools we know about.

Each template names a tool's native skills folder and the sibling folder
that disabled copies are parked in.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def expand_path(raw: str, home: Optional[Path] = None) -> Path:
    """Trim a configured path and expand a leading ``~``.

    Args:
        raw: Path as written in config or a template.
        home: Home directory to expand against. Defaults to the user's.

    Returns:
        Path: The expanded path.
    """
    trimmed = str(raw).strip()
    if not trimmed.startswith("~"):
        return Path(trimmed)
    home = home or Path.home()
    if trimmed == "~":
        return home
    if trimmed.startswith("~/"):
        return home / trimmed[2:]
    return Path(trimmed).expanduser()


def default_disabled_path(root: Path) -> Path:
    """The parking folder for a root: its sibling named ``<root>.disabled``."""
    root = Path(root)
    return root.parent / f"{root.name}.disabled"


@dataclass(frozen=True)
class LocationTemplate:
    """A known tool's skills folder."""

    key: str
    display_name: str
    root_path: str
    disabled_root_path: str

    def expanded_root(self, home: Optional[Path] = None) -> Path:
        return expand_path(self.root_path, home)

    def expanded_disabled_root(self, home: Optional[Path] = None) -> Path:
        return expand_path(self.disabled_root_path, home)


def _template(key: str, display_name: str, root: str) -> LocationTemplate:
    return LocationTemplate(key, display_name, root, f"{root}.disabled")


TEMPLATES: tuple[LocationTemplate, ...] = (
    _template("codex", "Codex", "~/.codex/skills"),
    _template("claude", "Claude Code", "~/.claude/skills"),
    _template("vscode", "VS Code", "~/.github/skills"),
    _template("amp", "Amp", "~/.config/amp/skills"),
    _template("opencode-home", "OpenCode (home)", "~/.opencode/skills"),
    _template("opencode-config", "OpenCode (config)", "~/.config/opencode/skills"),
    _template("goose", "Goose", "~/.config/goose/skills"),
)


def template_for(key: str) -> Optional[LocationTemplate]:
    """Look up a built-in template by key."""
    return next((t for t in TEMPLATES if t.key == key), None)
