"""Shared test fixtures for skillsync."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest


class FakeClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + timedelta(seconds=1)
        return now


@pytest.fixture
def clock() -> FakeClock:
    """Provide a deterministic clock for engine timestamps."""
    return FakeClock()


@pytest.fixture
def engine(clock: FakeClock):
    """Provide a SyncEngine on the local disk with a fake clock."""
    from skillsync.engine import SyncEngine

    return SyncEngine(clock=clock)


@pytest.fixture
def write_tree() -> Callable[[Path, dict], Path]:
    """Return a helper that writes ``{relative path: text}`` under a directory."""

    def _write(root: Path, files: dict) -> Path:
        root.mkdir(parents=True, exist_ok=True)
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        return root

    return _write


@pytest.fixture
def library(tmp_path: Path, write_tree) -> Path:
    """Provide a canonical skill directory named ``demo`` with body v1."""
    return write_tree(
        tmp_path / "library" / "demo",
        {"SKILL.md": "---\nname: demo\n---\nv1\n", "scripts/run.sh": "echo hi\n"},
    )


@pytest.fixture
def make_location(tmp_path: Path):
    """Return a factory for SyncLocations rooted under ``tmp_path/tools``."""
    from skillsync.models import SyncLocation

    def _make(location_id: str, display_name: str = "") -> SyncLocation:
        root = tmp_path / "tools" / location_id / "skills"
        return SyncLocation(
            location_id=location_id,
            display_name=display_name or location_id.title(),
            root_path=root,
            disabled_root_path=root.parent / "skills.disabled",
        )

    return _make


@pytest.fixture
def codex(make_location):
    """Provide the ``codex`` location."""
    return make_location("codex", "Codex")


@pytest.fixture
def claude(make_location):
    """Provide the ``claude`` location."""
    return make_location("claude", "Claude Code")


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Provide a temporary skillsync home directory."""
    path = tmp_path / ".skillsync"
    path.mkdir()
    return path


def snapshot(root: Path) -> dict:
    """Map every file under ``root`` to its bytes."""
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


@pytest.fixture
def tree_snapshot() -> Callable[[Path], dict]:
    """Return a helper capturing every file under a directory."""
    return snapshot
