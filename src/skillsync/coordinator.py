"""
Sync coordinator -- drives the engine across every configured skill.

The engine handles one skill at a time and keeps no state. The coordinator
owns the config, the ignore rules, and the persisted sweep state under the
skillsync home, and turns user intents (enable, disable, remove, resolve)
into engine calls.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from . import SKILLSYNC_HOME
from .config import (
    ConfigError,
    SkillEntry,
    SkillSyncConfig,
    load_config,
    save_config,
)
from .digest import DigestError
from .engine import SyncEngine, SyncEngineError
from .ignore_store import IGNORE_FILENAME, IgnoreRule, IgnoreStore
from .manifest import CANONICAL_TOOL, ManifestError, load_manifest
from .models import Conflict, SyncConflict, SyncLocation, SyncOutcome
from .scanner import UnmanagedCandidate, scan_unmanaged

logger = logging.getLogger("skillsync.coordinator")

STATE_FILENAME = "state.json"

SYNC_ERRORS = (SyncEngineError, DigestError, ManifestError, OSError)


class SkillResult(BaseModel):
    """Outcome of syncing one skill during a sweep."""

    skill_id: str
    name: str
    outcome: Optional[SyncOutcome] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SweepReport(BaseModel):
    """Everything one full sweep did."""

    started_at: datetime
    results: list[SkillResult] = Field(default_factory=list)

    @property
    def conflicts(self) -> list[SyncConflict]:
        return [
            r.outcome.conflict for r in self.results if isinstance(r.outcome, Conflict)
        ]

    @property
    def errors(self) -> list[str]:
        return [f"{r.name}: {r.error}" for r in self.results if r.error]


class SweepState(BaseModel):
    """Persisted across runs in ``<home>/state.json``."""

    last_sweep: Optional[datetime] = None
    sweep_count: int = 0
    last_error: Optional[str] = None
    conflicts: list[SyncConflict] = Field(default_factory=list)


class SyncCoordinator:
    """Runs sync sweeps and lifecycle edits against a skillsync home.

    Args:
        home: The skillsync home directory. Defaults to SKILLSYNC_HOME.
        engine: Engine to drive. Defaults to one on the local disk.
    """

    def __init__(self, home: Optional[Path] = None, engine: Optional[SyncEngine] = None):
        self.home = Path(home or SKILLSYNC_HOME).expanduser()
        self.engine = engine or SyncEngine()
        self.config: SkillSyncConfig = load_config(self.home)
        self.state: SweepState = self._load_state()
        self.ignore_store = IgnoreStore(self.home / IGNORE_FILENAME)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_state(self) -> SweepState:
        state_file = self.home / STATE_FILENAME
        if state_file.exists():
            try:
                data = json.loads(state_file.read_text(encoding="utf-8"))
                return SweepState(**data)
            except (json.JSONDecodeError, ValueError) as exc:
                logger.warning("Failed to load sweep state: %s", exc)
        return SweepState()

    def _save_state(self) -> None:
        self.home.mkdir(parents=True, exist_ok=True)
        state_file = self.home / STATE_FILENAME
        state_file.write_text(self.state.model_dump_json(indent=2), encoding="utf-8")

    def save_config(self) -> None:
        """Persist the configuration."""
        save_config(self.config, self.home)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def require_skill(self, key: str) -> SkillEntry:
        skill = self.config.skill(key)
        if skill is None:
            raise ConfigError(f"Unknown skill: {key}")
        return skill

    def require_location(self, location_id: str) -> SyncLocation:
        location = self.config.location(location_id)
        if location is None:
            raise ConfigError(f"Unknown location: {location_id}")
        return location

    def enabled_locations(self, skill: SkillEntry) -> list[SyncLocation]:
        """Configured locations a skill is enabled at, in config order."""
        enabled = set(skill.enabled_locations)
        return [loc for loc in self.config.locations if loc.location_id in enabled]

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def _sync_one(self, skill: SkillEntry, force_source: Optional[str] = None) -> SyncOutcome:
        return self.engine.sync_skill(
            skill.skill_id,
            skill.name,
            skill.canonical_dir,
            skill.enabled_locations,
            self.config.locations,
            force_source=force_source,
        )

    def sync_all(self) -> SweepReport:
        """Sync every configured skill.

        A failure in one skill is logged and recorded in the report; the
        sweep moves on to the next skill.

        Returns:
            SweepReport: Per-skill outcomes and errors.
        """
        report = SweepReport(started_at=datetime.now(timezone.utc))

        for skill in sorted(self.config.skills, key=lambda s: s.name.casefold()):
            try:
                outcome = self._sync_one(skill)
            except SYNC_ERRORS as exc:
                logger.error("Sync failed for %s: %s", skill.name, exc)
                report.results.append(
                    SkillResult(skill_id=skill.skill_id, name=skill.name, error=str(exc))
                )
                continue
            report.results.append(
                SkillResult(skill_id=skill.skill_id, name=skill.name, outcome=outcome)
            )

        self.state.last_sweep = report.started_at
        self.state.sweep_count += 1
        self.state.last_error = "; ".join(report.errors) or None
        self.state.conflicts = report.conflicts
        self._save_state()

        logger.info(
            "Sweep finished: %d skill(s), %d conflict(s), %d error(s)",
            len(report.results),
            len(report.conflicts),
            len(report.errors),
        )
        return report

    def resolve(self, skill_key: str, keep: str) -> SyncOutcome:
        """Settle a conflict by declaring one replica the winner.

        Args:
            skill_key: Skill id or name.
            keep: Location id whose content wins, or ``library`` for the
                canonical copy.

        Raises:
            ConfigError: If the skill is unknown or ``keep`` is not the
                library or one of the skill's enabled locations.
        """
        skill = self.require_skill(skill_key)
        if keep != CANONICAL_TOOL and keep not in skill.enabled_locations:
            raise ConfigError(f"{skill.name} is not enabled at {keep}")

        outcome = self._sync_one(skill, force_source=keep)
        self.state.conflicts = [
            c for c in self.state.conflicts if c.skill_id != skill.skill_id
        ]
        self._save_state()
        logger.info("Resolved %s keeping %s", skill.name, keep)
        return outcome

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def add_skill(
        self, path: Path, name: Optional[str] = None, skill_id: Optional[str] = None
    ) -> SkillEntry:
        """Register a library directory as a managed skill.

        A directory that already carries a canonical manifest keeps the id
        recorded in it unless one is given explicitly.
        """
        directory = Path(os.path.abspath(Path(path).expanduser()))
        if skill_id is None:
            existing = load_manifest(directory, self.engine.fs)
            if existing is not None and existing.is_managed and existing.canonical:
                skill_id = existing.skill_id

        entry = SkillEntry(name=name or directory.name, path=str(directory))
        if skill_id:
            entry.skill_id = skill_id
        self.config.add_skill(entry)
        try:
            self.engine.ensure_canonical_manifest(entry.skill_id, directory)
        except SYNC_ERRORS:
            self.config.skills.remove(entry)
            raise
        self.save_config()
        logger.info("Registered skill %s (%s) at %s", entry.name, entry.skill_id, directory)
        return entry

    def remove_skill(self, skill_key: str) -> list[Path]:
        """Delete every export of a skill and stop managing it.

        The canonical directory is left alone.

        Returns:
            The exported directories that were removed.
        """
        skill = self.require_skill(skill_key)
        removed: list[Path] = []
        for location in self.config.locations:
            removed.extend(self.engine.remove_exports(skill.skill_id, location))
        self.config.remove_skill(skill.skill_id)
        self.save_config()
        self.state.conflicts = [
            c for c in self.state.conflicts if c.skill_id != skill.skill_id
        ]
        self._save_state()
        return removed

    def set_enabled(self, skill_key: str, location_id: str, enabled: bool) -> Optional[Path]:
        """Enable (export) or disable (park) a skill at one location.

        The config only records the change once the filesystem side
        succeeded.

        Returns:
            The export directory when enabling, the parked directory when
            disabling, or None if there was nothing to disable.
        """
        skill = self.require_skill(skill_key)
        location = self.require_location(location_id)

        if enabled:
            self.engine.ensure_canonical_manifest(skill.skill_id, skill.canonical_dir)
            result: Optional[Path] = self.engine.export_skill(
                skill.canonical_dir, skill.name, skill.skill_id, location
            )
        else:
            result = self.engine.disable_export(
                skill.skill_id, location, preferred_name=skill.name
            )

        self.config.set_enabled(skill.skill_id, location_id, enabled)
        self.save_config()
        return result

    def add_location(self, location: SyncLocation) -> SyncLocation:
        self.config.add_location(location)
        self.save_config()
        logger.info("Added location %s at %s", location.location_id, location.root)
        return location

    def remove_location(self, location_id: str) -> list[Path]:
        """Remove every managed replica at a location, then forget it.

        Returns:
            The directories that were removed.
        """
        location = self.require_location(location_id)
        removed: list[Path] = []
        for skill in self.config.skills:
            removed.extend(self.engine.remove_exports(skill.skill_id, location))
        self.config.remove_location(location_id)
        self.save_config()
        logger.info("Removed location %s (%d replica(s) deleted)", location_id, len(removed))
        return removed

    # ------------------------------------------------------------------
    # Unmanaged skills
    # ------------------------------------------------------------------

    def _scan(self, location_id: Optional[str]) -> list[UnmanagedCandidate]:
        if location_id is not None:
            locations = [self.require_location(location_id)]
        else:
            locations = self.config.locations
        candidates: list[UnmanagedCandidate] = []
        for location in locations:
            candidates.extend(scan_unmanaged(location, fs=self.engine.fs))
        return sorted(candidates, key=lambda c: c.id.casefold())

    def scan_unmanaged(self, location_id: Optional[str] = None) -> list[UnmanagedCandidate]:
        """Unmanaged skills across locations, minus ignored ones."""
        return [
            c
            for c in self._scan(location_id)
            if not self.ignore_store.is_ignored(c.location_id, c.path, c.content_hash)
        ]

    def ignore(self, location_id: str, path: str) -> IgnoreRule:
        """Hide an unmanaged skill until its content changes.

        Raises:
            ConfigError: If ``path`` is not an unmanaged skill in the location.
        """
        key = os.path.normpath(os.path.abspath(Path(path).expanduser()))
        candidate = next(
            (c for c in self._scan(location_id) if c.path == key), None
        )
        if candidate is None:
            raise ConfigError(f"No unmanaged skill at {key} in {location_id}")
        return self.ignore_store.add_ignore(
            candidate.location_id, candidate.path, candidate.content_hash
        )

    def unignore(self, location_id: str, path: str) -> bool:
        key = os.path.normpath(os.path.abspath(Path(path).expanduser()))
        return self.ignore_store.remove_ignore(location_id, key)
