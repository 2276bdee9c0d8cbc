"""
Sync Engine -- keeps a skill's canonical copy and its exports in step.

One call handles one skill and keeps no state between calls:

    sync_skill   ->  baseline -> hash every replica -> pick a single winner
                     -> overwrite canonical if needed -> re-export everywhere
    export_skill ->  copy canonical into a tool folder and tag it
    disable      ->  park the tool's copy in its disabled folder
    remove       ->  delete every managed copy at a location

Nothing is mutated unless its manifest proves it belongs to the skill.
When more than one replica changed since the baseline, the engine returns
a Conflict and touches nothing.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from .digest import SymlinkError, hash_directory, is_excluded
from .fs import EntryKind, FileSystem, LocalFileSystem, WalkEntry, walk
from .manifest import (
    CANONICAL_TOOL,
    MANAGED_BY,
    MANIFEST_DIRNAME,
    SyncManifest,
    format_timestamp,
    load_manifest,
    parse_timestamp,
    save_manifest,
)
from .models import (
    Conflict,
    ExportsCreated,
    Propagated,
    ReplicaState,
    SyncConflict,
    SyncLocation,
    SyncOutcome,
    UpToDate,
)
from .resolver import find_replica, find_replicas, is_managed

logger = logging.getLogger("skillsync.engine")

CANONICAL_DISPLAY_NAME = "Library"


class SyncEngineError(Exception):
    """Base class for sync engine failures."""


class ArchiveNotMaterializedError(SyncEngineError):
    """Raised when the canonical skill is a file (an unextracted archive)."""

    def __init__(self, path: Path):
        super().__init__(
            f"Archive skills must be materialized to a directory before export: {path}"
        )
        self.path = path


class InvalidCanonicalError(SyncEngineError):
    """Raised when the canonical directory is missing or its manifest is unusable."""


class UnmanagedDestinationError(SyncEngineError):
    """Raised when an export target exists but is not provably ours."""

    def __init__(self, path: Path):
        super().__init__(f"Destination is not managed by skillsync: {path}")
        self.path = path


class MissingManagedExportError(SyncEngineError):
    """Raised when the chosen source has no replica to read from."""

    def __init__(self, location_id: str):
        super().__init__(f"Managed export missing in {location_id}")
        self.location_id = location_id


@dataclass(frozen=True)
class _Replica:
    directory: Path
    hash: str
    display_name: str


def is_timestamp_suffix(value: str) -> bool:
    """True if ``value`` parses as one of the manifest timestamp encodings."""
    try:
        parse_timestamp(value)
    except ValueError:
        return False
    return True


def _same_path(a: Path, b: Path) -> bool:
    return os.path.normpath(os.path.abspath(a)) == os.path.normpath(os.path.abspath(b))


class SyncEngine:
    """Stateless skill synchronizer.

    Args:
        fs: Filesystem to operate on. Defaults to the local disk.
        clock: Returns "now"; used for manifest timestamps and for the
            collision suffix of disabled copies.
    """

    def __init__(
        self,
        fs: Optional[FileSystem] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.fs = fs or LocalFileSystem()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Canonical manifest
    # ------------------------------------------------------------------

    def _hash(self, directory: Path) -> str:
        return hash_directory(directory, fs=self.fs)

    def _require_canonical_directory(self, canonical_dir: Path) -> None:
        if not self.fs.exists(canonical_dir):
            raise InvalidCanonicalError(f"Missing canonical directory: {canonical_dir}")
        if not self.fs.is_dir(canonical_dir):
            raise ArchiveNotMaterializedError(canonical_dir)

    def ensure_canonical_manifest(self, skill_id: str, canonical_dir: Path) -> None:
        """Seed the canonical manifest from current content if there is none.

        Args:
            skill_id: Stable id of the skill.
            canonical_dir: The library's copy of the skill.

        Raises:
            InvalidCanonicalError: If ``canonical_dir`` does not exist.
            ArchiveNotMaterializedError: If it exists but is not a directory.
        """
        canonical_dir = Path(canonical_dir)
        self._require_canonical_directory(canonical_dir)

        existing = load_manifest(canonical_dir, self.fs)
        if existing is not None and existing.is_managed:
            return

        manifest = SyncManifest(
            skill_id=skill_id,
            managed_by=MANAGED_BY,
            canonical=True,
            tool=CANONICAL_TOOL,
            last_sync_at=self._clock(),
            last_synced_hash=self._hash(canonical_dir),
        )
        save_manifest(manifest, canonical_dir, self.fs)
        logger.info("Seeded canonical manifest for %s at %s", skill_id, canonical_dir)

    def _load_canonical_manifest(self, skill_id: str, canonical_dir: Path) -> SyncManifest:
        self.ensure_canonical_manifest(skill_id, canonical_dir)
        manifest = load_manifest(canonical_dir, self.fs)

        if manifest is None or not manifest.owns(skill_id):
            manifest = SyncManifest(
                skill_id=skill_id, managed_by=MANAGED_BY, canonical=True, tool=CANONICAL_TOOL
            )

        if manifest.last_synced_hash is None:
            manifest = manifest.model_copy(
                update={
                    "last_synced_hash": self._hash(canonical_dir),
                    "last_sync_at": self._clock(),
                    "canonical": True,
                    "tool": CANONICAL_TOOL,
                }
            )
            save_manifest(manifest, canonical_dir, self.fs)
            logger.info("Re-seeded canonical baseline for %s", skill_id)

        return manifest

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync_skill(
        self,
        skill_id: str,
        preferred_name: str,
        canonical_dir: Path,
        enabled_location_ids: Iterable[str],
        locations: Iterable[SyncLocation],
        force_source: Optional[str] = None,
    ) -> SyncOutcome:
        """Run one full sync pass for a single skill.

        Args:
            skill_id: Stable id of the skill.
            preferred_name: Folder name used when creating a new export.
            canonical_dir: The library's copy of the skill.
            enabled_location_ids: Locations this skill should be exported to.
            locations: All configured locations.
            force_source: Location id (or the canonical sentinel) that wins
                regardless of what changed. Used after a human resolves a
                conflict.

        Returns:
            UpToDate, ExportsCreated, Propagated, or Conflict.

        Raises:
            SyncEngineError: On canonical or ownership failures.
            DigestError: If any replica cannot be hashed.
        """
        canonical_dir = Path(canonical_dir)
        enabled_ids = set(enabled_location_ids)
        enabled = [loc for loc in locations if loc.location_id in enabled_ids]

        manifest = self._load_canonical_manifest(skill_id, canonical_dir)
        baseline = manifest.last_synced_hash
        if baseline is None:
            raise InvalidCanonicalError("Canonical manifest is missing lastSyncedHash")
        canonical_hash = self._hash(canonical_dir)

        available: dict[str, _Replica] = {
            CANONICAL_TOOL: _Replica(canonical_dir, canonical_hash, CANONICAL_DISPLAY_NAME)
        }
        missing: list[SyncLocation] = []
        for location in enabled:
            directory = find_replica(skill_id, location.root, self.fs)
            if directory is None:
                missing.append(location)
                continue
            available[location.location_id] = _Replica(
                directory, self._hash(directory), location.display_name
            )

        changed = sorted(lid for lid, replica in available.items() if replica.hash != baseline)
        if force_source is not None:
            source = force_source
        elif len(changed) == 1:
            source = changed[0]
        else:
            source = None

        if source is None and changed:
            logger.warning(
                "Conflict for %s: %s changed since last sync",
                preferred_name,
                ", ".join(changed),
            )
            return Conflict(
                conflict=self._build_conflict(
                    skill_id, preferred_name, baseline, enabled_ids, available
                )
            )

        if source is not None:
            return self._propagate(
                skill_id,
                preferred_name,
                canonical_dir,
                manifest,
                canonical_hash,
                available,
                enabled,
                source,
            )

        if not missing:
            logger.debug("%s is up to date", preferred_name)
            return UpToDate()

        created: list[str] = []
        for location in missing:
            self.export_skill(canonical_dir, preferred_name, skill_id, location)
            created.append(location.location_id)
        return ExportsCreated(location_ids=created)

    def _build_conflict(
        self,
        skill_id: str,
        preferred_name: str,
        baseline: str,
        enabled_ids: set[str],
        available: dict[str, _Replica],
    ) -> SyncConflict:
        states = [
            ReplicaState(
                location_id=location_id,
                display_name=replica.display_name,
                directory_path=str(replica.directory),
                current_hash=replica.hash,
                changed_from_baseline=replica.hash != baseline,
            )
            for location_id, replica in sorted(available.items())
        ]
        return SyncConflict(
            skill_id=skill_id,
            name=preferred_name,
            baseline_hash=baseline,
            enabled_location_ids=sorted(enabled_ids),
            states=states,
        )

    def _propagate(
        self,
        skill_id: str,
        preferred_name: str,
        canonical_dir: Path,
        manifest: SyncManifest,
        canonical_hash: str,
        available: dict[str, _Replica],
        enabled: list[SyncLocation],
        source: str,
    ) -> Propagated:
        source_replica = available.get(source)
        if source_replica is None:
            raise MissingManagedExportError(source)

        winner = canonical_hash
        if source != CANONICAL_TOOL:
            self._overwrite_canonical(canonical_dir, source_replica.directory)
            winner = self._hash(canonical_dir)

        manifest = manifest.model_copy(
            update={
                "managed_by": MANAGED_BY,
                "canonical": True,
                "tool": CANONICAL_TOOL,
                "last_sync_at": self._clock(),
                "last_synced_hash": winner,
            }
        )
        save_manifest(manifest, canonical_dir, self.fs)

        for location in enabled:
            existing = available.get(location.location_id)
            if location.location_id == source and existing is not None:
                self._refresh_export_manifest(existing.directory, skill_id, location, winner)
            else:
                self.export_skill(canonical_dir, preferred_name, skill_id, location)

        logger.info(
            "Propagated %s from %s to %d location(s)", preferred_name, source, len(enabled)
        )
        return Propagated(source=source)

    def _refresh_export_manifest(
        self, directory: Path, skill_id: str, location: SyncLocation, winner: str
    ) -> None:
        existing = load_manifest(directory, self.fs)
        if existing is not None and existing.is_managed:
            manifest = existing.model_copy(
                update={
                    "last_sync_at": self._clock(),
                    "last_synced_hash": winner,
                    "canonical": False,
                    "tool": location.location_id,
                }
            )
        else:
            manifest = SyncManifest(
                skill_id=skill_id,
                managed_by=MANAGED_BY,
                canonical=False,
                tool=location.location_id,
                last_sync_at=self._clock(),
                last_synced_hash=winner,
            )
        save_manifest(manifest, directory, self.fs)

    def _overwrite_canonical(self, canonical_dir: Path, source_dir: Path) -> None:
        plan = self._copy_plan(source_dir)
        for name in self.fs.list_dir(canonical_dir):
            if name == MANIFEST_DIRNAME:
                continue
            self.fs.remove(canonical_dir / name)
        self._apply_copy_plan(plan, canonical_dir)
        logger.info("Replaced canonical content at %s from %s", canonical_dir, source_dir)

    # ------------------------------------------------------------------
    # Export / disable / remove
    # ------------------------------------------------------------------

    def export_skill(
        self,
        canonical_dir: Path,
        preferred_name: str,
        skill_id: str,
        location: SyncLocation,
    ) -> Path:
        """Write a fresh copy of the canonical skill into a location.

        The destination is the directory whose manifest already claims the
        skill, or ``<root>/<preferred_name>`` when there is none. Disabled
        copies of the skill at this location are cleared first so
        re-enabling never leaves duplicates.

        Args:
            canonical_dir: The library's copy of the skill.
            preferred_name: Folder name for a new export.
            skill_id: Stable id of the skill.
            location: Where to export.

        Returns:
            Path to the exported directory.

        Raises:
            InvalidCanonicalError: If ``canonical_dir`` does not exist.
            ArchiveNotMaterializedError: If it is not a directory.
            UnmanagedDestinationError: If the destination exists and is not
                this skill's managed replica. It is left untouched.
            SymlinkError: If the canonical tree contains a symlink.
            ManifestError: If a replica at the location has an unreadable
                manifest. Nothing is changed.
        """
        canonical_dir = Path(canonical_dir)
        self._require_canonical_directory(canonical_dir)

        active_root = location.root
        disabled_root = location.disabled_root
        self.fs.make_dirs(active_root)

        destination = find_replica(skill_id, active_root, self.fs) or (
            active_root / preferred_name
        )
        if self.fs.exists(destination) and not is_managed(destination, skill_id, self.fs):
            raise UnmanagedDestinationError(destination)

        plan = self._copy_plan(canonical_dir)

        if not _same_path(active_root, disabled_root):
            self._remove_disabled_copies(skill_id, destination.name, disabled_root)

        if self.fs.exists(destination):
            self.fs.remove(destination)
        self._apply_copy_plan(plan, destination)

        manifest = SyncManifest(
            skill_id=skill_id,
            managed_by=MANAGED_BY,
            canonical=False,
            tool=location.location_id,
            last_sync_at=self._clock(),
            last_synced_hash=self._hash(destination),
        )
        save_manifest(manifest, destination, self.fs)
        logger.info("Exported %s to %s (%s)", preferred_name, destination, location.location_id)
        return destination

    def disable_export(
        self,
        skill_id: str,
        location: SyncLocation,
        preferred_name: Optional[str] = None,
    ) -> Optional[Path]:
        """Move the skill's active copy at a location into its disabled root.

        Content is never deleted here. An earlier disabled copy of the same
        skill is replaced, and the moved folder gets a timestamp suffix only
        if its name is already taken.

        Args:
            skill_id: Stable id of the skill.
            location: Location to disable the skill at.
            preferred_name: Folder name to try when no manifest match exists.

        Returns:
            Where the copy was moved to, or None if there was nothing
            managed to disable.
        """
        active_root = location.root
        disabled_root = location.disabled_root

        active = find_replica(skill_id, active_root, self.fs)
        if active is None and preferred_name:
            active = active_root / preferred_name
        if active is None or not self.fs.exists(active):
            return None
        if not is_managed(active, skill_id, self.fs):
            logger.warning("Not disabling %s: not managed for skill %s", active, skill_id)
            return None

        self.fs.make_dirs(disabled_root)
        if not _same_path(active_root, disabled_root):
            for directory in find_replicas(skill_id, disabled_root, self.fs):
                if self.fs.exists(directory):
                    self.fs.remove(directory)
                    logger.info("Removed stale disabled copy %s", directory)

        destination = self._unique_destination(active.name, disabled_root)
        self.fs.move(active, destination)
        logger.info("Disabled %s at %s -> %s", skill_id, location.location_id, destination)
        return destination

    def remove_exports(self, skill_id: str, location: SyncLocation) -> list[Path]:
        """Delete every managed replica of a skill at a location.

        Both the active and the disabled root are searched. Used when a
        skill is deleted or a location stops being synced.

        Returns:
            The directories that were removed.
        """
        matches = find_replicas(skill_id, location.root, self.fs) + find_replicas(
            skill_id, location.disabled_root, self.fs
        )
        removed: list[Path] = []
        seen: set[str] = set()
        for directory in matches:
            key = os.path.normpath(os.path.abspath(directory))
            if key in seen or not self.fs.exists(directory):
                continue
            seen.add(key)
            self.fs.remove(directory)
            removed.append(directory)
            logger.info("Removed %s from %s", directory, location.location_id)
        return removed

    def _remove_disabled_copies(self, skill_id: str, base_name: str, disabled_root: Path) -> None:
        if not self.fs.is_dir(disabled_root):
            return

        targets = {str(p): p for p in find_replicas(skill_id, disabled_root, self.fs)}
        prefix = base_name + "-"
        for name in self.fs.list_dir(disabled_root):
            if name.startswith("."):
                continue
            path = disabled_root / name
            if self.fs.kind(path) is not EntryKind.DIRECTORY:
                continue
            if name == base_name or (
                name.startswith(prefix) and is_timestamp_suffix(name[len(prefix):])
            ):
                targets[str(path)] = path

        for key in sorted(targets):
            target = targets[key]
            if self.fs.exists(target):
                self.fs.remove(target)
                logger.info("Removed disabled copy %s", target)

    def _unique_destination(self, name: str, disabled_root: Path) -> Path:
        base = disabled_root / name
        if not self.fs.exists(base):
            return base
        stamped = disabled_root / f"{name}-{format_timestamp(self._clock())}"
        candidate = stamped
        counter = 2
        while self.fs.exists(candidate):
            candidate = stamped.with_name(f"{stamped.name}-{counter}")
            counter += 1
        return candidate

    # ------------------------------------------------------------------
    # Copying
    # ------------------------------------------------------------------

    def _copy_plan(self, source: Path) -> list[WalkEntry]:
        """List what a copy of ``source`` would write.

        Raises SymlinkError before any destination is touched.
        """

        def _descend(entry: WalkEntry) -> bool:
            return not is_excluded(entry.relative)

        plan: list[WalkEntry] = []
        for entry in walk(self.fs, source, descend=_descend):
            if is_excluded(entry.relative):
                continue
            if entry.kind is EntryKind.SYMLINK:
                raise SymlinkError(entry.relative)
            if entry.kind in (EntryKind.DIRECTORY, EntryKind.FILE):
                plan.append(entry)
        return plan

    def _apply_copy_plan(self, plan: list[WalkEntry], destination: Path) -> None:
        self.fs.make_dirs(destination)
        for entry in plan:
            target = destination / entry.relative
            if entry.kind is EntryKind.DIRECTORY:
                self.fs.make_dirs(target)
            else:
                self.fs.make_dirs(target.parent)
                self.fs.copy_file(entry.path, target)
