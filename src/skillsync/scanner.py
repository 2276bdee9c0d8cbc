"""
Unmanaged skill scanner.

Finds skills in a location that nobody manages yet: any SKILL.md under
the root whose directory has no manifest, plus a bare SKILL.md sitting
directly in the root. Hidden entries are skipped and symlinked
directories are never entered.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from .digest import DigestError, hash_directory, hash_file
from .fs import EntryKind, FileSystem, LocalFileSystem, WalkEntry, walk
from .manifest import ManifestError, load_manifest
from .models import SyncLocation
from .resolver import SKILL_FILENAME

logger = logging.getLogger("skillsync.scanner")


class CandidateSource(str, Enum):
    """Where an unmanaged skill was found."""

    DIRECTORY = "directory"
    ROOT_FILE = "root_file"


class UnmanagedCandidate(BaseModel):
    """A skill at a location that carries no sync manifest."""

    location_id: str
    location_name: str
    source: CandidateSource
    path: str
    content_hash: Optional[str] = None

    @property
    def id(self) -> str:
        return f"{self.location_id}::{self.path}"

    @property
    def skill_file(self) -> Path:
        if self.source == CandidateSource.ROOT_FILE:
            return Path(self.path)
        return Path(self.path) / SKILL_FILENAME


def _path_key(path: Path) -> str:
    return os.path.normpath(os.path.abspath(path))


def scan_unmanaged(
    location: SyncLocation,
    fs: Optional[FileSystem] = None,
    with_hashes: bool = True,
) -> list[UnmanagedCandidate]:
    """List unmanaged skills in a location's active root.

    Args:
        location: Location to scan.
        fs: Filesystem to read from.
        with_hashes: Fill ``content_hash`` for each candidate. A candidate
            that cannot be hashed keeps None.

    Returns:
        Candidates sorted case-insensitively by id.
    """
    fs = fs or LocalFileSystem()
    root = location.root
    if not fs.is_dir(root):
        return []

    root_key = _path_key(root)

    def _descend(entry: WalkEntry) -> bool:
        return not entry.name.startswith(".")

    candidates: list[UnmanagedCandidate] = []
    seen: set[str] = set()
    for entry in walk(fs, root, descend=_descend):
        if entry.name != SKILL_FILENAME or entry.kind is not EntryKind.FILE:
            continue

        directory = entry.path.parent
        if _path_key(directory) == root_key:
            source, path = CandidateSource.ROOT_FILE, entry.path
        else:
            source, path = CandidateSource.DIRECTORY, directory

        key = _path_key(path)
        if key in seen:
            continue
        seen.add(key)

        if source == CandidateSource.DIRECTORY:
            try:
                if load_manifest(directory, fs) is not None:
                    continue
            except ManifestError as exc:
                # Someone wrote a manifest here; it is not unmanaged.
                logger.warning("Skipping %s: %s", directory, exc)
                continue

        content_hash = None
        if with_hashes:
            try:
                if source == CandidateSource.DIRECTORY:
                    content_hash = hash_directory(path, fs=fs)
                else:
                    content_hash = hash_file(path, fs=fs)
            except (DigestError, OSError) as exc:
                logger.warning("Could not hash unmanaged skill %s: %s", path, exc)

        candidates.append(
            UnmanagedCandidate(
                location_id=location.location_id,
                location_name=location.display_name,
                source=source,
                path=key,
                content_hash=content_hash,
            )
        )

    logger.debug("Found %d unmanaged skill(s) in %s", len(candidates), root)
    return sorted(candidates, key=lambda c: c.id.casefold())
