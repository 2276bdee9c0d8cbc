"""
Location resolver -- find a skill's replica by manifest, not by name.

A tool's skills root may hold any mix of managed replicas, the user's own
skills, and renamed copies. The resolver walks skill-shaped directories
(those with a SKILL.md) and trusts only the sidecar manifest to say which
skill a directory holds.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

from .fs import EntryKind, FileSystem, LocalFileSystem, WalkEntry, walk
from .manifest import load_manifest

logger = logging.getLogger("skillsync.resolver")

SKILL_FILENAME = "SKILL.md"


def is_skill_directory(path: Path, fs: FileSystem) -> bool:
    """True if the directory holds a top-level SKILL.md file."""
    return fs.kind(Path(path) / SKILL_FILENAME) is EntryKind.FILE


def _is_hidden(entry: WalkEntry) -> bool:
    return entry.name.startswith(".")


def iter_skill_directories(root: Path, fs: FileSystem) -> Iterator[Path]:
    """Yield skill-shaped directories under a root.

    Hidden entries are skipped, symlinked directories are never entered, and
    the walk does not descend into a skill directory once found.
    """
    if not fs.is_dir(root):
        return

    def _descend(entry: WalkEntry) -> bool:
        return not _is_hidden(entry) and not is_skill_directory(entry.path, fs)

    for entry in walk(fs, root, descend=_descend):
        if entry.kind is not EntryKind.DIRECTORY or _is_hidden(entry):
            continue
        if is_skill_directory(entry.path, fs):
            yield entry.path


def is_managed(path: Path, skill_id: str, fs: Optional[FileSystem] = None) -> bool:
    """The ownership gate: may this directory be mutated for ``skill_id``?

    Args:
        path: Candidate replica directory.
        skill_id: Skill the caller intends to act for.
        fs: Filesystem to read from.

    Returns:
        True only if a manifest exists, carries our marker, and names
        ``skill_id``.
    """
    fs = fs or LocalFileSystem()
    manifest = load_manifest(path, fs)
    return manifest is not None and manifest.owns(skill_id)


def find_replicas(
    skill_id: str, root: Path, fs: Optional[FileSystem] = None
) -> list[Path]:
    """Every directory under ``root`` whose manifest claims ``skill_id``."""
    fs = fs or LocalFileSystem()
    matches = [
        directory
        for directory in iter_skill_directories(root, fs)
        if is_managed(directory, skill_id, fs)
    ]
    logger.debug("Found %d replica(s) of %s under %s", len(matches), skill_id, root)
    return matches


def find_replica(
    skill_id: str, root: Path, fs: Optional[FileSystem] = None
) -> Optional[Path]:
    """The first directory under ``root`` whose manifest claims ``skill_id``."""
    fs = fs or LocalFileSystem()
    for directory in iter_skill_directories(root, fs):
        if is_managed(directory, skill_id, fs):
            return directory
    return None
