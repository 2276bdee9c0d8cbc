"""
Content digest -- a stable fingerprint for a skill directory.

The hash covers every regular file's relative path and bytes, visited in
sorted path order, so two trees with the same (path, content) pairs hash
the same no matter how the filesystem enumerates them. Sync metadata and
OS litter are excluded at any depth. Symlinks fail the hash by default so
a copy driven by the same listing can never escape the source tree.
"""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .fs import EntryKind, FileSystem, LocalFileSystem, WalkEntry, walk
from .manifest import MANIFEST_DIRNAME

logger = logging.getLogger("skillsync.digest")

CHUNK_SIZE = 64 * 1024
OS_ARTIFACTS = frozenset({"__MACOSX", ".DS_Store"})
DEFAULT_EXCLUDED = frozenset({MANIFEST_DIRNAME}) | OS_ARTIFACTS


class DigestError(Exception):
    """Raised when a path cannot be hashed."""


class SymlinkError(DigestError):
    """Raised when a symlink is found inside a skill tree."""

    def __init__(self, path: str):
        super().__init__(f"Skill contains unsupported symlink at {path}")
        self.path = path


@dataclass(frozen=True)
class DigestOptions:
    """Knobs for directory hashing.

    Attributes:
        fail_on_symlinks: Raise SymlinkError instead of skipping symlinks.
        excluded: Path components ignored wherever they appear.
    """

    fail_on_symlinks: bool = True
    excluded: frozenset = DEFAULT_EXCLUDED


def is_excluded(relative: str, excluded: frozenset = DEFAULT_EXCLUDED) -> bool:
    """Check whether any component of a relative path is excluded."""
    if not relative:
        return True
    return any(part in excluded for part in relative.split("/"))


def list_content_files(
    directory: Path,
    fs: Optional[FileSystem] = None,
    options: Optional[DigestOptions] = None,
) -> list[WalkEntry]:
    """List the regular files that make up a skill's content.

    Args:
        directory: Skill directory to list.
        fs: Filesystem to read from.
        options: Exclusion and symlink policy.

    Returns:
        File entries sorted by relative path.

    Raises:
        SymlinkError: If a symlink is found and the policy is fail-closed.
    """
    fs = fs or LocalFileSystem()
    options = options or DigestOptions()

    def _descend(entry: WalkEntry) -> bool:
        return not is_excluded(entry.relative, options.excluded)

    files: list[WalkEntry] = []
    for entry in walk(fs, directory, descend=_descend):
        if is_excluded(entry.relative, options.excluded):
            continue
        if entry.kind is EntryKind.SYMLINK:
            if options.fail_on_symlinks:
                raise SymlinkError(entry.relative)
            continue
        if entry.kind is EntryKind.FILE:
            files.append(entry)

    return sorted(files, key=lambda e: e.relative)


def _update_from_file(hasher, fs: FileSystem, path: Path) -> None:
    with fs.open_read(path) as handle:
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            hasher.update(chunk)


def hash_directory(
    directory: Path,
    fs: Optional[FileSystem] = None,
    options: Optional[DigestOptions] = None,
) -> str:
    """Compute the SHA-256 content digest of a skill directory.

    Args:
        directory: Skill directory to hash.
        fs: Filesystem to read from.
        options: Exclusion and symlink policy.

    Returns:
        Hex-encoded SHA-256 digest.

    Raises:
        DigestError: If ``directory`` is not a directory.
        SymlinkError: If a symlink is found and the policy is fail-closed.
    """
    fs = fs or LocalFileSystem()
    if not fs.is_dir(directory):
        raise DigestError(f"Skill digest base is not a directory: {directory}")

    hasher = hashlib.sha256()
    entries = list_content_files(directory, fs=fs, options=options)
    for entry in entries:
        hasher.update(os.fsencode(entry.relative))
        hasher.update(b"\0")
        _update_from_file(hasher, fs, entry.path)
        hasher.update(b"\0")

    digest = hasher.hexdigest()
    logger.debug("Hashed %s (%d files): %s", directory, len(entries), digest[:12])
    return digest


def hash_file(path: Path, fs: Optional[FileSystem] = None) -> str:
    """Compute the SHA-256 digest of a single regular file.

    Raises:
        SymlinkError: If ``path`` is a symlink.
        DigestError: If ``path`` is not a regular file.
    """
    fs = fs or LocalFileSystem()
    kind = fs.kind(path)
    if kind is EntryKind.SYMLINK:
        raise SymlinkError(str(path))
    if kind is not EntryKind.FILE:
        raise DigestError(f"Skill digest base is not a file: {path}")

    hasher = hashlib.sha256()
    _update_from_file(hasher, fs, path)
    return hasher.hexdigest()
