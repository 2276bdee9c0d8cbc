"""
Filesystem access for the sync engine.

Every read, copy, move, and delete the engine performs goes through a
FileSystem, so tests can swap in a recording or scratch implementation.
The walker is a plain generator over a FileSystem: calling it again starts
a fresh traversal.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional

logger = logging.getLogger("skillsync.fs")


class EntryKind(str, Enum):
    """What a directory entry is, without following a final symlink."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"


@dataclass(frozen=True)
class WalkEntry:
    """One entry produced by :func:`walk`.

    Attributes:
        path: Absolute (or root-joined) path of the entry.
        relative: Path relative to the walk root, always '/'-separated.
        kind: Classification of the entry.
    """

    path: Path
    relative: str
    kind: EntryKind

    @property
    def name(self) -> str:
        return self.path.name


class FileSystem(ABC):
    """Abstract filesystem used by the digest, manifest, and engine layers."""

    @abstractmethod
    def kind(self, path: Path) -> Optional[EntryKind]:
        """Classify a path without following a final symlink.

        Returns:
            The entry kind, or None when nothing exists at the path.
        """

    @abstractmethod
    def is_dir(self, path: Path) -> bool:
        """True if the path resolves to a directory (symlinks followed)."""

    @abstractmethod
    def list_dir(self, path: Path) -> list[str]:
        """Names directly inside a directory, sorted."""

    @abstractmethod
    def open_read(self, path: Path) -> BinaryIO:
        """Open a file for binary reading."""

    @abstractmethod
    def read_bytes(self, path: Path) -> bytes:
        """Read a whole file."""

    @abstractmethod
    def write_bytes_atomic(self, path: Path, data: bytes) -> None:
        """Write a file so readers see either the old or the new content."""

    @abstractmethod
    def make_dirs(self, path: Path) -> None:
        """Create a directory and any missing parents."""

    @abstractmethod
    def copy_file(self, source: Path, destination: Path) -> None:
        """Copy one regular file."""

    @abstractmethod
    def move(self, source: Path, destination: Path) -> None:
        """Move a file or directory tree."""

    @abstractmethod
    def remove(self, path: Path) -> None:
        """Delete a file, symlink, or whole directory tree."""

    def exists(self, path: Path) -> bool:
        """True if anything (including a dangling symlink) is at the path."""
        return self.kind(path) is not None


class LocalFileSystem(FileSystem):
    """The real local disk."""

    def kind(self, path: Path) -> Optional[EntryKind]:
        try:
            mode = os.lstat(path).st_mode
        except (FileNotFoundError, NotADirectoryError):
            return None
        if stat.S_ISLNK(mode):
            return EntryKind.SYMLINK
        if stat.S_ISDIR(mode):
            return EntryKind.DIRECTORY
        if stat.S_ISREG(mode):
            return EntryKind.FILE
        return EntryKind.OTHER

    def is_dir(self, path: Path) -> bool:
        return os.path.isdir(path)

    def list_dir(self, path: Path) -> list[str]:
        return sorted(os.listdir(path))

    def open_read(self, path: Path) -> BinaryIO:
        return open(path, "rb")

    def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def write_bytes_atomic(self, path: Path, data: bytes) -> None:
        path = Path(path)
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.lexists(tmp_name):
                os.unlink(tmp_name)
            raise

    def make_dirs(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def copy_file(self, source: Path, destination: Path) -> None:
        shutil.copy2(source, destination, follow_symlinks=False)

    def move(self, source: Path, destination: Path) -> None:
        logger.debug("Moving %s -> %s", source, destination)
        shutil.move(str(source), str(destination))

    def remove(self, path: Path) -> None:
        logger.debug("Removing %s", path)
        if self.kind(path) is EntryKind.DIRECTORY:
            shutil.rmtree(path)
        else:
            os.unlink(path)


def walk(
    fs: FileSystem,
    root: Path,
    descend: Optional[Callable[[WalkEntry], bool]] = None,
) -> Iterator[WalkEntry]:
    """Lazily walk a directory tree, depth first, names sorted per level.

    Every entry is yielded. A directory is entered only when it is a real
    directory (never a symlink) and ``descend`` (if given) returns True for
    it, which lets callers prune whole subtrees.

    Args:
        fs: Filesystem to read from.
        root: Directory to walk. The root itself is not yielded.
        descend: Predicate deciding whether to recurse into a directory.

    Returns:
        A fresh generator of WalkEntry objects.
    """
    root = Path(root)

    def _visit(directory: Path, prefix: str) -> Iterator[WalkEntry]:
        for name in fs.list_dir(directory):
            path = directory / name
            kind = fs.kind(path)
            if kind is None:
                # Vanished between listing and stat.
                continue
            entry = WalkEntry(
                path=path,
                relative=f"{prefix}/{name}" if prefix else name,
                kind=kind,
            )
            yield entry
            if kind is EntryKind.DIRECTORY and (descend is None or descend(entry)):
                yield from _visit(path, entry.relative)

    return _visit(root, "")
