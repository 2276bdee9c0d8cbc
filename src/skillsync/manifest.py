"""
Sync manifest -- the sidecar that proves a directory belongs to a skill.

Each replica (canonical or exported) carries ``.skillsync/manifest.json``.
It records which skill the directory holds, who owns it, and the content
hash at the last successful sync. Because it lives inside the replica it
survives any rename of the containing directory.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .fs import EntryKind, FileSystem, LocalFileSystem

logger = logging.getLogger("skillsync.manifest")

MANIFEST_DIRNAME = ".skillsync"
MANIFEST_FILENAME = "manifest.json"
MANAGED_BY = "skillsync"
CANONICAL_TOOL = "library"
CURRENT_VERSION = 1

_FRACTIONAL_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"
_PLAIN_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


class ManifestError(ValueError):
    """Raised when a manifest exists but cannot be read or validated."""


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as UTC ISO-8601 with millisecond precision.

    Args:
        value: Timestamp to render. Naive values are taken as local time.

    Returns:
        str: e.g. ``2026-10-18T09:30:00.125Z``.
    """
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, with or without fractional seconds.

    Args:
        value: Timestamp text; a trailing ``Z`` means UTC.

    Returns:
        datetime: Timezone-aware timestamp.

    Raises:
        ValueError: If neither accepted encoding matches.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    for fmt in (_FRACTIONAL_FORMAT, _PLAIN_FORMAT):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValueError(f"Invalid ISO-8601 timestamp: {value!r}")


class SyncManifest(BaseModel):
    """Ownership and sync history for one replica directory."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = CURRENT_VERSION
    skill_id: str = Field(alias="skillId")
    managed_by: str = Field(alias="managedBy")
    canonical: bool
    tool: str
    last_sync_at: Optional[datetime] = Field(default=None, alias="lastSyncAt")
    last_synced_hash: Optional[str] = Field(default=None, alias="lastSyncedHash")

    @field_validator("last_sync_at", mode="before")
    @classmethod
    def _parse_last_sync_at(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_timestamp(value)
        return value

    @field_serializer("last_sync_at")
    def _serialize_last_sync_at(self, value: Optional[datetime]) -> Optional[str]:
        return format_timestamp(value) if value is not None else None

    @property
    def is_managed(self) -> bool:
        """True when the ownership marker is ours."""
        return self.managed_by == MANAGED_BY

    def owns(self, skill_id: str) -> bool:
        """True when this manifest proves ownership of ``skill_id``."""
        return self.is_managed and self.skill_id == skill_id

    def to_json(self) -> str:
        """Serialize with sorted keys; absent optionals are omitted."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        return json.dumps(data, indent=2, sort_keys=True) + "\n"


def manifest_path(replica: Path) -> Path:
    """Location of the manifest file inside a replica directory."""
    return Path(replica) / MANIFEST_DIRNAME / MANIFEST_FILENAME


def load_manifest(
    replica: Path, fs: Optional[FileSystem] = None
) -> Optional[SyncManifest]:
    """Read a replica's manifest.

    Args:
        replica: The replica directory.
        fs: Filesystem to read from.

    Returns:
        The manifest, or None when the directory has none.

    Raises:
        ManifestError: If a manifest file exists but is not valid.
    """
    fs = fs or LocalFileSystem()
    path = manifest_path(replica)
    if fs.kind(path) is not EntryKind.FILE:
        return None
    try:
        data = json.loads(fs.read_bytes(path))
        return SyncManifest.model_validate(data)
    except ValueError as exc:
        raise ManifestError(f"Invalid sync manifest at {path}: {exc}") from exc


def save_manifest(
    manifest: SyncManifest, replica: Path, fs: Optional[FileSystem] = None
) -> Path:
    """Atomically write a manifest into a replica directory.

    Args:
        manifest: Manifest to persist.
        replica: The replica directory.
        fs: Filesystem to write to.

    Returns:
        Path to the written manifest file.
    """
    fs = fs or LocalFileSystem()
    path = manifest_path(replica)
    fs.make_dirs(path.parent)
    fs.write_bytes_atomic(path, manifest.to_json().encode("utf-8"))
    logger.debug(
        "Saved manifest for %s (%s) at %s", manifest.skill_id, manifest.tool, path
    )
    return path
