"""
Configuration -- the locations we sync to and the skills we manage.

Stored as ``<home>/config.yaml``. Editing helpers validate ids and raise
ConfigError; persistence is left to the caller.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .manifest import CANONICAL_TOOL
from .models import SyncLocation
from .templates import default_disabled_path, expand_path, template_for

logger = logging.getLogger("skillsync.config")

CONFIG_FILENAME = "config.yaml"


class ConfigError(ValueError):
    """Raised for an invalid configuration edit."""


class SkillEntry(BaseModel):
    """A skill in the library and where it is enabled."""

    skill_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    path: str
    enabled_locations: list[str] = Field(default_factory=list)

    @property
    def canonical_dir(self) -> Path:
        return expand_path(self.path)


class SkillSyncConfig(BaseModel):
    """Everything skillsync knows about, persisted as YAML."""

    locations: list[SyncLocation] = Field(default_factory=list)
    skills: list[SkillEntry] = Field(default_factory=list)
    log_file: Optional[str] = None

    def location(self, location_id: str) -> Optional[SyncLocation]:
        return next((loc for loc in self.locations if loc.location_id == location_id), None)

    def skill(self, key: str) -> Optional[SkillEntry]:
        """Find a skill by id or by name."""
        by_id = next((s for s in self.skills if s.skill_id == key), None)
        return by_id or next((s for s in self.skills if s.name == key), None)

    def add_location(self, location: SyncLocation) -> SyncLocation:
        if self.location(location.location_id) is not None:
            raise ConfigError(f"Location already exists: {location.location_id}")
        self.locations.append(location)
        return location

    def remove_location(self, location_id: str) -> SyncLocation:
        location = self.location(location_id)
        if location is None:
            raise ConfigError(f"Unknown location: {location_id}")
        self.locations = [loc for loc in self.locations if loc.location_id != location_id]
        for skill in self.skills:
            skill.enabled_locations = [
                lid for lid in skill.enabled_locations if lid != location_id
            ]
        return location

    def add_skill(self, skill: SkillEntry) -> SkillEntry:
        if self.skill(skill.skill_id) is not None:
            raise ConfigError(f"Skill id already registered: {skill.skill_id}")
        if any(s.name == skill.name for s in self.skills):
            raise ConfigError(f"Skill name already registered: {skill.name}")
        self.skills.append(skill)
        return skill

    def remove_skill(self, key: str) -> SkillEntry:
        skill = self.skill(key)
        if skill is None:
            raise ConfigError(f"Unknown skill: {key}")
        self.skills = [s for s in self.skills if s.skill_id != skill.skill_id]
        return skill

    def set_enabled(self, key: str, location_id: str, enabled: bool) -> SkillEntry:
        """Turn a skill on or off at one location.

        Raises:
            ConfigError: If the skill or location is unknown.
        """
        skill = self.skill(key)
        if skill is None:
            raise ConfigError(f"Unknown skill: {key}")
        if location_id == CANONICAL_TOOL or self.location(location_id) is None:
            raise ConfigError(f"Unknown location: {location_id}")
        current = [lid for lid in skill.enabled_locations if lid != location_id]
        if enabled:
            current.append(location_id)
        skill.enabled_locations = sorted(current)
        return skill


def load_config(home: Path) -> SkillSyncConfig:
    """Load ``<home>/config.yaml``, falling back to an empty config.

    Args:
        home: The skillsync home directory.

    Returns:
        SkillSyncConfig: Parsed config, or defaults if the file is missing
        or unreadable.
    """
    config_file = Path(home) / CONFIG_FILENAME
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            return SkillSyncConfig(**data)
        except (yaml.YAMLError, ValueError, TypeError) as exc:
            logger.warning("Failed to load config %s: %s", config_file, exc)
    return SkillSyncConfig()


def save_config(config: SkillSyncConfig, home: Path) -> Path:
    """Write the config to ``<home>/config.yaml``."""
    home = Path(home)
    home.mkdir(parents=True, exist_ok=True)
    config_file = home / CONFIG_FILENAME
    data = config.model_dump(mode="json")
    config_file.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    return config_file


def location_from_template(key: str, home: Optional[Path] = None) -> SyncLocation:
    """Build a location from a built-in template.

    Args:
        key: Template key, e.g. ``claude``.
        home: Expand ``~`` against this directory instead of keeping it.

    Raises:
        ConfigError: If no template has that key.
    """
    template = template_for(key)
    if template is None:
        raise ConfigError(f"Unknown location template: {key}")
    if home is None:
        root, disabled = template.root_path, template.disabled_root_path
    else:
        root = str(template.expanded_root(home))
        disabled = str(template.expanded_disabled_root(home))
    return SyncLocation(
        location_id=template.key,
        display_name=template.display_name,
        root_path=root,
        disabled_root_path=disabled,
    )


def custom_location(
    location_id: str,
    root: str,
    display_name: Optional[str] = None,
    disabled_root: Optional[str] = None,
) -> SyncLocation:
    """Build a user-defined location; the disabled root defaults to a sibling."""
    try:
        return SyncLocation(
            location_id=location_id,
            display_name=display_name or location_id,
            root_path=root,
            disabled_root_path=disabled_root or str(default_disabled_path(Path(root))),
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
