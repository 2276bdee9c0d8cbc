"""
Ignore rules for unmanaged skills.

A rule hides one unmanaged skill (keyed by location id and path) from
future scans. When the rule remembers a content hash, it only holds while
the skill still has that hash, so an edited skill shows up again.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger("skillsync.ignore_store")

IGNORE_FILENAME = "ignore.json"


class IgnoreRule(BaseModel):
    """One hidden unmanaged skill."""

    tool: str
    directory_path: str
    last_seen_hash: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def matches(self, tool: str, directory_path: str) -> bool:
        return self.tool == tool and self.directory_path == directory_path


class IgnoreStore:
    """JSON-file backed list of ignore rules.

    Args:
        path: File holding the rules, usually ``<home>/ignore.json``.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> list[IgnoreRule]:
        """Read all rules. A missing or unreadable file means no rules."""
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return [IgnoreRule.model_validate(item) for item in data]
        except (json.JSONDecodeError, ValidationError, TypeError) as exc:
            logger.warning("Failed to load ignore rules from %s: %s", self.path, exc)
            return []

    def save(self, rules: list[IgnoreRule]) -> None:
        """Persist the full rule list."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = [rule.model_dump(mode="json") for rule in rules]
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def is_ignored(
        self, tool: str, directory_path: str, current_hash: Optional[str]
    ) -> bool:
        """Check whether a candidate is hidden by a rule.

        Args:
            tool: Location id the candidate was found in.
            directory_path: Normalized path of the candidate.
            current_hash: Candidate's hash now, or None if unknown.

        Returns:
            True if a rule matches and either pins no hash or pins this one.
        """
        match = next(
            (r for r in self.load() if r.matches(tool, directory_path)), None
        )
        if match is None:
            return False
        if match.last_seen_hash is None:
            return True
        return match.last_seen_hash == current_hash

    def add_ignore(
        self, tool: str, directory_path: str, current_hash: Optional[str]
    ) -> IgnoreRule:
        """Add or replace the rule for a candidate."""
        rules = [r for r in self.load() if not r.matches(tool, directory_path)]
        rule = IgnoreRule(
            tool=tool, directory_path=directory_path, last_seen_hash=current_hash
        )
        rules.append(rule)
        self.save(rules)
        logger.info("Ignoring %s in %s", directory_path, tool)
        return rule

    def remove_ignore(self, tool: str, directory_path: str) -> bool:
        """Drop the rule for a candidate.

        Returns:
            True if a rule was removed.
        """
        rules = self.load()
        kept = [r for r in rules if not r.matches(tool, directory_path)]
        if len(kept) == len(rules):
            return False
        self.save(kept)
        logger.info("No longer ignoring %s in %s", directory_path, tool)
        return True
