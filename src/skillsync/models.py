"""
Sync data models -- locations, replica snapshots, conflicts, and outcomes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .manifest import CANONICAL_TOOL
from .templates import expand_path


class SyncLocation(BaseModel):
    """A tool's skills folder plus the folder disabled copies move to.

    Whether a given skill is enabled at a location is decided by the
    caller, not stored here.
    """

    location_id: str
    display_name: str
    root_path: Path
    disabled_root_path: Path

    @field_validator("location_id", "display_name", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("root_path", "disabled_root_path", mode="before")
    @classmethod
    def _strip_path(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("location_id")
    @classmethod
    def _not_reserved(cls, value: str) -> str:
        if not value:
            raise ValueError("location_id must not be empty")
        if value == CANONICAL_TOOL:
            raise ValueError(f"'{CANONICAL_TOOL}' is reserved for the canonical library")
        return value

    @property
    def root(self) -> Path:
        """Active root with ``~`` expanded."""
        return expand_path(str(self.root_path))

    @property
    def disabled_root(self) -> Path:
        """Disabled root with ``~`` expanded."""
        return expand_path(str(self.disabled_root_path))


class ReplicaState(BaseModel):
    """One replica's position at the moment a conflict was detected."""

    location_id: str
    display_name: str
    directory_path: str
    current_hash: str
    changed_from_baseline: bool


class SyncConflict(BaseModel):
    """Snapshot of every reachable replica when more than one diverged.

    Nothing is mutated when a conflict is produced. A human picks a
    winner and the caller re-runs the sync with that location id as the
    forced source.
    """

    skill_id: str
    name: str
    baseline_hash: str
    enabled_location_ids: list[str] = Field(default_factory=list)
    states: list[ReplicaState] = Field(default_factory=list)

    def state_for(self, location_id: str) -> Optional[ReplicaState]:
        return next((s for s in self.states if s.location_id == location_id), None)

    @property
    def canonical_state(self) -> Optional[ReplicaState]:
        return self.state_for(CANONICAL_TOOL)

    @property
    def diverged(self) -> list[str]:
        """Location ids whose content moved away from the baseline."""
        return [s.location_id for s in self.states if s.changed_from_baseline]


class UpToDate(BaseModel):
    """Every replica matches the baseline and every enabled location has one."""

    kind: Literal["up_to_date"] = "up_to_date"


class ExportsCreated(BaseModel):
    """Nothing changed; fresh exports were written to these locations."""

    kind: Literal["exports_created"] = "exports_created"
    location_ids: list[str] = Field(default_factory=list)


class Propagated(BaseModel):
    """One replica won and its content now lives everywhere."""

    kind: Literal["propagated"] = "propagated"
    source: str


class Conflict(BaseModel):
    """Two or more replicas changed; a human has to choose."""

    kind: Literal["conflict"] = "conflict"
    conflict: SyncConflict


SyncOutcome = Annotated[
    Union[UpToDate, ExportsCreated, Propagated, Conflict],
    Field(discriminator="kind"),
]
