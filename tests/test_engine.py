"""
Tests for the sync engine -- change detection, propagation, and conflicts.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest


def _body(directory: Path) -> str:
    return (directory / "SKILL.md").read_text()


def _sync(engine, library: Path, locations, force_source=None, skill_id="demo-id"):
    return engine.sync_skill(
        skill_id,
        "demo",
        library,
        [loc.location_id for loc in locations],
        locations,
        force_source=force_source,
    )


class TestCanonicalManifest:
    """Tests for seeding the canonical manifest."""

    def test_seeds_on_first_sync(self, engine, library: Path):
        """The first sync writes a canonical manifest with the baseline."""
        from skillsync.digest import hash_directory
        from skillsync.manifest import load_manifest

        engine.ensure_canonical_manifest("demo-id", library)
        manifest = load_manifest(library)

        assert manifest.canonical is True
        assert manifest.tool == "library"
        assert manifest.skill_id == "demo-id"
        assert manifest.last_synced_hash == hash_directory(library)

    def test_existing_manifest_untouched(self, engine, library: Path):
        """A managed manifest is not rewritten."""
        from skillsync.manifest import manifest_path

        engine.ensure_canonical_manifest("demo-id", library)
        before = manifest_path(library).read_text()
        (library / "SKILL.md").write_text("edited")
        engine.ensure_canonical_manifest("demo-id", library)

        assert manifest_path(library).read_text() == before

    def test_missing_canonical(self, engine, tmp_path: Path):
        """A missing canonical directory is an InvalidCanonicalError."""
        from skillsync.engine import InvalidCanonicalError

        with pytest.raises(InvalidCanonicalError):
            engine.ensure_canonical_manifest("demo-id", tmp_path / "gone")

    def test_archive_not_materialized(self, engine, tmp_path: Path, codex):
        """A canonical path that is a file cannot be exported."""
        from skillsync.engine import ArchiveNotMaterializedError

        archive = tmp_path / "demo.zip"
        archive.write_bytes(b"PK")

        with pytest.raises(ArchiveNotMaterializedError):
            engine.export_skill(archive, "demo", "demo-id", codex)
        with pytest.raises(ArchiveNotMaterializedError):
            _sync(engine, archive, [codex])

    def test_manifest_for_other_skill_reseeded(self, engine, library: Path, codex):
        """A canonical manifest naming another id is replaced on sync."""
        from skillsync.manifest import load_manifest

        engine.ensure_canonical_manifest("old-id", library)
        _sync(engine, library, [codex], skill_id="new-id")

        assert load_manifest(library).skill_id == "new-id"


class TestSyncSkill:
    """Tests for the sync_skill decision procedure."""

    def test_exports_created(self, engine, library: Path, codex):
        """A location with no replica gets a fresh export."""
        from skillsync.manifest import load_manifest
        from skillsync.models import ExportsCreated

        outcome = _sync(engine, library, [codex])

        assert outcome == ExportsCreated(location_ids=["codex"])
        replica = codex.root / "demo"
        assert _body(replica) == _body(library)
        manifest = load_manifest(replica)
        assert manifest.canonical is False
        assert manifest.tool == "codex"
        assert manifest.skill_id == "demo-id"

    def test_idempotent(self, engine, library: Path, codex, claude):
        """With nothing changed, repeat syncs are UpToDate."""
        from skillsync.models import UpToDate

        _sync(engine, library, [codex, claude])

        assert _sync(engine, library, [codex, claude]) == UpToDate()
        assert _sync(engine, library, [codex, claude]) == UpToDate()

    def test_no_locations_up_to_date(self, engine, library: Path):
        """A skill enabled nowhere is simply up to date."""
        from skillsync.models import UpToDate

        assert _sync(engine, library, []) == UpToDate()

    def test_export_change_propagates(self, engine, library: Path, codex, claude):
        """Editing one export makes it the source for everyone."""
        from skillsync.models import Propagated

        _sync(engine, library, [codex, claude])
        (codex.root / "demo" / "SKILL.md").write_text("v2")

        outcome = _sync(engine, library, [codex, claude])

        assert outcome == Propagated(source="codex")
        assert _body(library) == "v2"
        assert _body(claude.root / "demo") == "v2"

    def test_canonical_change_propagates(self, engine, library: Path, codex):
        """A direct edit to the library is itself a valid change."""
        from skillsync.models import Propagated

        _sync(engine, library, [codex])
        (library / "SKILL.md").write_text("from library")

        outcome = _sync(engine, library, [codex])

        assert outcome == Propagated(source="library")
        assert _body(codex.root / "demo") == "from library"

    def test_propagation_updates_baselines(self, engine, library: Path, codex):
        """After propagation every manifest records the winning hash."""
        from skillsync.digest import hash_directory
        from skillsync.manifest import load_manifest
        from skillsync.models import UpToDate

        _sync(engine, library, [codex])
        (codex.root / "demo" / "SKILL.md").write_text("v2")
        _sync(engine, library, [codex])

        winner = hash_directory(library)
        assert load_manifest(library).last_synced_hash == winner
        assert load_manifest(codex.root / "demo").last_synced_hash == winner
        assert _sync(engine, library, [codex]) == UpToDate()

    def test_propagation_removes_deleted_files(self, engine, library: Path, codex):
        """Files deleted at the source disappear from the library too."""
        _sync(engine, library, [codex])
        (codex.root / "demo" / "scripts" / "run.sh").unlink()

        _sync(engine, library, [codex])

        assert not (library / "scripts" / "run.sh").exists()
        assert (library / ".skillsync" / "manifest.json").exists()

    def test_source_keeps_its_folder_name(self, engine, library: Path, codex):
        """A renamed export stays where the user put it."""
        _sync(engine, library, [codex])
        (codex.root / "demo").rename(codex.root / "my-demo")
        (codex.root / "my-demo" / "SKILL.md").write_text("renamed and edited")

        _sync(engine, library, [codex])

        assert (codex.root / "my-demo").is_dir()
        assert not (codex.root / "demo").exists()
        assert _body(library) == "renamed and edited"

    def test_missing_location_is_not_a_change(self, engine, library: Path, codex, claude):
        """A deleted export is recreated rather than treated as a change."""
        import shutil

        from skillsync.models import ExportsCreated

        _sync(engine, library, [codex, claude])
        shutil.rmtree(claude.root / "demo")

        assert _sync(engine, library, [codex, claude]) == ExportsCreated(location_ids=["claude"])
        assert (claude.root / "demo" / "SKILL.md").exists()

    def test_missing_location_exported_during_propagation(self, engine, library: Path, codex, claude):
        """A newly enabled location receives the winner when another changed."""
        from skillsync.models import Propagated

        _sync(engine, library, [codex])
        (codex.root / "demo" / "SKILL.md").write_text("v2")

        assert _sync(engine, library, [codex, claude]) == Propagated(source="codex")
        assert _body(claude.root / "demo") == "v2"

    def test_disabled_location_not_touched(self, engine, library: Path, codex, claude):
        """Only enabled locations are read or written."""
        engine.export_skill(library, "demo", "demo-id", claude)
        (claude.root / "demo" / "SKILL.md").write_text("local edit")

        engine.sync_skill("demo-id", "demo", library, ["codex"], [codex, claude])

        assert _body(claude.root / "demo") == "local edit"


class TestConflicts:
    """Tests for conflict detection and forced resolution."""

    def test_conflict_detected(self, engine, library: Path, codex, tree_snapshot, tmp_path):
        """Two diverged replicas yield a Conflict and nothing changes."""
        from skillsync.models import Conflict

        _sync(engine, library, [codex])
        (library / "SKILL.md").write_text("v3")
        (codex.root / "demo" / "SKILL.md").write_text("v4")
        before = tree_snapshot(tmp_path)

        outcome = _sync(engine, library, [codex])

        assert isinstance(outcome, Conflict)
        conflict = outcome.conflict
        assert [s.location_id for s in conflict.states] == ["codex", "library"]
        assert all(s.changed_from_baseline for s in conflict.states)
        assert conflict.states[0].current_hash != conflict.states[1].current_hash
        assert sorted(conflict.diverged) == ["codex", "library"]
        assert tree_snapshot(tmp_path) == before

    def test_identical_edits_still_conflict(self, engine, library: Path, codex):
        """Divergence is judged against the baseline, not pairwise."""
        from skillsync.models import Conflict

        _sync(engine, library, [codex])
        (library / "SKILL.md").write_text("same")
        (codex.root / "demo" / "SKILL.md").write_text("same")

        outcome = _sync(engine, library, [codex])

        assert isinstance(outcome, Conflict)
        assert outcome.conflict.states[0].current_hash == outcome.conflict.states[1].current_hash

    def test_conflict_snapshot_details(self, engine, library: Path, codex, claude):
        """Unchanged replicas appear in the snapshot, flagged as unchanged."""
        from skillsync.digest import hash_directory
        from skillsync.models import Conflict

        _sync(engine, library, [codex, claude])
        baseline = hash_directory(library)
        (codex.root / "demo" / "SKILL.md").write_text("a")
        (claude.root / "demo" / "SKILL.md").write_text("b")

        outcome = _sync(engine, library, [codex, claude])

        assert isinstance(outcome, Conflict)
        conflict = outcome.conflict
        assert conflict.baseline_hash == baseline
        assert conflict.enabled_location_ids == ["claude", "codex"]
        assert conflict.canonical_state.changed_from_baseline is False
        assert conflict.state_for("codex").directory_path == str(codex.root / "demo")
        assert conflict.canonical_state.display_name == "Library"

    def test_force_source_resolves(self, engine, library: Path, codex, claude):
        """Forcing a source makes its content canonical and spreads it."""
        from skillsync.models import Propagated, UpToDate

        _sync(engine, library, [codex, claude])
        (library / "SKILL.md").write_text("lib")
        (codex.root / "demo" / "SKILL.md").write_text("codex")

        outcome = _sync(engine, library, [codex, claude], force_source="codex")

        assert outcome == Propagated(source="codex")
        assert _body(library) == "codex"
        assert _body(claude.root / "demo") == "codex"
        assert _sync(engine, library, [codex, claude]) == UpToDate()

    def test_force_canonical(self, engine, library: Path, codex):
        """Forcing the library overwrites the export's edits."""
        _sync(engine, library, [codex])
        (library / "SKILL.md").write_text("lib")
        (codex.root / "demo" / "SKILL.md").write_text("codex")

        _sync(engine, library, [codex], force_source="library")

        assert _body(codex.root / "demo") == "lib"

    def test_force_missing_source(self, engine, library: Path, codex):
        """A forced source without a replica raises MissingManagedExportError."""
        from skillsync.engine import MissingManagedExportError

        with pytest.raises(MissingManagedExportError) as exc_info:
            _sync(engine, library, [codex], force_source="codex")
        assert exc_info.value.location_id == "codex"


class TestWorkedExample:
    """The demo/codex walkthrough end to end."""

    def test_walkthrough(self, engine, tmp_path: Path, write_tree, codex, tree_snapshot):
        """v1 exports, v2 propagates from codex, v3/v4 conflict."""
        from skillsync.models import Conflict, ExportsCreated, Propagated

        library = write_tree(tmp_path / "library" / "demo", {"SKILL.md": "v1"})

        assert _sync(engine, library, [codex]) == ExportsCreated(location_ids=["codex"])
        replica = codex.root / "demo"
        assert _body(replica) == "v1"
        manifest = json.loads((replica / ".skillsync" / "manifest.json").read_text())
        assert manifest["canonical"] is False
        assert manifest["tool"] == "codex"

        (replica / "SKILL.md").write_text("v2")
        assert _sync(engine, library, [codex]) == Propagated(source="codex")
        assert _body(library) == "v2"

        (library / "SKILL.md").write_text("v3")
        (replica / "SKILL.md").write_text("v4")
        before = tree_snapshot(tmp_path)
        outcome = _sync(engine, library, [codex])

        assert isinstance(outcome, Conflict)
        states = outcome.conflict.states
        assert len(states) == 2
        assert all(s.changed_from_baseline for s in states)
        assert states[0].current_hash != states[1].current_hash
        assert tree_snapshot(tmp_path) == before


class TestSymlinks:
    """Symlinks in a skill abort before anything is written."""

    def test_sync_fails_closed(self, engine, library: Path, codex, tmp_path: Path):
        """A symlink in the library raises and no export is created."""
        import os

        from skillsync.digest import SymlinkError

        os.symlink(tmp_path, library / "escape")

        with pytest.raises(SymlinkError):
            _sync(engine, library, [codex])
        assert not (codex.root / "demo").exists()
