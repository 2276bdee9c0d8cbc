"""
Tests for the skillsync CLI.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _invoke(runner: CliRunner, home: Path, *args: str):
    from skillsync.cli import main

    return runner.invoke(main, [*args, "--home", str(home)])


@pytest.fixture
def configured(runner: CliRunner, home: Path, tmp_path: Path, library: Path):
    """A home with one custom location and the demo skill registered."""
    root = tmp_path / "tools" / "codex" / "skills"
    result = _invoke(runner, home, "location", "add", "codex", str(root), "--name", "Codex")
    assert result.exit_code == 0, result.output
    result = _invoke(runner, home, "skill", "add", str(library))
    assert result.exit_code == 0, result.output
    return root


class TestLocationCommands:
    """Tests for skillsync location."""

    def test_templates(self, runner: CliRunner):
        """All built-in templates are listed."""
        from skillsync.cli import main

        result = runner.invoke(main, ["location", "templates"])

        assert result.exit_code == 0
        assert "goose" in result.output
        assert "opencode-config" in result.output

    def test_add_template_and_list(self, runner: CliRunner, home: Path):
        """A template location is saved to config."""
        from skillsync.config import load_config

        result = _invoke(runner, home, "location", "add-template", "claude")

        assert result.exit_code == 0, result.output
        assert load_config(home).location("claude").display_name == "Claude Code"
        listed = _invoke(runner, home, "location", "list")
        assert "claude" in listed.output

    def test_unknown_template_fails(self, runner: CliRunner, home: Path):
        """An unknown template key exits 1."""
        result = _invoke(runner, home, "location", "add-template", "nope")

        assert result.exit_code == 1
        assert "Unknown location template" in result.output

    def test_reserved_id_fails(self, runner: CliRunner, home: Path, tmp_path: Path):
        """The library id cannot be used for a location."""
        result = _invoke(runner, home, "location", "add", "library", str(tmp_path))

        assert result.exit_code == 1

    def test_remove(self, runner: CliRunner, home: Path, configured: Path):
        """Removing a location deletes its managed exports."""
        _invoke(runner, home, "skill", "enable", "demo", "codex")
        assert (configured / "demo").exists()

        result = _invoke(runner, home, "location", "remove", "codex")

        assert result.exit_code == 0, result.output
        assert not (configured / "demo").exists()


class TestSkillCommands:
    """Tests for skillsync skill."""

    def test_list(self, runner: CliRunner, home: Path, configured: Path):
        """Registered skills are listed."""
        result = _invoke(runner, home, "skill", "list")

        assert result.exit_code == 0
        assert "demo" in result.output

    def test_enable_disable(self, runner: CliRunner, home: Path, configured: Path):
        """Enable exports; disable parks the export."""
        result = _invoke(runner, home, "skill", "enable", "demo", "codex")
        assert result.exit_code == 0, result.output
        assert (configured / "demo" / "SKILL.md").exists()

        result = _invoke(runner, home, "skill", "disable", "demo", "codex")
        assert result.exit_code == 0, result.output
        assert not (configured / "demo").exists()
        assert (configured.parent / "skills.disabled" / "demo" / "SKILL.md").exists()

    def test_enable_unmanaged_destination_fails(
        self, runner: CliRunner, home: Path, configured: Path, write_tree
    ):
        """A user folder in the way is reported and left alone."""
        write_tree(configured / "demo", {"SKILL.md": "mine"})

        result = _invoke(runner, home, "skill", "enable", "demo", "codex")

        assert result.exit_code == 1
        assert "not managed" in result.output
        assert (configured / "demo" / "SKILL.md").read_text() == "mine"

    def test_remove(self, runner: CliRunner, home: Path, configured: Path, library: Path):
        """Removing a skill deletes exports and keeps the library copy."""
        _invoke(runner, home, "skill", "enable", "demo", "codex")

        result = _invoke(runner, home, "skill", "remove", "demo")

        assert result.exit_code == 0, result.output
        assert not (configured / "demo").exists()
        assert library.exists()

    def test_unknown_skill(self, runner: CliRunner, home: Path, configured: Path):
        """Unknown skill names exit 1."""
        result = _invoke(runner, home, "skill", "enable", "nope", "codex")

        assert result.exit_code == 1
        assert "Unknown skill" in result.output


class TestSyncCommands:
    """Tests for skillsync sync."""

    def test_run_exports(self, runner: CliRunner, home: Path, configured: Path):
        """sync run reports outcomes and exits 0."""
        _invoke(runner, home, "skill", "enable", "demo", "codex")
        (configured / "demo" / "SKILL.md").write_text("edited in codex")

        result = _invoke(runner, home, "sync", "run")

        assert result.exit_code == 0, result.output
        assert "propagated" in result.output

    def test_conflict_then_resolve(
        self, runner: CliRunner, home: Path, configured: Path, library: Path
    ):
        """A conflict is shown, persisted, and cleared by resolve."""
        _invoke(runner, home, "skill", "enable", "demo", "codex")
        (library / "SKILL.md").write_text("lib")
        (configured / "demo" / "SKILL.md").write_text("codex")

        result = _invoke(runner, home, "sync", "run")
        assert result.exit_code == 0, result.output
        assert "conflict" in result.output

        status = _invoke(runner, home, "sync", "status")
        assert "Conflicts: 1" in status.output

        result = _invoke(runner, home, "sync", "resolve", "demo", "--keep", "codex")
        assert result.exit_code == 0, result.output
        assert (library / "SKILL.md").read_text() == "codex"

        status = _invoke(runner, home, "sync", "status")
        assert "Conflicts: 0" in status.output

    def test_run_with_error_exits_1(
        self, runner: CliRunner, home: Path, configured: Path, library: Path
    ):
        """A skill that fails to sync makes the run exit 1."""
        import shutil

        shutil.rmtree(library)

        result = _invoke(runner, home, "sync", "run")

        assert result.exit_code == 1
        assert "error" in result.output


class TestScanCommands:
    """Tests for scan, ignore, and unignore."""

    def test_scan_ignore_unignore(
        self, runner: CliRunner, home: Path, configured: Path, write_tree
    ):
        """Ignored skills drop out of scans until unignored."""
        mine = write_tree(configured / "mine", {"SKILL.md": "x"})

        result = _invoke(runner, home, "scan")
        assert result.exit_code == 0, result.output
        assert "Unmanaged skills" in result.output

        result = _invoke(runner, home, "ignore", "codex", str(mine))
        assert result.exit_code == 0, result.output
        assert "No unmanaged skills" in _invoke(runner, home, "scan").output

        result = _invoke(runner, home, "unignore", "codex", str(mine))
        assert result.exit_code == 0, result.output
        assert "No unmanaged skills" not in _invoke(runner, home, "scan", "--location", "codex").output

    def test_scan_unknown_location(self, runner: CliRunner, home: Path):
        """Scanning an unknown location exits 1."""
        result = _invoke(runner, home, "scan", "--location", "nope")

        assert result.exit_code == 1


class TestLogging:
    """Tests for terminal and log-file handlers."""

    def test_log_file_info_stays_off_terminal(self, tmp_path: Path):
        """A configured log file gets INFO; the terminal still shows warnings only."""
        import io
        import logging

        from skillsync.cli._common import _attach_log_file, terminal_handler

        log = tmp_path / "logs" / "skillsync.log"
        stream = io.StringIO()
        terminal = terminal_handler(verbose=False)
        terminal.setStream(stream)
        root = logging.getLogger()
        package = logging.getLogger("skillsync")
        level = package.level
        root.addHandler(terminal)
        try:
            _attach_log_file(str(log))
            logging.getLogger("skillsync.engine").info("Exported demo")
            logging.getLogger("skillsync.engine").warning("Replica vanished")
        finally:
            root.removeHandler(terminal)
            for handler in list(package.handlers):
                package.removeHandler(handler)
                handler.close()
            package.setLevel(level)

        assert "Exported demo" in log.read_text()
        assert "Exported demo" not in stream.getvalue()
        assert "Replica vanished" in stream.getvalue()

    def test_verbose_terminal_shows_debug(self):
        """--verbose lowers the terminal handler to DEBUG."""
        import logging

        from skillsync.cli._common import terminal_handler

        assert terminal_handler(verbose=True).level == logging.DEBUG
        assert terminal_handler(verbose=False).level == logging.WARNING
