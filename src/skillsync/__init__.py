"""
SkillSync -- one canonical skill library, mirrored into every tool.

Keeps each skill's canonical directory and its exported copies in native
tool skill folders (Codex, Claude, Goose, ...) in step, and refuses to
guess when more than one copy changed.
"""

import os

__version__ = "0.1.0"
__author__ = "smilinTux"

SKILLSYNC_HOME = os.environ.get("SKILLSYNC_HOME", "~/.skillsync")
