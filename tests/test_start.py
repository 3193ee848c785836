"""Tests for running the app directly via start.py."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

SCRIPT = Path(__file__).resolve().parents[1] / "start.py"


def _run(*args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, str(SCRIPT), *args],
        capture_output=True,
        text=True,
        check=False,
    )


def test_start_script_help_lists_subcommands() -> None:
    result = _run("--help")

    assert result.returncode == 0
    assert "Delegate multi-step tasks" in result.stdout
    for command in ("agent", "chat", "search"):
        assert command in result.stdout


def test_start_script_agent_help() -> None:
    result = _run("agent", "--help")

    assert result.returncode == 0
    assert "--max-iterations" in result.stdout
    assert "--cwd" in result.stdout
