"""Sandboxed tools available to the delegated model."""

from .definitions import TOOL_DEFINITIONS, ToolName
from .executor import ToolExecutor
from .sandbox import PathEscape, resolve_path
from .shell import CommandResult, ShellRunner

__all__ = [
    "CommandResult",
    "PathEscape",
    "ShellRunner",
    "TOOL_DEFINITIONS",
    "ToolExecutor",
    "ToolName",
    "resolve_path",
]
