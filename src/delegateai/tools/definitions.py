"""Tool identifiers and the function-calling schema sent to the model."""

from __future__ import annotations

from enum import Enum


class ToolName(str, Enum):
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    EDIT_FILE = "edit_file"
    RUN_BASH = "run_bash"
    GLOB = "glob"
    GREP = "grep"
    LIST_DIR = "list_dir"
    WEB_SEARCH = "web_search"

    @classmethod
    def parse(cls, name: str) -> ToolName | None:
        try:
            return cls(name)
        except ValueError:
            return None


_PATH_PROPERTY = {"type": "string", "description": "File path relative to working directory"}


def _function(
    name: ToolName,
    description: str,
    properties: dict[str, object],
    required: list[str],
) -> dict[str, object]:
    return {
        "type": "function",
        "function": {
            "name": name.value,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


TOOL_DEFINITIONS: list[dict[str, object]] = [
    _function(
        ToolName.READ_FILE,
        "Read the contents of a file",
        {"path": _PATH_PROPERTY},
        ["path"],
    ),
    _function(
        ToolName.WRITE_FILE,
        "Write content to a file (creates parent directories if needed)",
        {
            "path": _PATH_PROPERTY,
            "content": {"type": "string", "description": "Content to write"},
        },
        ["path", "content"],
    ),
    _function(
        ToolName.EDIT_FILE,
        "Replace text in a file. Use exact string matching.",
        {
            "path": _PATH_PROPERTY,
            "old_string": {"type": "string", "description": "Exact text to find and replace"},
            "new_string": {"type": "string", "description": "Text to replace with"},
        },
        ["path", "old_string", "new_string"],
    ),
    _function(
        ToolName.RUN_BASH,
        "Execute a shell command",
        {
            "command": {"type": "string", "description": "Shell command to execute"},
            "timeout": {"type": "integer", "description": "Timeout in seconds (default: 120)"},
        },
        ["command"],
    ),
    _function(
        ToolName.GLOB,
        "Find files matching a glob pattern",
        {
            "pattern": {
                "type": "string",
                "description": "Glob pattern (e.g., '**/*.py', 'src/*.js')",
            }
        },
        ["pattern"],
    ),
    _function(
        ToolName.GREP,
        "Search for a pattern in files",
        {
            "pattern": {"type": "string", "description": "Regex pattern to search for"},
            "path": {"type": "string", "description": "Path to search in (default: '.')"},
        },
        ["pattern"],
    ),
    _function(
        ToolName.LIST_DIR,
        "List contents of a directory",
        {"path": {"type": "string", "description": "Directory path relative to working directory"}},
        ["path"],
    ),
    _function(
        ToolName.WEB_SEARCH,
        (
            "Search the web and get synthesized results. "
            "WARNING: High latency (10-30 seconds). "
            "Use only when you need current/real-time information that cannot be found"
            " in local files."
        ),
        {"query": {"type": "string", "description": "Search query"}},
        ["query"],
    ),
]
