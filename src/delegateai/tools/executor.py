"""Sandboxed execution of model-requested tools.

Every handler performs exactly one bounded operation and returns text. Failures
are turned into ``ERROR:``-prefixed strings at the dispatch boundary so the
agent loop always has something to feed back to the model.
"""

from __future__ import annotations

import glob
import logging
import os
import re
import shutil
import tempfile
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path

from delegateai.config import ToolSettings
from delegateai.tools.definitions import ToolName
from delegateai.tools.sandbox import PathEscape, is_within, resolve_path
from delegateai.tools.shell import ShellRunner

LOGGER = logging.getLogger(__name__)

ToolArguments = Mapping[str, object]
ToolHandler = Callable[[ToolArguments], str]
WebSearch = Callable[[str], str]

NOISE_DIRECTORIES = frozenset(
    {".git", ".hg", ".svn", "node_modules", "dist", "build", "__pycache__", ".venv"}
)
GREP_LINE_CHARS = 200


class ToolArgumentError(ValueError):
    """Raised when a required tool argument is missing or has the wrong type."""


class ToolExecutor:
    """Runs one tool call at a time against a fixed sandbox directory."""

    def __init__(
        self,
        working_dir: str | os.PathLike[str],
        *,
        settings: ToolSettings | None = None,
        shell: ShellRunner | None = None,
        web_search: WebSearch | None = None,
    ) -> None:
        self.base = Path(working_dir).resolve()
        self.settings = settings or ToolSettings()
        self.shell = shell or ShellRunner()
        self.web_search = web_search
        self._handlers: dict[ToolName, ToolHandler] = {
            ToolName.READ_FILE: self._read_file,
            ToolName.WRITE_FILE: self._write_file,
            ToolName.EDIT_FILE: self._edit_file,
            ToolName.RUN_BASH: self._run_bash,
            ToolName.GLOB: self._glob,
            ToolName.GREP: self._grep,
            ToolName.LIST_DIR: self._list_dir,
            ToolName.WEB_SEARCH: self._web_search,
        }

    def execute(self, name: str, arguments: ToolArguments) -> str:
        tool = ToolName.parse(name)
        if tool is None:
            LOGGER.warning("tool_unknown", extra={"tool": name})
            return f"ERROR: Unknown tool '{name}'"

        LOGGER.info("tool_execute", extra={"tool": tool.value, "argument_keys": sorted(arguments)})
        try:
            return self._handlers[tool](arguments)
        except PathEscape as exc:
            LOGGER.warning("tool_path_escape", extra={"tool": tool.value, "target": exc.target})
            return f"ERROR: {exc}"
        except ToolArgumentError as exc:
            return f"ERROR: {exc}"
        except OSError as exc:
            return f"ERROR: {exc.strerror or exc}"
        except Exception as exc:  # noqa: BLE001 - tool failures are reported to the model
            LOGGER.exception("tool_execution_failed", extra={"tool": tool.value})
            return f"ERROR: {exc}"

    def _read_file(self, arguments: ToolArguments) -> str:
        path = _require_str(arguments, "path", allow_empty=True)
        file_path = resolve_path(self.base, path)
        if not file_path.exists():
            return f"ERROR: File not found: {path}"
        if not file_path.is_file():
            return f"ERROR: Not a file: {path}"
        with file_path.open("r", encoding="utf-8", errors="replace", newline="") as handle:
            return handle.read()

    def _write_file(self, arguments: ToolArguments) -> str:
        path = _require_str(arguments, "path", allow_empty=True)
        content = _require_str(arguments, "content", allow_empty=True)
        file_path = resolve_path(self.base, path)
        if file_path == self.base or file_path.is_dir():
            return f"ERROR: Not a file: {path}"
        file_path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(file_path, content)
        return "OK"

    def _edit_file(self, arguments: ToolArguments) -> str:
        path = _require_str(arguments, "path", allow_empty=True)
        old_string = _require_str(arguments, "old_string", allow_empty=True)
        new_string = _require_str(arguments, "new_string", allow_empty=True)
        if not old_string:
            return "ERROR: old_string must not be empty"

        file_path = resolve_path(self.base, path)
        if not file_path.exists():
            return f"ERROR: File not found: {path}"
        if not file_path.is_file():
            return f"ERROR: Not a file: {path}"
        try:
            with file_path.open("r", encoding="utf-8", newline="") as handle:
                content = handle.read()
        except UnicodeDecodeError:
            return f"ERROR: File is not valid UTF-8 text: {path}"

        if old_string not in content:
            return "ERROR: old_string not found in file"
        _atomic_write(file_path, content.replace(old_string, new_string, 1))
        return "OK"

    def _run_bash(self, arguments: ToolArguments) -> str:
        command = _require_str(arguments, "command")
        bash = self.settings.bash
        requested = _to_timeout(arguments.get("timeout"), default=bash.default_timeout)
        effective_timeout = min(requested, bash.max_timeout)
        cwd = resolve_path(self.base, ".")

        result = self.shell.execute(command, cwd=str(cwd), timeout=effective_timeout)
        if result.timed_out:
            return f"ERROR: Command timed out after {_format_seconds(effective_timeout)}s"
        if not result.executed:
            return f"ERROR: {result.stderr}"

        output = f"{result.stdout}{result.stderr}"
        if result.returncode != 0:
            output = f"[Exit code: {result.returncode}]\n{output}"
        return output[: bash.max_output_chars]

    def _glob(self, arguments: ToolArguments) -> str:
        pattern = _require_str(arguments, "pattern")
        if os.path.isabs(pattern) or ".." in re.split(r"[\\/]", pattern):
            raise PathEscape(pattern)

        matches = glob.glob(pattern, root_dir=self.base, recursive=True)
        inside = sorted(
            {
                os.path.relpath(resolve_path(self.base, match), self.base)
                for match in matches
                if is_within(self.base, match)
            }
        )
        if not inside:
            return "No files found"
        return "\n".join(inside[: self.settings.glob_max_results])

    def _grep(self, arguments: ToolArguments) -> str:
        pattern = _require_str(arguments, "pattern")
        search_path = arguments.get("path")
        if not isinstance(search_path, str) or not search_path.strip():
            search_path = "."
        target = resolve_path(self.base, search_path)
        if not target.exists():
            return f"ERROR: Path not found: {search_path}"

        try:
            regex = re.compile(pattern)
        except re.error as exc:
            return f"ERROR: Invalid regex: {exc}"

        limit = self.settings.grep_max_results
        results: list[str] = []
        for file_path in _iter_files(target):
            if len(results) >= limit:
                break
            if not is_within(self.base, file_path):
                continue
            try:
                with file_path.open("r", encoding="utf-8", newline="") as handle:
                    lines = handle.read().split("\n")
            except (OSError, UnicodeDecodeError):
                continue

            relative = os.path.relpath(file_path, self.base)
            for line_number, line in enumerate(lines, start=1):
                if regex.search(line):
                    text = line.rstrip("\r")[:GREP_LINE_CHARS]
                    results.append(f"{relative}:{line_number}: {text}")
                    if len(results) >= limit:
                        break

        if not results:
            return "No matches found"
        return "\n".join(results)

    def _list_dir(self, arguments: ToolArguments) -> str:
        path = _require_str(arguments, "path", allow_empty=True)
        dir_path = resolve_path(self.base, path)
        if not dir_path.exists():
            return f"ERROR: Directory not found: {path}"
        if not dir_path.is_dir():
            return f"ERROR: Not a directory: {path}"

        with os.scandir(dir_path) as iterator:
            entries = sorted(iterator, key=lambda entry: entry.name)
        if not entries:
            return "(empty directory)"

        lines = [
            f"{'[DIR]' if entry.is_dir() else '[FILE]'} {entry.name}"
            for entry in entries[: self.settings.list_dir_max_entries]
        ]
        return "\n".join(lines)

    def _web_search(self, arguments: ToolArguments) -> str:
        query = _require_str(arguments, "query")
        if self.web_search is None:
            return "ERROR: web_search is not configured"
        return self.web_search(query)


def _require_str(arguments: ToolArguments, key: str, *, allow_empty: bool = False) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or (not allow_empty and not value.strip()):
        raise ToolArgumentError(f"Missing required argument '{key}'")
    return value


def _to_timeout(value: object, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default


def _format_seconds(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _iter_files(target: Path) -> Iterator[Path]:
    if target.is_file():
        yield target
        return
    for dirpath, dirnames, filenames in os.walk(target):
        dirnames[:] = sorted(name for name in dirnames if name not in NOISE_DIRECTORIES)
        for filename in sorted(filenames):
            yield Path(dirpath) / filename


def _atomic_write(file_path: Path, content: str) -> None:
    """Write via a sibling temp file and rename it over the target."""
    handle = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        newline="",
        dir=file_path.parent,
        prefix=f".{file_path.name}.",
        suffix=".tmp",
        delete=False,
    )
    temp_path = Path(handle.name)
    try:
        with handle:
            handle.write(content)
        if file_path.exists():
            shutil.copymode(file_path, temp_path)
        os.replace(temp_path, file_path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
