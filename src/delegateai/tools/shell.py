"""Shell command runner with a hard per-command timeout."""

from __future__ import annotations

import locale
import logging
import os
import re
import shutil
import signal
import subprocess
import time
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

_SECRET_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"(--?(?:password|token|secret|api[-_]?key)\s+)([^\s]+)",
        r"((?:password|token|secret|api[-_]?key)\s*=\s*)([^\s]+)",
    )
]

# Seconds to wait for pipes to drain after the process group has been killed.
_DRAIN_TIMEOUT = 5.0


@dataclass(slots=True)
class CommandResult:
    """Result of a command execution."""

    command: str
    shell: str
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    duration_seconds: float = 0.0
    executed: bool = True


class ShellRunner:
    """Runs commands through ``bash -c`` (or ``sh -c``) in a fresh process group."""

    def __init__(self, executable: str | None = None, *, fallback_to_sh: bool = True) -> None:
        self.executable = executable or _default_executable(fallback_to_sh=fallback_to_sh)

    @property
    def name(self) -> str:
        return os.path.basename(self.executable)

    def execute(
        self,
        command: str,
        *,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        self.log_request(command, timeout=timeout)
        started = self.monotonic_now()
        try:
            process = subprocess.Popen(
                [self.executable, "-c", command],
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            result = CommandResult(
                command=command,
                shell=self.name,
                returncode=127,
                stdout="",
                stderr=f"{self.name} executable could not be started: {exc}",
                executed=False,
            )
            self.log_result(result)
            return result

        timed_out = False
        try:
            stdout, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            _kill_process_group(process)
            try:
                stdout, stderr = process.communicate(timeout=_DRAIN_TIMEOUT)
            except subprocess.TimeoutExpired:
                # A detached grandchild can keep the pipes open past the kill.
                for stream in (process.stdout, process.stderr):
                    if stream is not None:
                        stream.close()
                stdout, stderr = b"", b""

        result = CommandResult(
            command=command,
            shell=self.name,
            returncode=124 if timed_out else process.returncode,
            stdout=_normalize_output(stdout),
            stderr=_normalize_output(stderr),
            timed_out=timed_out,
            duration_seconds=self.monotonic_now() - started,
        )
        self.log_result(result)
        return result

    def log_request(self, command: str, *, timeout: float | None) -> None:
        LOGGER.info(
            "command_request",
            extra={
                "shell": self.name,
                "command": self._sanitize_command(command),
                "timeout": timeout,
            },
        )

    def log_result(self, result: CommandResult) -> None:
        LOGGER.info(
            "command_result",
            extra={
                "shell": result.shell,
                "returncode": result.returncode,
                "timed_out": result.timed_out,
                "duration_seconds": round(result.duration_seconds, 4),
                "executed": result.executed,
                "stdout_length": len(result.stdout),
                "stderr_length": len(result.stderr),
            },
        )

    @staticmethod
    def monotonic_now() -> float:
        return time.monotonic()

    @staticmethod
    def _sanitize_command(command: str) -> str:
        sanitized = command
        for pattern in _SECRET_PATTERNS:
            sanitized = pattern.sub(r"\1***", sanitized)
        return sanitized


def _kill_process_group(process: subprocess.Popen[bytes]) -> None:
    """Kill the command and everything it spawned."""
    if hasattr(os, "killpg"):
        try:
            os.killpg(os.getpgid(process.pid), signal.SIGKILL)
            return
        except (OSError, ProcessLookupError):
            pass
    try:
        process.kill()
    except OSError:
        pass


def _default_executable(*, fallback_to_sh: bool) -> str:
    if shutil.which("bash"):
        return "bash"
    if fallback_to_sh and shutil.which("sh"):
        return "sh"
    return "bash"


def _normalize_output(payload: bytes | str | None) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload

    for encoding in ("utf-8", "utf-8-sig", locale.getpreferredencoding(False)):
        try:
            return payload.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue
    return payload.decode("utf-8", errors="replace")
