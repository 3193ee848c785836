"""Data models used by the agent loop."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal

from delegateai.config import AppConfig

Role = Literal["system", "user", "assistant", "tool"]


class ErrorKind(str, Enum):
    TASK_TIMEOUT = "task_timeout"
    MAX_ITERATIONS = "max_iterations"
    RATE_LIMIT = "rate_limit"
    API_TIMEOUT = "api_timeout"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Task:
    """One delegated request; fixed for the lifetime of a run."""

    prompt: str
    working_dir: str
    model: str
    max_iterations: int
    timeout_seconds: int

    @classmethod
    def create(
        cls,
        config: AppConfig,
        prompt: str,
        *,
        working_dir: str | os.PathLike[str] | None = None,
        model: str | None = None,
        max_iterations: int | None = None,
        timeout_seconds: int | None = None,
    ) -> Task:
        """Fill unset fields from configuration and validate the budgets."""
        directory = Path(working_dir or config.security.working_dir or Path.cwd())
        resolved = directory.expanduser().resolve()
        if not resolved.is_dir():
            raise ValueError(f"Working directory does not exist: {directory}")

        iterations = config.agent.max_iterations if max_iterations is None else max_iterations
        timeout = config.agent.timeout_seconds if timeout_seconds is None else timeout_seconds
        if iterations <= 0:
            raise ValueError(f"max_iterations must be positive, got {iterations}")
        if timeout <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout}")

        return cls(
            prompt=prompt,
            working_dir=str(resolved),
            model=model or config.model.default,
            max_iterations=iterations,
            timeout_seconds=timeout,
        )


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments_json: str

    def arguments(self) -> dict[str, object]:
        """Parsed arguments; malformed or non-object JSON yields an empty mapping."""
        try:
            parsed = json.loads(self.arguments_json)
        except (TypeError, ValueError):
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_json},
        }


@dataclass(frozen=True, slots=True)
class Message:
    role: Role
    content: str | None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_payload() for call in self.tool_calls]
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        return payload


class Conversation:
    """Append-only message history for one task."""

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or [])

    def append(self, message: Message) -> None:
        self._messages.append(message)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def to_payload(self) -> list[dict[str, object]]:
        return [message.to_payload() for message in self._messages]

    def __len__(self) -> int:
        return len(self._messages)


@dataclass(frozen=True, slots=True)
class AgentResult:
    """Terminal record of one run."""

    success: bool
    content: str
    iterations_used: int
    tools_called: tuple[str, ...] = field(default_factory=tuple)
    error_kind: ErrorKind | None = None
    partial_progress: str | None = None

    def format(self) -> str:
        """Render the result for the delegating caller."""
        if self.success:
            return self.content
        output = self.content
        if self.error_kind is not None:
            output = f"[Error: {self.error_kind.value}] {output}"
        if self.partial_progress:
            output += f"\n\nPartial progress:\n{self.partial_progress}"
        return output
