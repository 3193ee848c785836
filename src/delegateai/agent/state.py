"""Pure state transitions for the agent loop."""

from __future__ import annotations

from enum import Enum

from delegateai.agent.models import ErrorKind, Message
from delegateai.llm.client import ModelResponse

PROGRESS_ENTRY_LIMIT = 5
PROGRESS_RESULT_CHARS = 200
RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "ratelimit", "too many requests", "429")


class LoopState(str, Enum):
    RUNNING = "running"
    DONE = "done"
    TIMED_OUT = "timed_out"
    ITERATIONS_EXHAUSTED = "iterations_exhausted"
    API_ERROR = "api_error"


def budget_state(
    iteration: int,
    elapsed_seconds: float,
    *,
    max_iterations: int,
    timeout_seconds: float,
) -> LoopState:
    """State at the top of an iteration, before the model is called.

    The deadline is only consulted here, so one slow tool call can overshoot it.
    """
    if iteration >= max_iterations:
        return LoopState.ITERATIONS_EXHAUSTED
    if elapsed_seconds > timeout_seconds:
        return LoopState.TIMED_OUT
    return LoopState.RUNNING


def response_state(response: ModelResponse) -> LoopState:
    """A response without tool calls ends the run; anything else keeps it going."""
    if not response.tool_calls:
        return LoopState.DONE
    return LoopState.RUNNING


def classify_api_error(error: BaseException) -> ErrorKind:
    message = str(error).lower()
    if any(marker in message for marker in RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMIT
    if "timeout" in message or "timed out" in message:
        return ErrorKind.API_TIMEOUT
    return ErrorKind.NETWORK_ERROR


def extract_progress(messages: tuple[Message, ...] | list[Message]) -> str | None:
    """Summarize recent assistant text and successful tool results."""
    entries: list[str] = []
    for message in messages:
        if not isinstance(message.content, str):
            continue
        if message.role == "assistant":
            entries.append(message.content)
        elif message.role == "tool" and not message.content.startswith("ERROR"):
            entries.append(f"Tool result: {message.content[:PROGRESS_RESULT_CHARS]}...")

    if not entries:
        return None
    return "\n".join(entries[-PROGRESS_ENTRY_LIMIT:])
