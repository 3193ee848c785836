from __future__ import annotations

from pathlib import Path

import pytest

from delegateai.agent.models import AgentResult, Conversation, ErrorKind, Message, Task, ToolCall
from delegateai.config import AgentSettings, AppConfig, SecuritySettings


def test_task_create_fills_defaults_from_config(tmp_path: Path) -> None:
    config = AppConfig(agent=AgentSettings(max_iterations=7, timeout_seconds=30))

    task = Task.create(config, "do it", working_dir=tmp_path)

    assert task.working_dir == str(tmp_path.resolve())
    assert task.model == "deepseek-chat"
    assert task.max_iterations == 7
    assert task.timeout_seconds == 30


def test_task_create_prefers_explicit_values(tmp_path: Path) -> None:
    config = AppConfig(security=SecuritySettings(working_dir="/definitely/not/used"))

    task = Task.create(
        config,
        "do it",
        working_dir=tmp_path,
        model="deepseek-reasoner",
        max_iterations=2,
        timeout_seconds=5,
    )

    assert task.working_dir == str(tmp_path.resolve())
    assert (task.model, task.max_iterations, task.timeout_seconds) == ("deepseek-reasoner", 2, 5)


def test_task_create_uses_configured_working_dir(tmp_path: Path) -> None:
    config = AppConfig(security=SecuritySettings(working_dir=str(tmp_path)))

    assert Task.create(config, "x").working_dir == str(tmp_path.resolve())


def test_task_create_rejects_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="does not exist"):
        Task.create(AppConfig(), "x", working_dir=tmp_path / "missing")


@pytest.mark.parametrize("field", ["max_iterations", "timeout_seconds"])
def test_task_create_rejects_non_positive_budgets(tmp_path: Path, field: str) -> None:
    with pytest.raises(ValueError, match=field):
        Task.create(AppConfig(), "x", working_dir=tmp_path, **{field: 0})


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"', ""])
def test_tool_call_malformed_arguments_become_empty(raw: str) -> None:
    assert ToolCall(id="c", name="read_file", arguments_json=raw).arguments() == {}


def test_tool_call_payload_round_trips_raw_arguments() -> None:
    call = ToolCall(id="c1", name="grep", arguments_json='{"pattern": "x"}')

    assert call.arguments() == {"pattern": "x"}
    assert call.to_payload() == {
        "id": "c1",
        "type": "function",
        "function": {"name": "grep", "arguments": '{"pattern": "x"}'},
    }


def test_conversation_payload_carries_tool_linkage() -> None:
    call = ToolCall(id="c1", name="list_dir", arguments_json='{"path": "."}')
    conversation = Conversation([Message(role="user", content="hi")])
    conversation.append(Message(role="assistant", content=None, tool_calls=(call,)))
    conversation.append(Message(role="tool", content="[FILE] a", tool_call_id="c1"))

    payload = conversation.to_payload()

    assert len(conversation) == 3
    assert payload[1]["content"] is None
    assert payload[1]["tool_calls"][0]["id"] == "c1"
    assert payload[2] == {"role": "tool", "content": "[FILE] a", "tool_call_id": "c1"}
    assert "tool_calls" not in payload[0]


def test_result_format_success_is_plain_content() -> None:
    result = AgentResult(success=True, content="All done", iterations_used=2)

    assert result.format() == "All done"


def test_result_format_failure_includes_kind_and_progress() -> None:
    result = AgentResult(
        success=False,
        content="Max iterations reached",
        iterations_used=3,
        error_kind=ErrorKind.MAX_ITERATIONS,
        partial_progress="Tool result: OK...",
    )

    assert result.format() == (
        "[Error: max_iterations] Max iterations reached\n\nPartial progress:\nTool result: OK..."
    )
