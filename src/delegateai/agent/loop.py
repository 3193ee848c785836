"""Agent loop alternating model calls with sandboxed tool execution."""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from delegateai.agent.models import AgentResult, Conversation, ErrorKind, Message, Task
from delegateai.agent.state import (
    LoopState,
    budget_state,
    classify_api_error,
    extract_progress,
    response_state,
)
from delegateai.config import AppConfig
from delegateai.llm.client import LLMClient, ModelRequestError, ModelResponse
from delegateai.llm.retry import DEFAULT_MAX_ATTEMPTS, call_with_retry
from delegateai.tools import TOOL_DEFINITIONS, PathEscape, ToolExecutor, resolve_path
from delegateai.web.search import search_and_synthesize

LOGGER = logging.getLogger(__name__)

ExecutorFactory = Callable[[Task], ToolExecutor]

SYSTEM_PROMPT = "\n".join(
    [
        "You are a coding agent with file, shell, and web tools. Carry out the user's"
        " task precisely.",
        "",
        "## Guidelines",
        "- Read files before editing them and understand code before changing it.",
        "- Use tools instead of guessing file contents or command output.",
        "- Do exactly what was asked; do not add unrequested features.",
        "- When finished, summarize what you did and any issues you hit.",
        "",
        "## Tools",
        "- read_file: read a file before editing it.",
        "- edit_file: exact string replacement; copy old_string from read_file output.",
        "- write_file: create new files or rewrite whole files.",
        "- run_bash: run shell commands and check their exit codes.",
        "- glob: find files by pattern.",
        "- grep: search file contents with a regular expression.",
        "- list_dir: explore the directory structure.",
        "- web_search: search the web. It is slow (10-30s); use it only for current"
        " information that is not available locally.",
        "",
        "## Constraints",
        "- Every file operation is confined to the working directory.",
        "- Do not run commands that need interactive input.",
        "- If you are blocked, explain why instead of looping.",
        "- Never invent information. If web_search fails or you cannot find data, say so.",
        "",
        "## On completion",
        "Reply with a short summary: what was accomplished, which files were created or"
        " modified, and any warnings.",
    ]
)

PROJECT_CONTEXT_FILE = Path(".planning") / "PROJECT.md"
PROJECT_CONTEXT_CHARS = 2000


class AgentLoop:
    """Runs the model/tool cycle for one task until it finishes or runs out of budget."""

    def __init__(
        self,
        *,
        client: LLMClient,
        config: AppConfig,
        executor_factory: ExecutorFactory | None = None,
        system_prompt: str = SYSTEM_PROMPT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.config = config
        self.executor_factory = executor_factory or self._default_executor
        self.system_prompt = system_prompt
        self.max_attempts = max_attempts
        self.clock = clock
        self.sleep = sleep
        self.log_dir = Path(config.logging.log_dir) if config.logging.log_dir else None

    def run(self, task: Task) -> AgentResult:
        allowed = self.config.model.allowed
        if task.model not in allowed:
            LOGGER.warning("agent_model_rejected", extra={"model": task.model, "allowed": allowed})
            return AgentResult(
                success=False,
                content=f"Model '{task.model}' not in allowed list: {', '.join(allowed)}",
                iterations_used=0,
                error_kind=ErrorKind.UNKNOWN,
            )

        task_id = uuid.uuid4().hex[:8]
        started = self.clock()
        system_prompt = build_system_prompt(task.working_dir, self.system_prompt)
        conversation = Conversation(
            [
                Message(role="system", content=system_prompt),
                Message(role="user", content=task.prompt),
            ]
        )
        executor = self.executor_factory(task)
        tools_called: list[str] = []
        LOGGER.info(
            "agent_run_started",
            extra={
                "task_id": task_id,
                "model": task.model,
                "working_dir": task.working_dir,
                "max_iterations": task.max_iterations,
                "timeout_seconds": task.timeout_seconds,
            },
        )

        iteration = 0
        while True:
            state = budget_state(
                iteration,
                self.clock() - started,
                max_iterations=task.max_iterations,
                timeout_seconds=task.timeout_seconds,
            )
            if state is LoopState.ITERATIONS_EXHAUSTED:
                return self._finish(
                    task,
                    task_id,
                    state,
                    AgentResult(
                        success=False,
                        content="Max iterations reached",
                        iterations_used=task.max_iterations,
                        tools_called=tuple(tools_called),
                        error_kind=ErrorKind.MAX_ITERATIONS,
                        partial_progress=extract_progress(conversation.messages),
                    ),
                )
            if state is LoopState.TIMED_OUT:
                return self._finish(
                    task,
                    task_id,
                    state,
                    AgentResult(
                        success=False,
                        content="Task timeout reached",
                        iterations_used=iteration,
                        tools_called=tuple(tools_called),
                        error_kind=ErrorKind.TASK_TIMEOUT,
                        partial_progress=extract_progress(conversation.messages),
                    ),
                )

            try:
                response = self._request_completion(task, conversation)
            except ModelRequestError as exc:
                return self._finish(
                    task,
                    task_id,
                    LoopState.API_ERROR,
                    AgentResult(
                        success=False,
                        content=str(exc),
                        iterations_used=iteration,
                        tools_called=tuple(tools_called),
                        error_kind=classify_api_error(exc),
                        partial_progress=extract_progress(conversation.messages),
                    ),
                )

            if response is None:
                return self._finish(
                    task,
                    task_id,
                    LoopState.API_ERROR,
                    AgentResult(
                        success=False,
                        content="No response from API",
                        iterations_used=iteration,
                        tools_called=tuple(tools_called),
                        error_kind=ErrorKind.UNKNOWN,
                    ),
                )

            if response_state(response) is LoopState.DONE:
                return self._finish(
                    task,
                    task_id,
                    LoopState.DONE,
                    AgentResult(
                        success=True,
                        content=response.content or "",
                        iterations_used=iteration + 1,
                        tools_called=tuple(tools_called),
                    ),
                )

            conversation.append(
                Message(
                    role="assistant",
                    content=response.content,
                    tool_calls=tuple(response.tool_calls),
                )
            )
            for tool_call in response.tool_calls:
                output = executor.execute(tool_call.name, tool_call.arguments())
                tools_called.append(tool_call.name)
                truncated = output[: self.config.agent.output_truncate_chars]
                self._log_tool_output(task_id, tool_call.name, truncated)
                conversation.append(
                    Message(role="tool", content=truncated, tool_call_id=tool_call.id)
                )

            self._append_log(
                task,
                task_id=task_id,
                event="tool_calls",
                iteration=iteration + 1,
                tools=[tool_call.name for tool_call in response.tool_calls],
            )
            iteration += 1

    def _request_completion(self, task: Task, conversation: Conversation) -> ModelResponse | None:
        messages = conversation.to_payload()
        return call_with_retry(
            lambda: self.client.complete(
                model=task.model,
                messages=messages,
                tools=TOOL_DEFINITIONS,
                tool_choice="auto",
                max_tokens=self.config.agent.max_tokens,
            ),
            max_attempts=self.max_attempts,
            sleep=self.sleep,
        )

    def _default_executor(self, task: Task) -> ToolExecutor:
        return ToolExecutor(
            task.working_dir,
            settings=self.config.tools,
            web_search=self._web_search,
        )

    def _web_search(self, query: str) -> str:
        return search_and_synthesize(
            query,
            settings=self.config.web_search,
            client=self.client,
            model=self.config.model.default,
            brave_api_key=self.config.brave_api_key,
        )

    def _finish(
        self,
        task: Task,
        task_id: str,
        state: LoopState,
        result: AgentResult,
    ) -> AgentResult:
        LOGGER.info(
            "agent_run_finished",
            extra={
                "task_id": task_id,
                "state": state.value,
                "success": result.success,
                "iterations_used": result.iterations_used,
                "tools_called": len(result.tools_called),
                "error_kind": result.error_kind.value if result.error_kind else None,
            },
        )
        self._append_log(
            task,
            task_id=task_id,
            event="finished",
            iteration=result.iterations_used,
            state=state.value,
            success=result.success,
            error_kind=result.error_kind.value if result.error_kind else None,
        )
        return result

    def _log_tool_output(self, task_id: str, tool_name: str, output: str) -> None:
        fields: dict[str, object] = {
            "task_id": task_id,
            "tool": tool_name,
            "output_length": len(output),
            "is_error": output.startswith("ERROR"),
        }
        if self.config.logging.include_tool_outputs:
            fields["output"] = output
        LOGGER.debug("tool_output", extra=fields)

    def _append_log(self, task: Task, *, task_id: str, event: str, **fields: object) -> None:
        if self.log_dir is None:
            return
        day_file = self.log_dir / f"run-{datetime.now(timezone.utc).date().isoformat()}.log"
        entry = {
            "log_version": 1,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "task_id": task_id,
            "event": event,
            "model": task.model,
            "working_dir": task.working_dir,
            **fields,
        }
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with day_file.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry) + "\n")
        except OSError as exc:
            LOGGER.warning(
                "run_log_write_failed",
                extra={"log_dir": str(self.log_dir), "task_id": task_id, "error": str(exc)},
            )


def build_system_prompt(working_dir: str | Path, base_prompt: str = SYSTEM_PROMPT) -> str:
    """Append project context from ``.planning/PROJECT.md`` when the project has one."""
    context = load_project_context(working_dir)
    if not context:
        return base_prompt
    return f"{base_prompt}\n\n{context}"


def load_project_context(working_dir: str | Path) -> str:
    try:
        path = resolve_path(working_dir, PROJECT_CONTEXT_FILE)
    except PathEscape:
        return ""
    if not path.is_file():
        return ""
    try:
        content = path.read_text(encoding="utf-8", errors="replace")[:PROJECT_CONTEXT_CHARS]
    except OSError:
        return ""
    return f"## Project Context\n{content}"
