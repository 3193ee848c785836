"""Command-line interface for delegateai."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from typing import cast

from .agent.loop import AgentLoop
from .agent.models import Task
from .config import AppConfig, LoggingSettings, load_env_files
from .llm.client import LLMClient, ModelRequestError
from .llm.retry import call_with_retry
from .web.search import search_and_synthesize

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
DEFAULT_CHAT_TEMPERATURE = 0.7


class CLIArgs(argparse.Namespace):
    command: str
    prompt: str
    query: str
    working_directory: str | None
    model: str | None
    max_iterations: int | None
    timeout_seconds: int | None
    system_prompt: str | None
    max_tokens: int | None
    temperature: float


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="delegateai",
        description="Delegate multi-step tasks to a sandboxed coding agent",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    agent = subparsers.add_parser(
        "agent",
        help="Run the tool-calling agent loop inside a working directory",
    )
    agent.add_argument("prompt", help="The task to execute")
    agent.add_argument(
        "--cwd",
        dest="working_directory",
        help=(
            "Sandbox directory for file and shell tools. "
            "Takes precedence over the configured security.working_dir."
        ),
    )
    agent.add_argument("--model", help="Model to use; must be in the configured allow-list")
    agent.add_argument("--max-iterations", dest="max_iterations", type=int)
    agent.add_argument("--timeout", dest="timeout_seconds", type=int, help="Overall timeout")

    chat = subparsers.add_parser("chat", help="Single chat completion without tools")
    chat.add_argument("prompt", help="The prompt to send")
    chat.add_argument("--model", help="Model to use; must be in the configured allow-list")
    chat.add_argument("--system", dest="system_prompt", help="Optional system prompt")
    chat.add_argument("--max-tokens", dest="max_tokens", type=int)
    chat.add_argument("--temperature", type=float, default=DEFAULT_CHAT_TEMPERATURE)

    search = subparsers.add_parser("search", help="Search the web and synthesize the results")
    search.add_argument("query", help="Search query")
    return parser


def configure_logging(settings: LoggingSettings) -> None:
    """Send logs to stderr (and optionally a file) so stdout carries only results."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.file:
        handlers.append(logging.FileHandler(settings.file, encoding="utf-8"))
    level = logging.getLevelName(settings.level)
    logging.basicConfig(
        level=level if isinstance(level, int) else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = cast(CLIArgs, parser.parse_args(argv))
    load_env_files()
    config = AppConfig.from_env()
    configure_logging(config.logging)

    if not config.api_key:
        print("DEEPSEEK_API_KEY environment variable is required", file=sys.stderr)
        return 2

    client = LLMClient(
        api_key=config.api_key,
        api_url=config.api_url,
        timeout=config.api_timeout,
        max_tokens=config.agent.max_tokens,
    )
    LOGGER.debug("cli_command_selected", extra={"command": args.command})
    if args.command == "agent":
        return _run_agent(args, config, client)
    if args.command == "chat":
        return _run_chat(args, config, client)
    return _run_search(args, config, client)


def _run_agent(args: CLIArgs, config: AppConfig, client: LLMClient) -> int:
    try:
        task = Task.create(
            config,
            args.prompt,
            working_dir=args.working_directory,
            model=args.model,
            max_iterations=args.max_iterations,
            timeout_seconds=args.timeout_seconds,
        )
    except ValueError as exc:
        print(f"Invalid task: {exc}", file=sys.stderr)
        return 1

    result = AgentLoop(client=client, config=config).run(task)
    print(result.format())
    return 0 if result.success else 1


def _run_chat(args: CLIArgs, config: AppConfig, client: LLMClient) -> int:
    model = args.model or config.model.default
    if model not in config.model.allowed:
        allowed = ", ".join(config.model.allowed)
        print(f"Model '{model}' not in allowed list: {allowed}", file=sys.stderr)
        return 1

    try:
        content = call_with_retry(
            lambda: client.chat(
                args.prompt,
                model=model,
                system_prompt=args.system_prompt,
                max_tokens=args.max_tokens,
                temperature=args.temperature,
            )
        )
    except ModelRequestError as exc:
        print(f"Chat request failed: {exc}", file=sys.stderr)
        return 1
    print(content)
    return 0


def _run_search(args: CLIArgs, config: AppConfig, client: LLMClient) -> int:
    print(
        search_and_synthesize(
            args.query,
            settings=config.web_search,
            client=client,
            model=config.model.default,
            brave_api_key=config.brave_api_key,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
