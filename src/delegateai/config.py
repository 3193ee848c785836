"""Environment-backed application configuration."""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

DEFAULT_API_URL = "https://api.deepseek.com"
DEFAULT_MODEL = "deepseek-chat"
DEFAULT_ALLOWED_MODELS = ("deepseek-chat", "deepseek-reasoner")
USER_CONFIG_PATH = Path("~/.config/delegateai/config.yaml")
SHARED_CONFIG_NAME = "delegateai.config.yaml"
LOCAL_CONFIG_NAME = "delegateai.config.local.yaml"


@dataclass(slots=True)
class ModelSettings:
    default: str = DEFAULT_MODEL
    allowed: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_MODELS))


@dataclass(slots=True)
class AgentSettings:
    max_iterations: int = 50
    timeout_seconds: int = 300
    output_truncate_chars: int = 50000
    max_tokens: int = 8192


@dataclass(slots=True)
class BashSettings:
    default_timeout: int = 120
    max_timeout: int = 600
    max_output_chars: int = 50000


@dataclass(slots=True)
class ToolSettings:
    bash: BashSettings = field(default_factory=BashSettings)
    glob_max_results: int = 100
    grep_max_results: int = 100
    list_dir_max_entries: int = 100


@dataclass(slots=True)
class SecuritySettings:
    working_dir: str | None = None


@dataclass(slots=True)
class LoggingSettings:
    level: str = "INFO"
    file: str | None = None
    include_tool_outputs: bool = True
    log_dir: str | None = None


@dataclass(slots=True)
class WebSearchSettings:
    max_results: int = 10
    max_response_tokens: int = 8192


@dataclass(slots=True)
class AppConfig:
    """Fully resolved runtime settings, built once before any task runs."""

    api_key: str | None = None
    api_url: str = DEFAULT_API_URL
    api_timeout: float = 120.0
    brave_api_key: str | None = None
    model: ModelSettings = field(default_factory=ModelSettings)
    agent: AgentSettings = field(default_factory=AgentSettings)
    tools: ToolSettings = field(default_factory=ToolSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    web_search: WebSearchSettings = field(default_factory=WebSearchSettings)

    @classmethod
    def from_env(cls) -> AppConfig:
        file_config = _load_preferred_file_config()
        api_section = _section(file_config, "api")
        model_section = _section(file_config, "model")
        agent_section = _section(file_config, "agent")
        tools_section = _section(file_config, "tools")
        bash_section = _section(tools_section, "bash")
        security_section = _section(file_config, "security")
        logging_section = _section(file_config, "logging")
        web_search_section = _section(file_config, "web_search")

        defaults = cls()
        allowed_models = _to_string_list(model_section.get("allowed")) or list(
            DEFAULT_ALLOWED_MODELS
        )

        return cls(
            api_key=(
                os.getenv("DELEGATEAI_API_KEY")
                or os.getenv("DEEPSEEK_API_KEY")
                or _to_optional_string(api_section.get("key"))
            ),
            api_url=(
                os.getenv("DEEPSEEK_BASE_URL")
                or _to_optional_string(api_section.get("url"))
                or DEFAULT_API_URL
            ),
            api_timeout=float(
                _to_positive_int(api_section.get("timeout_seconds"), default=120)
            ),
            brave_api_key=os.getenv("BRAVE_API_KEY")
            or _to_optional_string(_section(file_config, "brave").get("api_key")),
            model=ModelSettings(
                default=(
                    os.getenv("DELEGATEAI_MODEL")
                    or _to_optional_string(model_section.get("default"))
                    or DEFAULT_MODEL
                ),
                allowed=allowed_models,
            ),
            agent=AgentSettings(
                max_iterations=_to_positive_int(
                    os.getenv("DELEGATEAI_MAX_ITERATIONS") or agent_section.get("max_iterations"),
                    default=defaults.agent.max_iterations,
                ),
                timeout_seconds=_to_positive_int(
                    os.getenv("DELEGATEAI_TIMEOUT_SECONDS")
                    or agent_section.get("timeout_seconds"),
                    default=defaults.agent.timeout_seconds,
                ),
                output_truncate_chars=_to_positive_int(
                    agent_section.get("output_truncate_chars"),
                    default=defaults.agent.output_truncate_chars,
                ),
                max_tokens=_to_positive_int(
                    agent_section.get("max_tokens"),
                    default=defaults.agent.max_tokens,
                ),
            ),
            tools=ToolSettings(
                bash=BashSettings(
                    default_timeout=_to_positive_int(
                        bash_section.get("default_timeout"),
                        default=defaults.tools.bash.default_timeout,
                    ),
                    max_timeout=_to_positive_int(
                        bash_section.get("max_timeout"),
                        default=defaults.tools.bash.max_timeout,
                    ),
                    max_output_chars=_to_positive_int(
                        bash_section.get("max_output_chars"),
                        default=defaults.tools.bash.max_output_chars,
                    ),
                ),
                glob_max_results=_to_positive_int(
                    _section(tools_section, "glob").get("max_results"),
                    default=defaults.tools.glob_max_results,
                ),
                grep_max_results=_to_positive_int(
                    _section(tools_section, "grep").get("max_results"),
                    default=defaults.tools.grep_max_results,
                ),
                list_dir_max_entries=_to_positive_int(
                    _section(tools_section, "list_dir").get("max_entries"),
                    default=defaults.tools.list_dir_max_entries,
                ),
            ),
            security=SecuritySettings(
                working_dir=_to_optional_string(security_section.get("working_dir")),
            ),
            logging=LoggingSettings(
                level=(
                    os.getenv("DELEGATEAI_LOG_LEVEL")
                    or _to_optional_string(logging_section.get("level"))
                    or defaults.logging.level
                ).upper(),
                file=_to_optional_string(logging_section.get("file")),
                include_tool_outputs=_to_bool(
                    _bool_text(logging_section.get("include_tool_outputs")),
                    default=defaults.logging.include_tool_outputs,
                ),
                log_dir=(
                    os.getenv("DELEGATEAI_LOG_DIR")
                    or _to_optional_string(logging_section.get("log_dir"))
                ),
            ),
            web_search=WebSearchSettings(
                max_results=_to_positive_int(
                    web_search_section.get("max_results"),
                    default=defaults.web_search.max_results,
                ),
                max_response_tokens=_to_positive_int(
                    web_search_section.get("max_response_tokens"),
                    default=defaults.web_search.max_response_tokens,
                ),
            ),
        )


def load_env_files(candidates: Sequence[Path] | None = None) -> Path | None:
    """Load the first ``.env`` file found; real environment variables win."""
    search_paths = (
        list(candidates) if candidates is not None else [Path.cwd() / ".env", Path.home() / ".env"]
    )
    for path in search_paths:
        if path.is_file():
            load_dotenv(path, override=False)
            return path
    return None


def _to_bool(value: str | None, default: bool = False) -> bool:
    """Convert common env var truthy/falsy values into booleans."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _bool_text(value: object) -> str | None:
    # YAML already parses true/false; keep _to_bool as the single coercion path.
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    return None


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _to_string_list(value: object) -> list[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _section(config: dict[str, object], key: str) -> dict[str, object]:
    value = config.get(key)
    return value if isinstance(value, dict) else {}


def _load_file_config(path_value: str | Path) -> dict[str, object]:
    path = Path(path_value).expanduser()
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        return {}
    if isinstance(parsed, dict):
        return {str(key): value for key, value in parsed.items()}
    return {}


def _load_preferred_file_config() -> dict[str, object]:
    explicit_path = os.getenv("DELEGATEAI_CONFIG_FILE")
    if explicit_path:
        return _load_file_config(explicit_path)

    merged: dict[str, object] = {}
    for path in (USER_CONFIG_PATH, Path(SHARED_CONFIG_NAME), Path(LOCAL_CONFIG_NAME)):
        merged = _merge_dicts(merged, _load_file_config(path))
    return merged


def _merge_dicts(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    merged: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_dicts(base_value, value)
        else:
            merged[key] = value
    return merged


def _to_positive_int(value: object, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default
