"""Thin HTTP client for OpenAI-compatible chat completions."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from http.client import HTTPException
from urllib import request
from urllib.error import HTTPError, URLError

from delegateai.agent.models import ToolCall
from delegateai.config import DEFAULT_API_URL

LOGGER = logging.getLogger(__name__)


class ModelRequestError(RuntimeError):
    """A model call failed in transport, at the HTTP layer, or while parsing."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(slots=True)
class ModelResponse:
    """The first choice of a chat completion."""

    content: str | None
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None


class LLMClient:
    """Small HTTP client for chat-completion calls with optional tool schemas."""

    def __init__(
        self,
        *,
        api_key: str | None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 120.0,
        max_tokens: int = 8192,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.max_tokens = max_tokens

    @property
    def endpoint(self) -> str:
        return f"{self.api_url.rstrip('/')}/chat/completions"

    def complete(
        self,
        *,
        model: str,
        messages: list[dict[str, object]],
        tools: list[dict[str, object]] | None = None,
        tool_choice: str | None = "auto",
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> ModelResponse | None:
        """Request one completion; ``None`` means the response carried no choice."""
        payload = self._build_payload(
            model=model,
            messages=messages,
            tools=tools,
            tool_choice=tool_choice,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return self._parse_response(self._post(payload))

    def chat(
        self,
        prompt: str,
        *,
        model: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Single tool-free completion returning the text content."""
        messages: list[dict[str, object]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        response = self.complete(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        if response is None:
            raise ModelRequestError("Model response contained no choices")
        return response.content or ""

    def _build_payload(
        self,
        *,
        model: str,
        messages: list[dict[str, object]],
        tools: list[dict[str, object]] | None,
        tool_choice: str | None,
        max_tokens: int | None,
        temperature: float | None,
    ) -> dict[str, object]:
        payload: dict[str, object] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens or self.max_tokens,
        }
        if tools:
            payload["tools"] = tools
            if tool_choice:
                payload["tool_choice"] = tool_choice
        if temperature is not None:
            payload["temperature"] = temperature
        return payload

    def _post(self, payload: dict[str, object]) -> dict[str, object]:
        messages = payload.get("messages")
        body = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        LOGGER.debug(
            "llm_request_prepared",
            extra={
                "api_url": self.endpoint,
                "model": payload.get("model"),
                "payload_bytes": len(body),
                "message_count": len(messages) if isinstance(messages, list) else 0,
            },
        )

        req = request.Request(self.endpoint, data=body, headers=headers, method="POST")
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:  # noqa: S310
                raw_response = json.loads(resp.read().decode("utf-8"))
        except HTTPError as exc:
            body_excerpt = self._read_error_body_excerpt(exc)
            LOGGER.error(
                "llm_request_http_error",
                extra={
                    "api_url": self.endpoint,
                    "http_status": exc.code,
                    "reason": exc.reason,
                    "response_excerpt": body_excerpt,
                },
            )
            details = f"Model request failed with HTTP {exc.code}: {exc.reason}"
            if exc.code == 429:
                details = f"Rate limit exceeded. {details}"
            if body_excerpt:
                details = f"{details}. Response body: {body_excerpt}"
            raise ModelRequestError(details, status=exc.code) from exc
        except URLError as exc:
            LOGGER.error(
                "llm_request_transport_error",
                extra={"api_url": self.endpoint, "reason": str(exc.reason)},
            )
            raise ModelRequestError(f"Model request connection error: {exc.reason}") from exc
        except TimeoutError as exc:
            LOGGER.error(
                "llm_request_timeout",
                extra={"api_url": self.endpoint, "timeout_seconds": self.timeout},
            )
            raise ModelRequestError(f"Model request timed out after {self.timeout:.1f}s") from exc
        except (OSError, HTTPException) as exc:
            LOGGER.error(
                "llm_request_transport_error",
                extra={"api_url": self.endpoint, "reason": str(exc)},
            )
            raise ModelRequestError(f"Model request connection error: {exc}") from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.error(
                "llm_response_parse_error",
                extra={"api_url": self.endpoint, "error": str(exc)},
            )
            raise ModelRequestError(f"Model response parsing error: {exc}") from exc

        raw = self._coerce_object_dict(raw_response)
        if raw is None:
            raise ModelRequestError("Model response parsing error: expected top-level object")
        return raw

    @classmethod
    def _parse_response(cls, payload: dict[str, object]) -> ModelResponse | None:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        choice = cls._coerce_object_dict(choices[0])
        if choice is None:
            return None
        message = cls._coerce_object_dict(choice.get("message"))
        if message is None:
            return None

        content = message.get("content")
        finish_reason = choice.get("finish_reason")
        return ModelResponse(
            content=content if isinstance(content, str) else None,
            tool_calls=cls._parse_tool_calls(message.get("tool_calls")),
            finish_reason=finish_reason if isinstance(finish_reason, str) else None,
        )

    @classmethod
    def _parse_tool_calls(cls, raw_calls: object) -> list[ToolCall]:
        if not isinstance(raw_calls, list):
            return []

        tool_calls: list[ToolCall] = []
        for index, raw_call in enumerate(raw_calls):
            call = cls._coerce_object_dict(raw_call)
            if call is None:
                continue
            function = cls._coerce_object_dict(call.get("function")) or {}
            name = function.get("name")
            if not isinstance(name, str):
                continue
            arguments = function.get("arguments")
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments) if isinstance(arguments, dict) else "{}"
            call_id = call.get("id")
            tool_calls.append(
                ToolCall(
                    id=call_id if isinstance(call_id, str) and call_id else f"call_{index}",
                    name=name,
                    arguments_json=arguments,
                )
            )
        return tool_calls

    @staticmethod
    def _coerce_object_dict(value: object) -> dict[str, object] | None:
        if not isinstance(value, dict):
            return None
        return {str(key): raw_value for key, raw_value in value.items()}

    @staticmethod
    def _read_error_body_excerpt(exc: HTTPError, *, max_chars: int = 500) -> str | None:
        if exc.fp is None:
            return None
        try:
            raw = exc.read()
        except OSError:
            return None

        if not raw:
            return None

        excerpt = raw.decode("utf-8", errors="replace").replace("\n", " ").strip()
        if len(excerpt) > max_chars:
            return f"{excerpt[:max_chars]}..."
        return excerpt
