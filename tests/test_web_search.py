from __future__ import annotations

import json
from urllib.error import HTTPError, URLError

import pytest

from delegateai.config import WebSearchSettings
from delegateai.llm.client import ModelRequestError
from delegateai.web.search import (
    SearchError,
    SearchResult,
    brave_search,
    search_and_synthesize,
    synthesize_snippets,
)

BRAVE_PAYLOAD = {
    "web": {
        "results": [
            {"title": "Python 3.13", "url": "https://python.org/3.13", "description": "Released"},
            {"title": "Changelog", "url": "https://docs.python.org/whatsnew", "description": "New"},
        ]
    }
}


class FakeResponse:
    def __init__(self, payload: object) -> None:
        self.body = json.dumps(payload).encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return None

    def read(self):
        return self.body


class FakeChatClient:
    def __init__(self, reply: str | Exception = "Python 3.13 is out.\nSources: python.org") -> None:
        self.reply = reply
        self.calls: list[dict[str, object]] = []

    def chat(self, prompt: str, **kwargs: object) -> str:
        self.calls.append({"prompt": prompt, **kwargs})
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class StepClock:
    def __init__(self, values: list[float]) -> None:
        self.values = list(values)

    def __call__(self) -> float:
        return self.values.pop(0)


def test_brave_search_sends_token_and_parses_results(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_urlopen(req, timeout=None):
        captured["url"] = req.full_url
        captured["token"] = req.get_header("X-subscription-token")
        return FakeResponse(BRAVE_PAYLOAD)

    monkeypatch.setattr("delegateai.web.search.request.urlopen", fake_urlopen)

    results = brave_search("python release", api_key="brave-key", max_results=5)

    assert captured["token"] == "brave-key"
    assert "q=python+release" in str(captured["url"])
    assert "count=5" in str(captured["url"])
    assert results[0] == SearchResult(
        title="Python 3.13", url="https://python.org/3.13", snippet="Released"
    )
    assert len(results) == 2


def test_brave_search_http_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(*_args, **_kwargs):
        raise HTTPError(url="https://brave", code=401, msg="Unauthorized", hdrs=None, fp=None)

    monkeypatch.setattr("delegateai.web.search.request.urlopen", fake_urlopen)

    with pytest.raises(SearchError, match="Brave Search API error: 401"):
        brave_search("x", api_key="bad")


def test_brave_search_missing_results_section(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "delegateai.web.search.request.urlopen", lambda *_a, **_k: FakeResponse({"query": {}})
    )

    assert brave_search("x", api_key="k") == []


def test_search_without_api_key_explains_setup() -> None:
    client = FakeChatClient()

    output = search_and_synthesize(
        "x",
        settings=WebSearchSettings(),
        client=client,  # type: ignore[arg-type]
        model="deepseek-chat",
        brave_api_key=None,
    )

    assert output.startswith("[web_search error]\nBRAVE_API_KEY environment variable is not set.")
    assert client.calls == []


def test_search_and_synthesize_formats_block(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "delegateai.web.search.request.urlopen", lambda *_a, **_k: FakeResponse(BRAVE_PAYLOAD)
    )
    client = FakeChatClient()

    output = search_and_synthesize(
        "python release",
        settings=WebSearchSettings(max_results=5, max_response_tokens=512),
        client=client,  # type: ignore[arg-type]
        model="deepseek-chat",
        brave_api_key="k",
        clock=StepClock([0.0, 0.5, 0.5, 1.25, 1.25]),
    )

    assert output == (
        "[web_search: python release]\n"
        "Results: 2 found\n"
        "Timing: search=500ms, synthesize=750ms, total=1250ms\n\n"
        "Python 3.13 is out.\nSources: python.org\n\n"
        "---\n"
        "Search results:\n"
        "- Python 3.13: https://python.org/3.13\n"
        "- Changelog: https://docs.python.org/whatsnew"
    )
    assert client.calls[0]["temperature"] == 0.1
    assert client.calls[0]["max_tokens"] == 512
    assert "## Source: Python 3.13" in str(client.calls[0]["prompt"])


def test_search_reports_no_results(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "delegateai.web.search.request.urlopen",
        lambda *_a, **_k: FakeResponse({"web": {"results": []}}),
    )

    output = search_and_synthesize(
        "obscure",
        settings=WebSearchSettings(),
        client=FakeChatClient(),  # type: ignore[arg-type]
        model="deepseek-chat",
        brave_api_key="k",
    )

    assert output == "[web_search: obscure]\nNo results found."


def test_search_backend_failure_is_text(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(*_args, **_kwargs):
        raise URLError("dns failure")

    monkeypatch.setattr("delegateai.web.search.request.urlopen", fake_urlopen)

    output = search_and_synthesize(
        "x",
        settings=WebSearchSettings(),
        client=FakeChatClient(),  # type: ignore[arg-type]
        model="deepseek-chat",
        brave_api_key="k",
    )

    assert output.startswith("[web_search error]\nBrave Search request failed")


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        ("maximum context length exceeded", "[Synthesis failed: context too large]"),
        ("Rate limit exceeded. HTTP 429", "[Synthesis failed: rate limit]"),
        ("Model request failed with HTTP 500: boom", "[Synthesis failed: API error]"),
    ],
)
def test_synthesis_failures_are_labelled(error: str, expected: str) -> None:
    results = [SearchResult(title="t", url="u", snippet="s")]

    output = synthesize_snippets(
        "q",
        results,
        client=FakeChatClient(ModelRequestError(error)),  # type: ignore[arg-type]
        model="deepseek-chat",
        max_tokens=100,
    )

    assert output.startswith(expected)
