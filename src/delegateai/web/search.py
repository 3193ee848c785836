"""Web search via the Brave Search API with model-synthesized answers.

Only result snippets are used; pages are never fetched. Every failure is
returned as text so the tool executor can hand it straight back to the model.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from urllib import parse, request
from urllib.error import HTTPError, URLError

from delegateai.config import WebSearchSettings
from delegateai.llm.client import LLMClient, ModelRequestError

LOGGER = logging.getLogger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_SIGNUP_URL = "https://brave.com/search/api/"
SEARCH_TIMEOUT_SECONDS = 15.0
SYNTHESIS_TEMPERATURE = 0.1


class SearchError(RuntimeError):
    """The search backend could not be queried."""


@dataclass(slots=True)
class SearchResult:
    title: str
    url: str
    snippet: str


def brave_search(
    query: str,
    *,
    api_key: str,
    max_results: int = 10,
    timeout: float = SEARCH_TIMEOUT_SECONDS,
) -> list[SearchResult]:
    url = f"{BRAVE_SEARCH_URL}?{parse.urlencode({'q': query, 'count': max_results})}"
    req = request.Request(
        url,
        headers={"Accept": "application/json", "X-Subscription-Token": api_key},
        method="GET",
    )
    try:
        with request.urlopen(req, timeout=timeout) as resp:  # noqa: S310
            payload = json.loads(resp.read().decode("utf-8"))
    except HTTPError as exc:
        raise SearchError(f"Brave Search API error: {exc.code}") from exc
    except (URLError, TimeoutError, ConnectionError) as exc:
        raise SearchError(f"Brave Search request failed: {exc}") from exc
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SearchError(f"Brave Search returned an unreadable response: {exc}") from exc

    web = payload.get("web") if isinstance(payload, dict) else None
    items = web.get("results") if isinstance(web, dict) else None
    if not isinstance(items, list):
        return []

    results: list[SearchResult] = []
    for item in items[:max_results]:
        if not isinstance(item, dict):
            continue
        results.append(
            SearchResult(
                title=str(item.get("title") or ""),
                url=str(item.get("url") or ""),
                snippet=str(item.get("description") or ""),
            )
        )
    return results


def synthesize_snippets(
    query: str,
    results: list[SearchResult],
    *,
    client: LLMClient,
    model: str,
    max_tokens: int,
) -> str:
    context = "\n---\n".join(
        f"## Source: {result.title}\nURL: {result.url}\n\n{result.snippet}\n"
        for result in results
    )
    prompt = (
        f'I searched the web for: "{query}"\n\n'
        "Here are the search result snippets:\n\n"
        f"{context}\n\n---\n\n"
        f'Based on these snippets, answer the search query "{query}".\n\n'
        "Requirements:\n"
        "1. Combine information from multiple sources\n"
        "2. Include the specific facts and details found in the snippets\n"
        "3. Point out where information looks incomplete or uncertain\n"
        "4. Be concise but thorough\n\n"
        'End your response with a "Sources:" section listing the relevant URLs.'
    )
    try:
        return client.chat(
            prompt,
            model=model,
            max_tokens=max_tokens,
            temperature=SYNTHESIS_TEMPERATURE,
        )
    except ModelRequestError as exc:
        LOGGER.warning("web_search_synthesis_failed", extra={"error": str(exc)})
        message = str(exc).lower()
        if "context" in message or "token" in message:
            return (
                "[Synthesis failed: context too large]\n"
                "The combined search results exceeded the model's capacity.\n"
                "Try a more specific query or fewer results."
            )
        if "rate" in message or "429" in message:
            return (
                "[Synthesis failed: rate limit]\n"
                "Model API rate limit hit. Please wait and retry."
            )
        return f"[Synthesis failed: API error]\n{exc}"


def search_and_synthesize(
    query: str,
    *,
    settings: WebSearchSettings,
    client: LLMClient,
    model: str,
    brave_api_key: str | None,
    clock: Callable[[], float] = time.monotonic,
) -> str:
    """Search, synthesize an answer from the snippets, and format the block."""
    if not brave_api_key:
        return (
            "[web_search error]\n"
            "BRAVE_API_KEY environment variable is not set.\n"
            f"Get a free API key at {BRAVE_SIGNUP_URL}\n\n"
            "This tool cannot search the web without an API key. "
            "Ask the user to provide the information instead."
        )

    total_start = clock()
    try:
        results = brave_search(query, api_key=brave_api_key, max_results=settings.max_results)
    except SearchError as exc:
        LOGGER.warning("web_search_failed", extra={"query": query, "error": str(exc)})
        return f"[web_search error]\n{exc}"
    search_ms = _elapsed_ms(clock, total_start)

    if not results:
        return f"[web_search: {query}]\nNo results found."

    synth_start = clock()
    synthesis = synthesize_snippets(
        query,
        results,
        client=client,
        model=model,
        max_tokens=settings.max_response_tokens,
    )
    synth_ms = _elapsed_ms(clock, synth_start)
    total_ms = _elapsed_ms(clock, total_start)
    LOGGER.info(
        "web_search_completed",
        extra={"query": query, "results": len(results), "total_ms": total_ms},
    )

    urls = "\n".join(f"- {result.title}: {result.url}" for result in results)
    return (
        f"[web_search: {query}]\n"
        f"Results: {len(results)} found\n"
        f"Timing: search={search_ms}ms, synthesize={synth_ms}ms, total={total_ms}ms\n\n"
        f"{synthesis}\n\n"
        "---\n"
        f"Search results:\n{urls}"
    )


def _elapsed_ms(clock: Callable[[], float], start: float) -> int:
    return int((clock() - start) * 1000)
