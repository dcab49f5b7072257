"""
Web search via DuckDuckGo (duckduckgo_search.DDGS).

Search is best effort: any failure (network, rate limit, odd payload)
returns an empty list and is only logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlparse

from duckduckgo_search import DDGS

from finora.core.config import Settings
from finora.core.data_helpers import run_in_executor
from finora.core.logging import get_logger

logger = get_logger("services.web_search")


@dataclass
class SearchResult:
    title: str
    url: str
    snippet: str
    source: str


def source_name(url: str) -> str:
    """Domain of a result URL, without a leading www."""
    netloc = urlparse(url).netloc
    return netloc[4:] if netloc.startswith("www.") else netloc


def to_search_result(item: dict[str, Any]) -> SearchResult | None:
    """Map one DDGS text hit ({title, href, body}) onto a SearchResult."""
    url = item.get("href") or item.get("url") or ""
    title = (item.get("title") or "").strip()
    if not url and not title:
        return None
    return SearchResult(
        title=title,
        url=url,
        snippet=(item.get("body") or "").strip(),
        source=source_name(url),
    )


def format_results_for_prompt(results: list[SearchResult]) -> str:
    """Numbered {title, source, url, snippet} blocks."""
    blocks = []
    for index, result in enumerate(results, start=1):
        blocks.append(
            f"{index}. {result.title}\n"
            f"   Source: {result.source} - {result.url}\n"
            f"   {result.snippet}"
        )
    return "\n\n".join(blocks)


class WebSearchClient:
    """DDGS is synchronous, so each search runs in the default thread pool."""

    def __init__(
        self,
        region: str = "wt-wt",
        timeout: float = 10.0,
        ddgs_factory: Callable[[], Any] | None = None,
    ):
        self.region = region
        self.timeout = timeout
        self._ddgs_factory = ddgs_factory or (lambda: DDGS(timeout=int(timeout)))

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebSearchClient":
        return cls(region=settings.web_search_region, timeout=settings.web_search_timeout)

    async def aclose(self) -> None:
        # DDGS sessions are opened per search
        return None

    def _text(self, query: str, max_results: int) -> list[dict[str, Any]]:
        ddgs = self._ddgs_factory()
        return list(ddgs.text(query, region=self.region, max_results=max_results) or [])

    async def search(self, query: str, max_results: int = 5) -> list[SearchResult]:
        if not query.strip():
            return []
        try:
            hits = await run_in_executor(self._text, query, max_results)
        except Exception as e:
            logger.warning(f"Web search failed: {type(e).__name__}: {e}")
            return []

        results = []
        for item in hits[:max_results]:
            if not isinstance(item, dict):
                continue
            result = to_search_result(item)
            if result is not None:
                results.append(result)
        logger.debug(f"Web search returned {len(results)} results")
        return results
