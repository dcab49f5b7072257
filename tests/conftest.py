"""Pytest configuration and fixtures.

External clients are replaced with in-process fakes; the record store is the
MemoryStore, so no Valkey, provider, LLM or search endpoint is needed.
"""

from __future__ import annotations

import copy
from typing import Any

import pytest
from fastapi.testclient import TestClient

from finora.api.app import create_api_app
from finora.cache.store import MemoryStore
from finora.container import ServiceContainer, build_container
from finora.core.config import Settings
from finora.core.security import create_access_token
from finora.services.data_providers.alpha_vantage import ProviderBundle
from finora.services.llm.client import LLMCompletion
from finora.services.llm.config import TaskType
from finora.services.web_search import SearchResult

pytest_plugins = ["pytest_asyncio"]

TEST_SECRET = "test-secret-for-finora-tests-0123456789"


# =============================================================================
# Provider payloads
# =============================================================================


AAPL_OVERVIEW = {
    "Symbol": "AAPL",
    "Name": "Apple Inc",
    "MarketCapitalization": "3000000000000",
    "PERatio": "30.5",
    "EPS": "6.1",
    "BookValue": "4.3",
    "DividendYield": "0.0045",
    "Beta": "1.25",
    "ProfitMargin": "0.25",
    "ReturnOnEquityTTM": "1.47",
    "ReturnOnAssetsTTM": "0.22",
    "DebtToEquity": "1.8",
    "52WeekHigh": "199.62",
    "52WeekLow": "164.08",
    "Sector": "TECHNOLOGY",
    "Industry": "ELECTRONIC COMPUTERS",
    "Description": "Apple designs consumer electronics.",
}

AAPL_INCOME = {
    "symbol": "AAPL",
    "annualReports": [
        {"fiscalDateEnding": "2023-09-30", "totalRevenue": "383285000000", "netIncome": "96995000000"},
        {"fiscalDateEnding": "2022-09-30", "totalRevenue": "394328000000", "netIncome": "99803000000"},
    ],
}

AAPL_BALANCE = {
    "symbol": "AAPL",
    "annualReports": [
        {
            "fiscalDateEnding": "2023-09-30",
            "totalAssets": "352583000000",
            "totalLiabilities": "290437000000",
            "totalShareholderEquity": "62146000000",
        },
        {
            "fiscalDateEnding": "2022-09-30",
            "totalAssets": "352755000000",
            "totalLiabilities": "302083000000",
            "totalShareholderEquity": "50672000000",
        },
    ],
}

AAPL_CASH_FLOW = {
    "symbol": "AAPL",
    "annualReports": [{"fiscalDateEnding": "2023-09-30", "operatingCashflow": "110543000000"}],
}


def make_daily_series(days: int, start: str = "2024-01-01") -> dict[str, dict[str, str]]:
    """Provider-shaped daily bars keyed by ISO date (newest first, like the provider)."""
    from datetime import date, timedelta

    first = date.fromisoformat(start)
    series = {}
    for offset in range(days):
        day = first + timedelta(days=offset)
        close = 100 + offset
        series[day.isoformat()] = {
            "1. open": f"{close - 1}",
            "2. high": f"{close + 1}",
            "3. low": f"{close - 2}",
            "4. close": f"{close}",
            "5. volume": "1000000",
        }
    return dict(sorted(series.items(), reverse=True))


def make_indicator_payload(function: str, days: int, start: str = "2024-01-01", base: float = 50.0) -> dict[str, Any]:
    """Provider-shaped technical indicator payload (newest first); value = base + day offset."""
    from datetime import date, timedelta

    first = date.fromisoformat(start)
    series = {
        (first + timedelta(days=offset)).isoformat(): {function: f"{base + offset:.4f}"}
        for offset in range(days)
    }
    return {
        "Meta Data": {"1: Symbol": "AAPL", "2: Indicator": function},
        f"Technical Analysis: {function}": dict(sorted(series.items(), reverse=True)),
    }


def make_bundle(overview: dict[str, Any] | None = None, days: int = 40) -> ProviderBundle:
    return ProviderBundle(
        overview=copy.deepcopy(overview or AAPL_OVERVIEW),
        income_statement=copy.deepcopy(AAPL_INCOME),
        balance_sheet=copy.deepcopy(AAPL_BALANCE),
        cash_flow=copy.deepcopy(AAPL_CASH_FLOW),
        time_series=make_daily_series(days),
    )


TOP_MOVERS_PAYLOAD = {
    "metadata": "Top gainers, losers, and most actively traded US tickers",
    "top_gainers": [
        {"ticker": f"GAIN{i}", "price": "10.5", "change_amount": "2.5", "change_percentage": "31.25%", "volume": "123456"}
        for i in range(12)
    ],
    "top_losers": [
        {"ticker": "LOSE", "price": "3.2", "change_amount": "-1.1", "change_percentage": "-25.58%", "volume": "9876"}
    ],
    "most_actively_traded": [
        {"ticker": "SPY", "price": "500.1", "change_amount": "1.0", "change_percentage": "0.2%", "volume": "99999999"}
    ],
}


# =============================================================================
# Fakes
# =============================================================================


class FakeProvider:
    """Stands in for AlphaVantageClient.

    ``bundles`` maps a symbol to the ProviderBundle to return; a symbol mapped
    to an exception instance raises it.
    """

    provider_name = "alpha_vantage"

    def __init__(self, bundles: dict[str, Any] | None = None, movers: Any = None):
        self.bundles = bundles if bundles is not None else {"AAPL": make_bundle()}
        self.movers = movers if movers is not None else copy.deepcopy(TOP_MOVERS_PAYLOAD)
        self.fetch_calls: list[str] = []
        self.mover_calls = 0
        self.indicators: dict[str, Any] = {
            "SMA": make_indicator_payload("SMA", 120, base=150.0),
            "RSI": make_indicator_payload("RSI", 120, base=10.0),
        }
        self.indicator_calls: list[tuple[str, str, int]] = []

    async def fetch_all(self, symbol: str) -> ProviderBundle:
        self.fetch_calls.append(symbol)
        outcome = self.bundles.get(symbol)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            from finora.core.exceptions import SymbolNotFoundError

            raise SymbolNotFoundError(details={"symbol": symbol})
        return copy.deepcopy(outcome)

    async def fetch_top_movers(self) -> dict[str, Any]:
        self.mover_calls += 1
        if isinstance(self.movers, Exception):
            raise self.movers
        return copy.deepcopy(self.movers)

    async def fetch_indicator(
        self,
        function: str,
        symbol: str,
        time_period: int,
        interval: str = "daily",
        series_type: str = "close",
    ) -> dict[str, Any]:
        self.indicator_calls.append((function, symbol, time_period))
        outcome = self.indicators.get(function)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            from finora.core.exceptions import SymbolNotFoundError

            raise SymbolNotFoundError(details={"symbol": symbol, "function": function})
        return copy.deepcopy(outcome)

    async def aclose(self) -> None:
        return None


class FakeLLM:
    """Stands in for LLMClient.

    ``responses`` maps a TaskType to reply text, an exception instance, or a
    list consumed in order.
    """

    model = "fake-model"

    def __init__(self, responses: dict[TaskType, Any] | None = None):
        self.responses = responses or {}
        self.calls: list[tuple[TaskType, str]] = []

    def calls_for(self, task: TaskType) -> list[str]:
        return [prompt for t, prompt in self.calls if t == task]

    async def complete(self, prompt: str, task: TaskType, system: str | None = None) -> LLMCompletion:
        self.calls.append((task, prompt))
        outcome = self.responses.get(task, "")
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, Exception):
            raise outcome
        return LLMCompletion(text=outcome, model=self.model, raw={"fake": True})

    async def aclose(self) -> None:
        return None


class FakeSearch:
    """Stands in for WebSearchClient."""

    def __init__(self, results: list[SearchResult] | None = None):
        self.results = results or []
        self.queries: list[str] = []

    async def search(self, query: str, max_results: int = 5) -> list[SearchResult]:
        self.queries.append(query)
        return self.results[:max_results]

    async def aclose(self) -> None:
        return None


class FakeClock:
    """Monotonic clock the MemoryStore reads; tests move it forward."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


GOOD_ANALYSIS_REPLY = """```json
{
  "summary": "Apple is highly profitable with a strong balance sheet.",
  "insights": {"peRatio": "Investors pay about 30 dollars per dollar of earnings."},
  "risk": "Low - consistent cash generation",
  "suggestion": "Suitable as a long-term core holding."
}
```"""

GOOD_CHAT_REPLY = (
    '{"answer": "Apple trades at about 30 times earnings.", '
    '"chart": {"type": "bar", "title": "P/E", "labels": ["AAPL"], "values": [30.5]}, '
    '"sources": [{"name": "Company data", "url": ""}]}'
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        store_backend="memory",
        auth_secret=TEST_SECRET,
        alpha_vantage_api_key="test-key",
        llm_api_key="",
        upload_dir=str(tmp_path / "uploads"),
        log_format="text",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> MemoryStore:
    return MemoryStore(clock=clock)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM(
        {
            TaskType.ANALYSIS: GOOD_ANALYSIS_REPLY,
            TaskType.SEARCH_CLASSIFIER: "NO",
            TaskType.CHAT: GOOD_CHAT_REPLY,
            TaskType.DOCUMENT: '{"summary": "Statement summary", "keyFindings": ["Rent is the largest expense"]}',
        }
    )


@pytest.fixture
def search() -> FakeSearch:
    return FakeSearch(
        [
            SearchResult(
                title="Apple beats estimates",
                url="https://www.reuters.com/apple-earnings",
                snippet="Apple reported record services revenue.",
                source="reuters.com",
            )
        ]
    )


@pytest.fixture
def container(settings, store, provider, llm, search) -> ServiceContainer:
    return build_container(settings, store=store, provider=provider, llm=llm, search=search)


@pytest.fixture
def client(container):
    """TestClient with the lifespan running (document workers started)."""
    app = create_api_app(container)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(settings) -> dict[str, str]:
    token = create_access_token("user-1", secret=settings.auth_secret)
    return {"Authorization": f"Bearer {token}"}
