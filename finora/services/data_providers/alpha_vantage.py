"""
Alpha Vantage market data client.

Every response is checked for the provider's in-band markers before any field
is trusted:

- ``Note`` / ``Information``: rate limit hit -> ProviderRateLimitError (retryable
  by the caller, never retried here)
- ``Error Message``: unknown symbol or bad request -> SymbolNotFoundError

Transport failures (timeouts, connection resets) are retried with tenacity and
counted by a circuit breaker.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx

from finora.core.config import Settings
from finora.core.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    ProviderRateLimitError,
    SymbolNotFoundError,
)
from finora.core.logging import get_logger

from .resilience import CircuitBreaker, transport_retrying

logger = get_logger("providers.alpha_vantage")


# Provider report functions
OVERVIEW = "OVERVIEW"
INCOME_STATEMENT = "INCOME_STATEMENT"
BALANCE_SHEET = "BALANCE_SHEET"
CASH_FLOW = "CASH_FLOW"
TIME_SERIES_DAILY = "TIME_SERIES_DAILY"
TOP_GAINERS_LOSERS = "TOP_GAINERS_LOSERS"

# Technical indicator functions
SMA = "SMA"
RSI = "RSI"

TIME_SERIES_KEY = "Time Series (Daily)"
RATE_LIMIT_MARKERS = ("Note", "Information")
ERROR_MARKER = "Error Message"


def indicator_key(function: str) -> str:
    """Payload key holding an indicator series, e.g. "Technical Analysis: SMA"."""
    return f"Technical Analysis: {function}"


@dataclass
class ProviderBundle:
    """Raw payloads for one symbol, as returned by the provider."""

    overview: dict[str, Any]
    income_statement: dict[str, Any]
    balance_sheet: dict[str, Any]
    cash_flow: dict[str, Any]
    time_series: dict[str, Any]


class AlphaVantageClient:
    """Async client for the Alpha Vantage query endpoint."""

    provider_name = "alpha_vantage"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://www.alphavantage.co/query",
        timeout: float = 15.0,
        max_retries: int = 3,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.max_retries = max_retries
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._breaker = CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60.0,
            name=self.provider_name,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "AlphaVantageClient":
        return cls(
            api_key=settings.alpha_vantage_api_key,
            base_url=settings.alpha_vantage_base_url,
            timeout=settings.alpha_vantage_timeout,
            max_retries=settings.provider_max_retries,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # -------------------------------------------------------------------------
    # Low-level query
    # -------------------------------------------------------------------------

    async def query(
        self,
        function: str,
        symbol: str | None = None,
        **params: Any,
    ) -> dict[str, Any]:
        """Issue one provider call and validate its in-band markers."""
        if not self.api_key:
            raise ConfigurationError(
                message="Market data API key is not configured",
                details={"setting": "ALPHA_VANTAGE_KEY"},
            )

        request_params: dict[str, Any] = {"function": function, **params}
        if symbol:
            request_params["symbol"] = symbol
        request_params["apikey"] = self.api_key

        await self._breaker.guard()
        try:
            async for attempt in transport_retrying(max_attempts=self.max_retries):
                with attempt:
                    response = await self._http.get(self.base_url, params=request_params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            self._breaker.record_failure(e)
            logger.error(f"Alpha Vantage {function} failed for {symbol}: {type(e).__name__}")
            raise ExternalServiceError(
                message="Market data provider unavailable",
                details={"function": function},
            ) from e
        except ValueError as e:
            # Non-JSON body
            self._breaker.record_failure(e)
            logger.error(f"Alpha Vantage {function} returned a non-JSON body for {symbol}")
            raise ExternalServiceError(
                message="Market data provider returned an invalid response",
                details={"function": function},
            ) from e

        self._breaker.record_success()
        self._check_markers(function, symbol, data)
        return data

    @staticmethod
    def _check_markers(function: str, symbol: str | None, data: Any) -> None:
        if not isinstance(data, dict):
            raise ExternalServiceError(
                message="Market data provider returned an invalid response",
                details={"function": function},
            )
        for marker in RATE_LIMIT_MARKERS:
            if marker in data:
                logger.warning(f"Alpha Vantage rate limit on {function} for {symbol}")
                raise ProviderRateLimitError(details={"function": function})
        if ERROR_MARKER in data:
            logger.info(f"Alpha Vantage rejected {function} for {symbol}: {data[ERROR_MARKER]}")
            raise SymbolNotFoundError(details={"symbol": symbol, "function": function})

    # -------------------------------------------------------------------------
    # Report functions
    # -------------------------------------------------------------------------

    async def fetch_overview(self, symbol: str) -> dict[str, Any]:
        data = await self.query(OVERVIEW, symbol)
        if not data.get("Symbol"):
            raise SymbolNotFoundError(details={"symbol": symbol})
        return data

    async def fetch_income_statement(self, symbol: str) -> dict[str, Any]:
        return await self.query(INCOME_STATEMENT, symbol)

    async def fetch_balance_sheet(self, symbol: str) -> dict[str, Any]:
        return await self.query(BALANCE_SHEET, symbol)

    async def fetch_cash_flow(self, symbol: str) -> dict[str, Any]:
        return await self.query(CASH_FLOW, symbol)

    async def fetch_time_series_daily(self, symbol: str) -> dict[str, Any]:
        """Full daily OHLCV history keyed by ISO date."""
        data = await self.query(TIME_SERIES_DAILY, symbol, outputsize="full")
        series = data.get(TIME_SERIES_KEY)
        if not series:
            raise SymbolNotFoundError(
                message="No time series data available",
                details={"symbol": symbol},
            )
        return series

    async def fetch_all(self, symbol: str) -> ProviderBundle:
        """Fetch the five report types for a symbol concurrently."""
        overview, income, balance, cash_flow, series = await asyncio.gather(
            self.fetch_overview(symbol),
            self.fetch_income_statement(symbol),
            self.fetch_balance_sheet(symbol),
            self.fetch_cash_flow(symbol),
            self.fetch_time_series_daily(symbol),
        )
        return ProviderBundle(
            overview=overview,
            income_statement=income,
            balance_sheet=balance,
            cash_flow=cash_flow,
            time_series=series,
        )

    async def fetch_top_movers(self) -> dict[str, Any]:
        """Top gainers, losers and most actively traded tickers."""
        return await self.query(TOP_GAINERS_LOSERS)

    async def fetch_indicator(
        self,
        function: str,
        symbol: str,
        time_period: int,
        interval: str = "daily",
        series_type: str = "close",
    ) -> dict[str, Any]:
        """Technical indicator payload ("Meta Data" plus the dated series)."""
        data = await self.query(
            function,
            symbol,
            interval=interval,
            time_period=time_period,
            series_type=series_type,
        )
        if not data.get(indicator_key(function)):
            raise SymbolNotFoundError(
                message=f"No {function} data available for this symbol",
                details={"symbol": symbol, "function": function},
            )
        return data
