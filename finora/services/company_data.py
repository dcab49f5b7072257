"""
Company data service.

Serves canonical company records from the store while they are fresh and
otherwise refetches the five provider reports concurrently, normalizes them
and replaces the stored record.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Literal

from finora.cache.freshness import is_fresh
from finora.core.data_helpers import utc_now
from finora.core.exceptions import BadRequestError
from finora.core.logging import get_logger
from finora.repositories.companies import CompanyRepository
from finora.schemas.company import (
    CompanyRecord,
    CompanySummary,
    CompanyView,
    RawPayloads,
)
from finora.services.data_providers.alpha_vantage import AlphaVantageClient
from finora.services.normalizer import (
    calculate_derived_metrics,
    create_historical_trends,
    normalize_metrics,
    transform_chart_data,
)

logger = get_logger("services.company_data")

LARGE_CAP_MIN = 10_000_000_000
SMALL_CAP_MAX = 2_000_000_000
MARKET_CAP_LIMIT = 50
SEARCH_LIMIT = 50

MarketCapFilter = Literal["large", "small", "all"]


def normalize_symbol(symbol: str | None) -> str:
    """Uppercase/strip a ticker; empty input is a bad request."""
    normalized = (symbol or "").strip().upper()
    if not normalized:
        raise BadRequestError(message="Company symbol is required")
    return normalized


class CompanyDataService:
    def __init__(
        self,
        companies: CompanyRepository,
        provider: AlphaVantageClient,
        ttl: timedelta,
        max_chart_points: int = 365,
        trend_years: int = 5,
    ):
        self.companies = companies
        self.provider = provider
        self.ttl = ttl
        self.max_chart_points = max_chart_points
        self.trend_years = trend_years

    async def get_company_data(self, symbol: str) -> CompanyView:
        """Return the canonical record, from the store while it is fresh and analyzed.

        A fresh record that has no analysis yet is refetched.
        """
        symbol = normalize_symbol(symbol)

        existing = await self.companies.get(symbol)
        if existing is not None and is_fresh(existing.fetched_at, self.ttl) and existing.analysis is not None:
            logger.debug(f"Serving cached company data for {symbol}")
            return CompanyView.from_record(existing, cached=True)

        record = await self._fetch_and_store(symbol, existing)
        return CompanyView.from_record(record, cached=False)

    async def refresh_company_data(self, symbol: str) -> CompanyView:
        """Delete the stored record (analysis included) and refetch."""
        symbol = normalize_symbol(symbol)
        await self.companies.delete(symbol)
        logger.info(f"Company cache cleared for {symbol}")
        record = await self._fetch_and_store(symbol, None)
        return CompanyView.from_record(record, cached=False)

    async def get_record(self, symbol: str) -> CompanyRecord | None:
        return await self.companies.get(normalize_symbol(symbol))

    async def list_companies(self, limit: int = 100) -> list[CompanySummary]:
        records = await self.companies.list_all()
        return [CompanySummary.from_record(r) for r in records[:limit]]

    async def companies_by_market_cap(
        self,
        cap_filter: MarketCapFilter = "all",
    ) -> list[CompanySummary]:
        """Stored companies with a market cap, largest first."""
        records = [r for r in await self.companies.list_all() if r.metrics.market_cap is not None]
        if cap_filter == "large":
            records = [r for r in records if r.metrics.market_cap >= LARGE_CAP_MIN]
        elif cap_filter == "small":
            records = [r for r in records if r.metrics.market_cap < SMALL_CAP_MAX]
        records.sort(key=lambda r: r.metrics.market_cap, reverse=True)
        return [CompanySummary.from_record(r) for r in records[:MARKET_CAP_LIMIT]]

    async def search_companies(
        self,
        query: str | None = None,
        sector: str | None = None,
        min_market_cap: float | None = None,
        max_market_cap: float | None = None,
        limit: int = SEARCH_LIMIT,
    ) -> list[CompanySummary]:
        """Stored companies matching every given criterion.

        ``query`` is a case-insensitive substring of the symbol or name; a
        market cap bound excludes companies with no market cap.
        """
        needle = (query or "").strip().casefold()
        wanted_sector = (sector or "").strip().casefold()

        matches = []
        for record in await self.companies.list_all():
            metrics = record.metrics
            if needle and needle not in record.symbol.casefold() and needle not in metrics.name.casefold():
                continue
            if wanted_sector and metrics.sector.casefold() != wanted_sector:
                continue
            if min_market_cap is not None or max_market_cap is not None:
                if metrics.market_cap is None:
                    continue
                if min_market_cap is not None and metrics.market_cap < min_market_cap:
                    continue
                if max_market_cap is not None and metrics.market_cap > max_market_cap:
                    continue
            matches.append(CompanySummary.from_record(record))
            if len(matches) >= limit:
                break
        return matches

    async def _fetch_and_store(
        self,
        symbol: str,
        existing: CompanyRecord | None,
    ) -> CompanyRecord:
        logger.info(f"Fetching company data for {symbol}")
        bundle = await self.provider.fetch_all(symbol)

        metrics = calculate_derived_metrics(
            normalize_metrics(
                bundle.overview,
                bundle.income_statement,
                bundle.balance_sheet,
                bundle.cash_flow,
            )
        )
        if not metrics.symbol:
            metrics.symbol = symbol

        record = CompanyRecord(
            symbol=symbol,
            provider_used=self.provider.provider_name,
            fetched_at=utc_now(),
            raw=RawPayloads(
                overview=bundle.overview,
                income_statement=bundle.income_statement,
                balance_sheet=bundle.balance_sheet,
                cash_flow=bundle.cash_flow,
            ),
            metrics=metrics,
            chart_data=transform_chart_data(bundle.time_series, self.max_chart_points),
            historical_trends=create_historical_trends(
                bundle.income_statement,
                bundle.balance_sheet,
                self.trend_years,
            ),
            # The analysis has its own TTL; a data refetch keeps it
            analysis=existing.analysis if existing is not None else None,
        )
        await self.companies.upsert(record)
        logger.info(
            f"Stored company data for {symbol}",
            extra={"chart_points": len(record.chart_data), "trend_years": len(record.historical_trends)},
        )
        return record
