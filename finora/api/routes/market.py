"""Market routes: top movers, screener, stored-company search and indicators."""

from __future__ import annotations

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query

from finora.api.dependencies import get_container
from finora.container import ServiceContainer
from finora.schemas.company import CompanyListResponse
from finora.schemas.market import (
    IndicatorSeriesResponse,
    IndicatorSnapshotResponse,
    MarketCapResponse,
    MarketMoversResponse,
    RSISeriesResponse,
)
from finora.services.company_data import SEARCH_LIMIT
from finora.services.indicators import RSI_PERIOD, SMA_PERIOD


router = APIRouter()

SeriesType = Literal["close", "open", "high", "low"]


@router.get("/movers", response_model=MarketMoversResponse, summary="Top gainers, losers and most active")
async def get_movers(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> MarketMoversResponse:
    snapshot, cached = await container.market_movers.get_top_movers()
    return MarketMoversResponse(cached=cached, data=snapshot)


@router.get("/screener", response_model=MarketCapResponse, summary="Stored companies by market cap")
@router.get("/stocks", response_model=MarketCapResponse, include_in_schema=False)
async def get_screener(
    container: Annotated[ServiceContainer, Depends(get_container)],
    filter: Literal["large", "small", "all"] = Query(default="all"),
) -> MarketCapResponse:
    companies = await container.company_data.companies_by_market_cap(filter)
    return MarketCapResponse(filter=filter, count=len(companies), data=companies)


@router.get("/search", response_model=CompanyListResponse, summary="Search stored companies")
async def search_companies(
    container: Annotated[ServiceContainer, Depends(get_container)],
    query: str | None = Query(default=None, max_length=100, description="Symbol or name fragment"),
    sector: str | None = Query(default=None, max_length=100),
    min_market_cap: float | None = Query(default=None, ge=0),
    max_market_cap: float | None = Query(default=None, ge=0),
) -> CompanyListResponse:
    companies = await container.company_data.search_companies(
        query=query,
        sector=sector,
        min_market_cap=min_market_cap,
        max_market_cap=max_market_cap,
        limit=SEARCH_LIMIT,
    )
    return CompanyListResponse(count=len(companies), data=companies)


@router.get(
    "/indicators/{symbol}/sma",
    response_model=IndicatorSeriesResponse,
    summary="Simple moving average",
    description="Last 90 daily SMA values, oldest first.",
)
async def get_sma(
    symbol: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
    time_period: int = Query(default=SMA_PERIOD, ge=2, le=500),
    series_type: SeriesType = Query(default="close"),
) -> IndicatorSeriesResponse:
    series = await container.indicators.get_sma(symbol, time_period=time_period, series_type=series_type)
    return IndicatorSeriesResponse(**series.model_dump())


@router.get(
    "/indicators/{symbol}/rsi",
    response_model=RSISeriesResponse,
    summary="Relative strength index",
    description="Last 90 daily RSI values, oldest first, with an overbought (>70) / oversold (<30) signal.",
)
async def get_rsi(
    symbol: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
    time_period: int = Query(default=RSI_PERIOD, ge=2, le=500),
    series_type: SeriesType = Query(default="close"),
) -> RSISeriesResponse:
    series = await container.indicators.get_rsi(symbol, time_period=time_period, series_type=series_type)
    return RSISeriesResponse(**series.model_dump())


@router.get("/indicators/{symbol}/all", response_model=IndicatorSnapshotResponse, summary="Latest SMA and RSI")
async def get_all_indicators(
    symbol: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> IndicatorSnapshotResponse:
    snapshot = await container.indicators.get_all(symbol)
    return IndicatorSnapshotResponse(**snapshot.model_dump())
