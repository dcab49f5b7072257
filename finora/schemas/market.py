"""Market schemas: movers, market-cap listings and technical indicators."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from finora.core.data_helpers import utc_now

from .company import CompanySummary


RSISignal = Literal["OVERBOUGHT", "OVERSOLD", "NEUTRAL"]


class MarketMover(BaseModel):
    symbol: str
    price: float | None = None
    change: float | None = None
    change_percentage: float | None = None
    volume: int | None = None


class MarketMovers(BaseModel):
    """Snapshot of the provider's top gainers, losers and most active tickers."""

    top_gainers: list[MarketMover] = Field(default_factory=list)
    top_losers: list[MarketMover] = Field(default_factory=list)
    most_active: list[MarketMover] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=utc_now)


class MarketMoversResponse(BaseModel):
    ok: bool = True
    cached: bool
    data: MarketMovers


class MarketCapResponse(BaseModel):
    ok: bool = True
    filter: str
    count: int
    data: list[CompanySummary]


class IndicatorPoint(BaseModel):
    date: str
    value: float


class IndicatorSeries(BaseModel):
    """Chart-ready indicator series, oldest point first."""

    symbol: str
    indicator: str
    time_period: int
    data: list[IndicatorPoint] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class RSISeries(IndicatorSeries):
    current_rsi: float | None = None
    signal: RSISignal = "NEUTRAL"


class IndicatorReading(BaseModel):
    value: float
    period: int
    signal: RSISignal | None = None


class IndicatorSnapshot(BaseModel):
    """Latest SMA and RSI values; an indicator that failed to load is absent."""

    symbol: str
    indicators: dict[str, IndicatorReading] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)


class IndicatorSeriesResponse(IndicatorSeries):
    ok: bool = True


class RSISeriesResponse(RSISeries):
    ok: bool = True


class IndicatorSnapshotResponse(IndicatorSnapshot):
    ok: bool = True
