"""Technical indicators (SMA, RSI) from the market data provider."""

from __future__ import annotations

import asyncio
from typing import Any

from finora.core.data_helpers import safe_float
from finora.core.logging import get_logger
from finora.schemas.market import (
    IndicatorPoint,
    IndicatorReading,
    IndicatorSeries,
    IndicatorSnapshot,
    RSISeries,
    RSISignal,
)
from finora.services.company_data import normalize_symbol
from finora.services.data_providers.alpha_vantage import RSI, SMA, AlphaVantageClient, indicator_key

logger = get_logger("services.indicators")

SERIES_POINTS = 90
SMA_PERIOD = 20
RSI_PERIOD = 14
RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0


def rsi_signal(value: float | None) -> RSISignal:
    if value is None:
        return "NEUTRAL"
    if value > RSI_OVERBOUGHT:
        return "OVERBOUGHT"
    if value < RSI_OVERSOLD:
        return "OVERSOLD"
    return "NEUTRAL"


def indicator_points(
    series: dict[str, Any],
    field: str,
    limit: int = SERIES_POINTS,
) -> list[IndicatorPoint]:
    """Latest ``limit`` dated values, returned oldest first.

    Unparseable values are skipped.
    """
    if not isinstance(series, dict):
        return []
    latest = sorted(series, reverse=True)[:limit]
    points = []
    for date in reversed(latest):
        values = series[date]
        value = safe_float(values.get(field)) if isinstance(values, dict) else None
        if value is not None:
            points.append(IndicatorPoint(date=date, value=value))
    return points


class IndicatorService:
    def __init__(self, provider: AlphaVantageClient, points: int = SERIES_POINTS):
        self.provider = provider
        self.points = points

    async def _series(self, function: str, symbol: str, time_period: int, series_type: str) -> IndicatorSeries:
        payload = await self.provider.fetch_indicator(
            function, symbol, time_period=time_period, series_type=series_type
        )
        return IndicatorSeries(
            symbol=symbol,
            indicator=function,
            time_period=time_period,
            data=indicator_points(payload.get(indicator_key(function)), function, self.points),
            metadata=payload.get("Meta Data") or {},
        )

    async def get_sma(self, symbol: str, time_period: int = SMA_PERIOD, series_type: str = "close") -> IndicatorSeries:
        symbol = normalize_symbol(symbol)
        return await self._series(SMA, symbol, time_period, series_type)

    async def get_rsi(self, symbol: str, time_period: int = RSI_PERIOD, series_type: str = "close") -> RSISeries:
        """RSI series plus the latest value and its overbought/oversold signal."""
        symbol = normalize_symbol(symbol)
        series = await self._series(RSI, symbol, time_period, series_type)
        current = series.data[-1].value if series.data else None
        return RSISeries(**series.model_dump(), current_rsi=current, signal=rsi_signal(current))

    async def get_all(self, symbol: str) -> IndicatorSnapshot:
        """Latest SMA(20) and RSI(14); either one may be missing if its fetch fails."""
        symbol = normalize_symbol(symbol)
        outcomes = await asyncio.gather(
            self.provider.fetch_indicator(SMA, symbol, time_period=SMA_PERIOD),
            self.provider.fetch_indicator(RSI, symbol, time_period=RSI_PERIOD),
            return_exceptions=True,
        )

        snapshot = IndicatorSnapshot(symbol=symbol)
        for function, period, outcome in zip((SMA, RSI), (SMA_PERIOD, RSI_PERIOD), outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning(f"{function} unavailable for {symbol}: {type(outcome).__name__}")
                continue
            points = indicator_points(outcome.get(indicator_key(function)), function, limit=1)
            if not points:
                continue
            value = points[0].value
            snapshot.indicators[function.lower()] = IndicatorReading(
                value=value,
                period=period,
                signal=rsi_signal(value) if function == RSI else None,
            )
        return snapshot
