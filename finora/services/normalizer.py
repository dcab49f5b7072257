"""
Metrics normalizer.

Turns raw provider payloads (overview, statements, daily series) into the
canonical CompanyMetrics / ChartPoint / HistoricalTrend shapes. Nothing in this
module raises on malformed provider data: bad numbers become None, bad series
become empty lists.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Iterable

from finora.core.data_helpers import safe_float
from finora.core.logging import get_logger
from finora.schemas.company import ChartPoint, CompanyMetrics, HistoricalTrend

logger = get_logger("normalizer")

MAX_CHART_POINTS = 365
DEFAULT_TREND_YEARS = 5


def parse_number(value: Any) -> float | None:
    """Safe-parse a provider numeric field. Never raises."""
    return safe_float(value)


def _annual_reports(statement: dict[str, Any] | None) -> list[dict[str, Any]]:
    if not isinstance(statement, dict):
        return []
    reports = statement.get("annualReports")
    if not isinstance(reports, list):
        return []
    return [r for r in reports if isinstance(r, dict)]


def latest_annual_report(statement: dict[str, Any] | None) -> dict[str, Any]:
    """Newest annual report by fiscalDateEnding, or {} when there is none.

    The provider lists reports newest first, but the order is sorted explicitly
    rather than trusted.
    """
    reports = _annual_reports(statement)
    if not reports:
        return {}
    return max(reports, key=lambda r: str(r.get("fiscalDateEnding") or ""))


def normalize_metrics(
    overview: dict[str, Any] | None,
    income_statement: dict[str, Any] | None,
    balance_sheet: dict[str, Any] | None,
    cash_flow: dict[str, Any] | None,
) -> CompanyMetrics:
    """Build CompanyMetrics from the provider's report payloads."""
    overview = overview if isinstance(overview, dict) else {}
    income = latest_annual_report(income_statement)
    balance = latest_annual_report(balance_sheet)
    # No canonical field reads the cash flow statement; it stays raw on the record

    symbol = str(overview.get("Symbol") or "").upper()

    return CompanyMetrics(
        symbol=symbol,
        name=overview.get("Name") or symbol,
        # Valuation
        market_cap=parse_number(overview.get("MarketCapitalization")),
        pe_ratio=parse_number(overview.get("PERatio")),
        eps=parse_number(overview.get("EPS")),
        book_value=parse_number(overview.get("BookValue")),
        dividend_yield=parse_number(overview.get("DividendYield")),
        beta=parse_number(overview.get("Beta")),
        # Profitability
        profit_margin=parse_number(overview.get("ProfitMargin")),
        revenue=parse_number(income.get("totalRevenue")),
        net_income=parse_number(income.get("netIncome")),
        roe=parse_number(overview.get("ReturnOnEquityTTM")),
        roa=parse_number(overview.get("ReturnOnAssetsTTM")),
        # Leverage / liquidity
        debt_equity=parse_number(overview.get("DebtToEquity")),
        current_ratio=parse_number(balance.get("currentRatio")),
        quick_ratio=parse_number(balance.get("quickRatio")),
        # Price range
        fifty_two_week_high=parse_number(overview.get("52WeekHigh")),
        fifty_two_week_low=parse_number(overview.get("52WeekLow")),
        # Company info
        sector=overview.get("Sector") or "N/A",
        industry=overview.get("Industry") or "N/A",
        description=overview.get("Description") or "",
    )


def calculate_derived_metrics(metrics: CompanyMetrics) -> CompanyMetrics:
    """Fill in profit margin and ROE when the provider left them out.

    ROE falls back to net income / market cap, which stands in market cap for
    shareholder equity. It is an approximation, kept as such.
    """
    derived = metrics.model_copy()

    if derived.profit_margin is None and derived.net_income is not None and derived.revenue:
        derived.profit_margin = derived.net_income / derived.revenue * 100

    if derived.roe is None and derived.net_income is not None and derived.market_cap:
        derived.roe = derived.net_income / derived.market_cap * 100

    return derived


def _parse_date(value: Any) -> dt.date | None:
    try:
        return dt.date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def transform_chart_data(
    raw_series: Any,
    max_points: int = MAX_CHART_POINTS,
) -> list[ChartPoint]:
    """Daily series -> the most recent ``max_points`` bars, ascending by date."""
    if not isinstance(raw_series, dict) or not raw_series:
        return []

    dated: list[tuple[dt.date, dict[str, Any]]] = []
    for key, bar in raw_series.items():
        day = _parse_date(key)
        if day is None or not isinstance(bar, dict):
            continue
        dated.append((day, bar))

    dated.sort(key=lambda item: item[0], reverse=True)

    points = [
        ChartPoint(
            date=day,
            open=parse_number(bar.get("1. open")),
            high=parse_number(bar.get("2. high")),
            low=parse_number(bar.get("3. low")),
            close=parse_number(bar.get("4. close")),
            volume=parse_number(bar.get("5. volume")),
        )
        for day, bar in dated[:max_points]
    ]
    points.reverse()
    return points


def _by_fiscal_date(reports: Iterable[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    indexed: dict[str, dict[str, Any]] = {}
    for report in reports:
        fiscal = report.get("fiscalDateEnding")
        if fiscal and fiscal not in indexed:
            indexed[str(fiscal)] = report
    return indexed


def create_historical_trends(
    income_statement: dict[str, Any] | None,
    balance_sheet: dict[str, Any] | None,
    years: int = DEFAULT_TREND_YEARS,
) -> list[HistoricalTrend]:
    """Pair income and balance data per fiscal date, newest first.

    A date present on only one side still yields an entry with the other
    side's fields left as None.
    """
    income_by_date = _by_fiscal_date(_annual_reports(income_statement))
    balance_by_date = _by_fiscal_date(_annual_reports(balance_sheet))

    fiscal_dates = sorted(set(income_by_date) | set(balance_by_date), reverse=True)

    trends = []
    for fiscal in fiscal_dates[:years]:
        income = income_by_date.get(fiscal, {})
        balance = balance_by_date.get(fiscal, {})
        trends.append(
            HistoricalTrend(
                year=fiscal[:4],
                fiscal_date_ending=fiscal,
                revenue=parse_number(income.get("totalRevenue")),
                net_income=parse_number(income.get("netIncome")),
                total_assets=parse_number(balance.get("totalAssets")),
                total_liabilities=parse_number(balance.get("totalLiabilities")),
                shareholder_equity=parse_number(balance.get("totalShareholderEquity")),
            )
        )
    return trends
