"""Company, chart and analysis schemas."""

from __future__ import annotations

import datetime as dt
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from finora.core.data_helpers import utc_now


RISK_LEVELS = ("Low", "Medium", "High")


class CompanyMetrics(BaseModel):
    """Canonical, provider-agnostic company metrics."""

    symbol: str = ""
    name: str = ""

    # Valuation
    market_cap: float | None = None
    pe_ratio: float | None = None
    eps: float | None = None
    book_value: float | None = None
    dividend_yield: float | None = None
    beta: float | None = None

    # Profitability
    profit_margin: float | None = None
    revenue: float | None = None
    net_income: float | None = None
    roe: float | None = None
    roa: float | None = None

    # Leverage and liquidity
    debt_equity: float | None = None
    current_ratio: float | None = None
    quick_ratio: float | None = None

    # Price range
    fifty_two_week_high: float | None = None
    fifty_two_week_low: float | None = None

    # Company info
    sector: str = "N/A"
    industry: str = "N/A"
    description: str = ""


class ChartPoint(BaseModel):
    """One daily OHLCV bar."""

    date: dt.date
    open: float | None = None
    high: float | None = None
    low: float | None = None
    close: float | None = None
    volume: float | None = None


class HistoricalTrend(BaseModel):
    """One fiscal year of income and balance sheet totals."""

    year: str
    fiscal_date_ending: str
    revenue: float | None = None
    net_income: float | None = None
    total_assets: float | None = None
    total_liabilities: float | None = None
    shareholder_equity: float | None = None


class Analysis(BaseModel):
    """AI narrative analysis of a company's metrics."""

    analysis_id: str
    summary: str
    insights: dict[str, str] = Field(default_factory=dict)
    risk: str = "Medium"
    risk_detail: str | None = None
    suggestion: str = ""
    llm_model: str | None = None
    llm_raw_response: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("risk")
    @classmethod
    def validate_risk(cls, v: str) -> str:
        if v not in RISK_LEVELS:
            raise ValueError(f"risk must be one of {RISK_LEVELS}")
        return v


class RawPayloads(BaseModel):
    """Provider responses kept verbatim for audit."""

    overview: dict[str, Any] = Field(default_factory=dict)
    income_statement: dict[str, Any] = Field(default_factory=dict)
    balance_sheet: dict[str, Any] = Field(default_factory=dict)
    cash_flow: dict[str, Any] = Field(default_factory=dict)


class CompanyRecord(BaseModel):
    """Stored company document, keyed by symbol."""

    symbol: str
    provider_used: str = "alpha_vantage"
    fetched_at: datetime = Field(default_factory=utc_now)
    raw: RawPayloads = Field(default_factory=RawPayloads)
    metrics: CompanyMetrics
    chart_data: list[ChartPoint] = Field(default_factory=list)
    historical_trends: list[HistoricalTrend] = Field(default_factory=list)
    analysis: Analysis | None = None

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return v.upper().strip()


class CompanyView(BaseModel):
    """Normalized company view returned to callers (no raw payloads)."""

    symbol: str
    name: str
    metrics: CompanyMetrics
    chart_data: list[ChartPoint] = Field(default_factory=list)
    historical_trends: list[HistoricalTrend] = Field(default_factory=list)
    analysis: Analysis | None = None
    fetched_at: datetime
    cached: bool = False

    @classmethod
    def from_record(cls, record: CompanyRecord, cached: bool) -> "CompanyView":
        return cls(
            symbol=record.symbol,
            name=record.metrics.name,
            metrics=record.metrics,
            chart_data=record.chart_data,
            historical_trends=record.historical_trends,
            analysis=record.analysis,
            fetched_at=record.fetched_at,
            cached=cached,
        )


class AnalysisResult(BaseModel):
    """Result of analyze_company."""

    symbol: str
    name: str
    cached: bool
    analysis: Analysis
    metrics: CompanyMetrics
    chart_data: list[ChartPoint] = Field(default_factory=list)
    fetched_at: datetime


class CompanySummary(BaseModel):
    """Compact listing entry."""

    symbol: str
    name: str
    market_cap: float | None = None
    pe_ratio: float | None = None
    sector: str = "N/A"
    fetched_at: datetime
    has_analysis: bool = False

    @classmethod
    def from_record(cls, record: CompanyRecord) -> "CompanySummary":
        return cls(
            symbol=record.symbol,
            name=record.metrics.name,
            market_cap=record.metrics.market_cap,
            pe_ratio=record.metrics.pe_ratio,
            sector=record.metrics.sector,
            fetched_at=record.fetched_at,
            has_analysis=record.analysis is not None,
        )


# Response envelopes


class CompanyResponse(BaseModel):
    ok: bool = True
    message: str
    data: CompanyView


class CompanyListResponse(BaseModel):
    ok: bool = True
    count: int
    data: list[CompanySummary]


class AnalysisResponse(BaseModel):
    ok: bool = True
    message: str
    cached: bool
    symbol: str
    data: AnalysisResult


class StoredAnalysisResponse(BaseModel):
    ok: bool = True
    symbol: str
    name: str
    analysis: Analysis
