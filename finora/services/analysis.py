"""
AI analysis engine.

Builds a fixed prompt from a company's canonical metrics, asks the LLM for a
JSON analysis and parses it. A response that is not valid JSON still yields a
well-shaped Analysis (raw text as summary, Medium risk).
"""

from __future__ import annotations

import json
import uuid
from datetime import timedelta
from typing import Any

from finora.cache.freshness import is_fresh
from finora.core.data_helpers import utc_now
from finora.core.exceptions import NotFoundError
from finora.core.logging import get_logger
from finora.repositories.companies import CompanyRepository
from finora.schemas.company import RISK_LEVELS, Analysis, AnalysisResult, CompanyMetrics
from finora.services.company_data import CompanyDataService, normalize_symbol
from finora.services.llm.client import LLMClient
from finora.services.llm.config import TaskType
from finora.services.llm.parsing import ParseSuccess, parse_fenced_json

logger = get_logger("services.analysis")

FALLBACK_RISK = "Medium"
FALLBACK_SUGGESTION = "Further analysis recommended"

INSIGHT_KEYS = ("peRatio", "roe", "debtEquity", "profitMargin", "revenue", "eps")

ANALYSIS_PROMPT = """Analyze the following company metrics and provide a comprehensive analysis in JSON format.

Company Metrics:
{metrics}

Provide your analysis in the following JSON structure:
{{
  "summary": "2-3 sentence summary of the company's overall financial health",
  "insights": {{
    "peRatio": "Plain English explanation of PE Ratio (1 sentence)",
    "roe": "Plain English explanation of ROE (1 sentence)",
    "debtEquity": "Plain English explanation of Debt/Equity ratio (1 sentence)",
    "profitMargin": "Plain English explanation of Profit Margin (1 sentence)",
    "revenue": "Plain English explanation of Revenue trends (1 sentence)",
    "eps": "Plain English explanation of EPS (1 sentence)"
  }},
  "risk": "Low/Medium/High with brief justification",
  "suggestion": "One-line actionable suggestion for retail investors"
}}

Important:
- Use simple language that a beginner investor can understand
- Be honest about risks
- Base analysis only on provided data
- Return ONLY valid JSON, no markdown or extra text
"""


def build_analysis_prompt(metrics: CompanyMetrics) -> str:
    """Deterministic prompt embedding the full metrics object."""
    payload = json.dumps(metrics.model_dump(mode="json"), indent=2, sort_keys=True)
    return ANALYSIS_PROMPT.format(metrics=payload)


def coerce_risk(value: Any) -> tuple[str, str | None]:
    """Split "High - heavy debt load" into ("High", "heavy debt load").

    Anything without a recognizable level becomes Medium, with the original
    text kept as detail.
    """
    if not isinstance(value, str) or not value.strip():
        return FALLBACK_RISK, None

    text = value.strip()
    lowered = text.lower()
    for level in RISK_LEVELS:
        if lowered.startswith(level.lower()):
            detail = text[len(level):].lstrip(" -:,.;/()").rstrip(")").strip()
            return level, detail or None
    for level in RISK_LEVELS:
        if level.lower() in lowered:
            return level, text
    return FALLBACK_RISK, text


def _coerce_insights(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


def parse_analysis_response(text: str) -> dict[str, Any]:
    """Parse the model output into analysis fields. Never raises."""
    result = parse_fenced_json(text)
    if not isinstance(result, ParseSuccess):
        logger.warning(f"Analysis response was not valid JSON, using fallback: {result.error}")
        return {
            "summary": text,
            "insights": {},
            "risk": FALLBACK_RISK,
            "risk_detail": None,
            "suggestion": FALLBACK_SUGGESTION,
        }

    data = result.value
    risk, risk_detail = coerce_risk(data.get("risk"))
    summary = data.get("summary")
    suggestion = data.get("suggestion")
    return {
        "summary": summary if isinstance(summary, str) and summary else text,
        "insights": _coerce_insights(data.get("insights")),
        "risk": risk,
        "risk_detail": risk_detail,
        "suggestion": suggestion if isinstance(suggestion, str) and suggestion else FALLBACK_SUGGESTION,
    }


class AnalysisEngine:
    def __init__(
        self,
        companies: CompanyRepository,
        company_data: CompanyDataService,
        llm: LLMClient,
        data_ttl: timedelta,
        analysis_ttl: timedelta,
    ):
        self.companies = companies
        self.company_data = company_data
        self.llm = llm
        self.data_ttl = data_ttl
        self.analysis_ttl = analysis_ttl

    async def generate_analysis(self, metrics: CompanyMetrics) -> Analysis:
        """One LLM call, parsed into a fresh Analysis."""
        completion = await self.llm.complete(build_analysis_prompt(metrics), TaskType.ANALYSIS)
        fields = parse_analysis_response(completion.text)
        return Analysis(
            analysis_id=str(uuid.uuid4()),
            created_at=utc_now(),
            llm_model=completion.model,
            llm_raw_response=completion.text,
            **fields,
        )

    async def analyze_company(self, symbol: str) -> AnalysisResult:
        """Return a fresh stored analysis or generate and persist a new one."""
        symbol = normalize_symbol(symbol)

        record = await self.companies.get(symbol)
        if record is None or not is_fresh(record.fetched_at, self.data_ttl):
            # Provider errors (not found, rate limit) propagate to the caller
            await self.company_data.get_company_data(symbol)
            record = await self.companies.get(symbol)
            if record is None:
                raise NotFoundError(message=f"Company data for {symbol} could not be loaded")

        cached = record.analysis is not None and is_fresh(record.analysis.created_at, self.analysis_ttl)
        if not cached:
            logger.info(f"Generating AI analysis for {symbol}")
            record.analysis = await self.generate_analysis(record.metrics)
            await self.companies.upsert(record)

        return AnalysisResult(
            symbol=record.symbol,
            name=record.metrics.name,
            cached=cached,
            analysis=record.analysis,
            metrics=record.metrics,
            chart_data=record.chart_data,
            fetched_at=record.fetched_at,
        )

    async def get_analysis(self, symbol: str) -> tuple[str, Analysis]:
        """Return (company name, stored analysis)."""
        symbol = normalize_symbol(symbol)
        record = await self.companies.get(symbol)
        if record is None:
            raise NotFoundError(message="Company not found")
        if record.analysis is None:
            raise NotFoundError(message="No analysis found. Generate analysis first.")
        return record.metrics.name, record.analysis

    async def delete_analysis(self, symbol: str) -> None:
        """Drop the stored analysis so the next analyze call regenerates it."""
        symbol = normalize_symbol(symbol)
        record = await self.companies.get(symbol)
        if record is None:
            raise NotFoundError(message="Company not found")
        record.analysis = None
        await self.companies.upsert(record)
