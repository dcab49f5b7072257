"""LLM analysis of extracted document text."""

from __future__ import annotations

from typing import Any

from finora.core.data_helpers import utc_now
from finora.core.logging import get_logger
from finora.schemas.documents import DocumentAnalysis, DocumentCategory
from finora.services.llm.client import LLMClient
from finora.services.llm.config import TaskType
from finora.services.llm.parsing import ParseSuccess, parse_fenced_json

logger = get_logger("services.documents.analysis")

MAX_TEXT_CHARS = 15_000

BANK_STATEMENT_PROMPT = """Analyze this bank statement and extract key financial information.

Bank Statement Text:
{text}

Return a JSON response with:
{{
  "summary": "Brief summary of the account activity",
  "keyFindings": ["finding1", "finding2"],
  "financialMetrics": {{
    "totalIncome": number,
    "totalExpenses": number,
    "averageBalance": number,
    "largestTransaction": number,
    "transactionCount": number
  }},
  "insights": {{
    "spendingPattern": "description",
    "savingsRate": number,
    "cashFlow": "positive/negative"
  }},
  "chartData": {{
    "monthlySpending": {{"labels": ["Jan", "Feb", "Mar"], "values": [1000, 1200, 900]}},
    "categoryBreakdown": {{"labels": ["Food", "Rent", "Transport"], "values": [500, 1500, 300]}}
  }},
  "risks": ["risk1", "risk2"],
  "opportunities": ["opportunity1", "opportunity2"]
}}

Provide only the JSON response, no additional text.
"""

COMPANY_REPORT_PROMPT = """Analyze this company financial report and extract key information.

Report Text:
{text}

Return a JSON response with:
{{
  "summary": "Brief summary of company performance",
  "keyFindings": ["finding1", "finding2"],
  "financialMetrics": {{
    "revenue": number,
    "netIncome": number,
    "profitMargin": number,
    "growth": number,
    "cashFlow": number
  }},
  "insights": {{
    "performance": "description",
    "competitivePosition": "description",
    "futureOutlook": "description"
  }},
  "chartData": {{
    "revenueGrowth": {{"labels": ["2021", "2022", "2023"], "values": [100, 120, 150]}},
    "profitability": {{"labels": ["Q1", "Q2", "Q3", "Q4"], "values": [10, 12, 15, 18]}}
  }},
  "risks": ["risk1", "risk2"],
  "opportunities": ["opportunity1", "opportunity2"]
}}

Provide only the JSON response, no additional text.
"""

GENERIC_PROMPT = """Analyze this financial document and extract key information.

Document Text:
{text}

Return a JSON response with:
{{
  "summary": "Brief summary",
  "keyFindings": ["finding1", "finding2"],
  "financialMetrics": {{}},
  "insights": {{}},
  "chartData": {{}},
  "risks": [],
  "opportunities": []
}}

Provide only the JSON response, no additional text.
"""

PROMPTS = {
    DocumentCategory.BANK_STATEMENT: BANK_STATEMENT_PROMPT,
    DocumentCategory.COMPANY_REPORT: COMPANY_REPORT_PROMPT,
}


def build_document_prompt(text: str, category: DocumentCategory, max_chars: int = MAX_TEXT_CHARS) -> str:
    template = PROMPTS.get(category, GENERIC_PROMPT)
    return template.format(text=text[:max_chars])


def _fallback(text: str) -> dict[str, Any]:
    return {
        "summary": text,
        "key_findings": [],
        "financial_metrics": {},
        "insights": {},
        "chart_data": {},
        "risks": [],
        "opportunities": [],
    }


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def parse_document_response(text: str) -> dict[str, Any]:
    """Model output -> DocumentAnalysis fields (snake_case). Never raises."""
    result = parse_fenced_json(text)
    if not isinstance(result, ParseSuccess):
        logger.warning(f"Document analysis was not valid JSON, using fallback: {result.error}")
        return _fallback(text)

    data = result.value
    summary = data.get("summary")
    return {
        "summary": summary if isinstance(summary, str) else text,
        "key_findings": _as_str_list(data.get("keyFindings")),
        "financial_metrics": _as_dict(data.get("financialMetrics")),
        "insights": _as_dict(data.get("insights")),
        "chart_data": _as_dict(data.get("chartData")),
        "risks": _as_str_list(data.get("risks")),
        "opportunities": _as_str_list(data.get("opportunities")),
    }


async def analyze_extracted_text(
    llm: LLMClient,
    text: str,
    category: DocumentCategory,
    max_chars: int = MAX_TEXT_CHARS,
) -> DocumentAnalysis:
    """One LLM call over the (truncated) text. LLM errors propagate."""
    completion = await llm.complete(build_document_prompt(text, category, max_chars), TaskType.DOCUMENT)
    return DocumentAnalysis(
        analyzed_at=utc_now(),
        llm_model=completion.model,
        **parse_document_response(completion.text),
    )
