"""
Chat orchestrator.

One chat turn:
1. resolve or create the session
2. gather company, portfolio, document and history context concurrently;
   a failing source is logged and left out
3. ask the LLM whether the question needs live data, and search if so
4. compose one prompt from whatever context exists
5. call the LLM, parse its JSON reply tolerantly, merge search sources
6. append both messages to the session and persist it
"""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, TypeVar

from pydantic import ValidationError

from finora.core.data_helpers import safe_float, utc_now
from finora.core.exceptions import BadRequestError, NotFoundError
from finora.core.logging import get_logger
from finora.repositories.chat_sessions import ChatSessionRepository
from finora.repositories.companies import CompanyRepository
from finora.repositories.documents import DocumentRepository
from finora.repositories.portfolios import PortfolioRepository
from finora.schemas.chat import (
    GENERAL_SYMBOL,
    ChartSpec,
    ChatMessage,
    ChatReply,
    ChatSession,
    NewSessionResponse,
    Source,
)
from finora.schemas.company import Analysis, ChartPoint, CompanyMetrics
from finora.schemas.documents import ProcessingStatus
from finora.schemas.portfolio import Holding
from finora.services.llm.client import LLMClient
from finora.services.llm.config import TaskType
from finora.services.llm.parsing import ParseSuccess, repair_and_parse
from finora.services.web_search import (
    SearchResult,
    WebSearchClient,
    format_results_for_prompt,
)

logger = get_logger("services.chat")

T = TypeVar("T")

TIMESTAMP_STEP = timedelta(microseconds=1)

# Prompt section headers
ROLE_FRAMING = "You are Finora, an AI-powered financial analyst and investment advisor."
QUESTION_HEADER = "USER QUESTION"
COMPANY_HEADER = "COMPANY DATA"
PORTFOLIO_HEADER = "USER PORTFOLIO"
DOCUMENTS_HEADER = "USER DOCUMENTS"
WEB_HEADER = "LATEST WEB SEARCH RESULTS"
HISTORY_HEADER = "RECENT CONVERSATION"
INSTRUCTIONS_HEADER = "INSTRUCTIONS"

OUTPUT_INSTRUCTIONS = f"""{INSTRUCTIONS_HEADER}:
1. Provide a comprehensive, intelligent answer based on ALL available data above
2. If you use web search results, cite the sources properly
3. If the question involves financial analysis, provide specific recommendations
4. Take the user's holdings and risk tolerance into account when they are given
5. If appropriate, generate chart data for visualization

Return your response in the following JSON format:
{{
  "answer": "Your detailed response here",
  "chart": {{
    "type": "line" | "bar" | "pie",
    "title": "Chart title",
    "labels": ["Label1", "Label2"],
    "values": [100, 200]
  }},
  "sources": [
    {{ "name": "Source Name", "url": "https://..." }}
  ]
}}

If no chart is needed, omit the "chart" field.
If no external sources were used, omit the "sources" field.

RESPOND ONLY WITH THE JSON, NO ADDITIONAL TEXT."""

CLASSIFIER_PROMPT = """Given this user question: "{message}"

And this available company data:
{company}

Respond with ONLY "YES" or "NO" - does this question require current/real-time information that isn't in the company data?

Examples:
- "What's the current stock price?" -> YES
- "Latest news about this company?" -> YES
- "What's the PE ratio?" -> NO (if in data)
- "Explain the profit margin" -> NO
- "Recent earnings report?" -> YES

Your answer (YES or NO):"""


# =============================================================================
# Context
# =============================================================================


@dataclass
class CompanyContext:
    symbol: str
    name: str
    metrics: CompanyMetrics
    analysis: Analysis | None = None
    chart_tail: list[ChartPoint] = field(default_factory=list)


@dataclass
class PortfolioContext:
    cash_balance: float
    total_value: float
    total_invested: float
    profit_loss: float
    holdings: list[Holding] = field(default_factory=list)
    risk_tolerance: str | None = None
    investment_goals: list[str] = field(default_factory=list)


@dataclass
class DocumentContext:
    file_name: str
    category: str
    summary: str | None = None
    key_findings: list[str] = field(default_factory=list)
    financial_metrics: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatContext:
    company: CompanyContext | None = None
    portfolio: PortfolioContext | None = None
    documents: list[DocumentContext] | None = None
    web_results: list[SearchResult] | None = None
    history: list[ChatMessage] = field(default_factory=list)


# =============================================================================
# Prompt composition
# =============================================================================


def _fmt(value: float | None, prefix: str = "") -> str:
    if value is None:
        return "N/A"
    if float(value).is_integer():
        return f"{prefix}{value:,.0f}"
    return f"{prefix}{value:,.2f}"


def _company_section(company: CompanyContext) -> str:
    m = company.metrics
    lines = [
        f"{COMPANY_HEADER} ({company.symbol} - {company.name}):",
        f"- Market Cap: {_fmt(m.market_cap)}",
        f"- P/E Ratio: {_fmt(m.pe_ratio)}",
        f"- EPS: {_fmt(m.eps)}",
        f"- Revenue: {_fmt(m.revenue)}",
        f"- Net Income: {_fmt(m.net_income)}",
        f"- Profit Margin: {_fmt(m.profit_margin)}",
        f"- ROE: {_fmt(m.roe)}",
        f"- Debt/Equity: {_fmt(m.debt_equity)}",
        f"- 52 Week Range: {_fmt(m.fifty_two_week_low)} - {_fmt(m.fifty_two_week_high)}",
        f"- Sector: {m.sector}",
        f"- Industry: {m.industry}",
    ]
    if company.analysis is not None:
        lines.append("")
        lines.append(f"Analysis Summary: {company.analysis.summary}")
        lines.append(f"Risk Level: {company.analysis.risk}")
    if company.chart_tail:
        closes = ", ".join(f"{p.date.isoformat()}: {_fmt(p.close)}" for p in company.chart_tail)
        lines.append("")
        lines.append(f"Recent Daily Closes: {closes}")
    return "\n".join(lines)


def _portfolio_section(portfolio: PortfolioContext) -> str:
    lines = [
        f"{PORTFOLIO_HEADER}:",
        f"- Cash Balance: ${portfolio.cash_balance:,.2f}",
        f"- Total Portfolio Value: ${portfolio.total_value:,.2f}",
        f"- Total Invested: ${portfolio.total_invested:,.2f}",
        f"- Overall P/L: ${portfolio.profit_loss:,.2f}",
        f"- Risk Tolerance: {portfolio.risk_tolerance or 'Not specified'}",
        f"- Investment Goals: {', '.join(portfolio.investment_goals) or 'Not specified'}",
        "",
        "Current Holdings:",
    ]
    if portfolio.holdings:
        for h in portfolio.holdings:
            lines.append(
                f"  - {h.symbol}: {h.quantity:g} shares @ {_fmt(h.current_price, '$')} "
                f"(P/L: {_fmt(h.profit_loss_percentage)}%)"
            )
    else:
        lines.append("  None")
    return "\n".join(lines)


def _documents_section(documents: list[DocumentContext]) -> str:
    lines = [f"{DOCUMENTS_HEADER}:"]
    for doc in documents:
        lines.append(f"- {doc.file_name} ({doc.category}):")
        lines.append(f"  Summary: {doc.summary or 'N/A'}")
        lines.append(f"  Key Findings: {', '.join(doc.key_findings) or 'N/A'}")
        if doc.financial_metrics:
            lines.append(f"  Metrics: {json.dumps(doc.financial_metrics, default=str)}")
    return "\n".join(lines)


def _history_section(history: list[ChatMessage]) -> str:
    lines = [f"{HISTORY_HEADER}:"]
    for msg in history:
        speaker = "User" if msg.role == "user" else "Assistant"
        lines.append(f"{speaker}: {msg.content}")
    return "\n".join(lines)


def compose_prompt(message: str, context: ChatContext) -> str:
    """Assemble the chat prompt in fixed section order, skipping absent sections."""
    sections = [ROLE_FRAMING, f"{QUESTION_HEADER}: {message}"]
    if context.company is not None:
        sections.append(_company_section(context.company))
    if context.portfolio is not None:
        sections.append(_portfolio_section(context.portfolio))
    if context.documents:
        sections.append(_documents_section(context.documents))
    if context.web_results:
        sections.append(f"{WEB_HEADER}:\n{format_results_for_prompt(context.web_results)}")
    if context.history:
        sections.append(_history_section(context.history))
    sections.append(OUTPUT_INSTRUCTIONS)
    return "\n\n".join(sections) + "\n"


def build_classifier_prompt(message: str, company: CompanyContext | None) -> str:
    if company is None:
        company_data = "No company data available"
    else:
        company_data = json.dumps(
            {
                "symbol": company.symbol,
                "name": company.name,
                "metrics": company.metrics.model_dump(mode="json", exclude={"description"}),
            },
            indent=2,
        )
    return CLASSIFIER_PROMPT.format(message=message, company=company_data)


# =============================================================================
# Response parsing
# =============================================================================


def _coerce_chart(value: Any) -> ChartSpec | None:
    if not isinstance(value, dict):
        return None
    values = value.get("values")
    labels = value.get("labels")
    if not isinstance(values, list) or not isinstance(labels, list):
        return None
    numbers = [safe_float(v) for v in values]
    if any(n is None for n in numbers):
        return None
    try:
        return ChartSpec(
            type=str(value.get("type", "")).lower(),
            title=str(value.get("title") or ""),
            labels=[str(label) for label in labels],
            values=numbers,
        )
    except ValidationError:
        logger.debug(f"Dropping invalid chart spec: {value.get('type')}")
        return None


def _coerce_sources(value: Any) -> list[Source]:
    if not isinstance(value, list):
        return []
    sources = []
    for item in value:
        if isinstance(item, dict):
            url = str(item.get("url") or "")
            name = str(item.get("name") or item.get("title") or url)
            if name:
                sources.append(Source(name=name, url=url))
        elif isinstance(item, str) and item.strip():
            text = item.strip()
            sources.append(Source(name=text, url=text if text.startswith("http") else ""))
    return sources


def parse_chat_response(text: str) -> tuple[str, ChartSpec | None, list[Source]]:
    """(answer, chart, sources) from the model output. Never raises."""
    result = repair_and_parse(text)
    if not isinstance(result, ParseSuccess):
        logger.warning(f"Chat response was not parseable JSON, using raw text: {result.error}")
        return text, None, []

    data = result.value
    answer = data.get("answer")
    if not isinstance(answer, str) or not answer.strip():
        answer = text
    return answer, _coerce_chart(data.get("chart")), _coerce_sources(data.get("sources"))


# =============================================================================
# Orchestrator
# =============================================================================


class ChatOrchestrator:
    def __init__(
        self,
        sessions: ChatSessionRepository,
        companies: CompanyRepository,
        portfolios: PortfolioRepository,
        documents: DocumentRepository,
        llm: LLMClient,
        search: WebSearchClient,
        history_window: int = 10,
        max_search_results: int = 5,
        holdings_limit: int = 20,
        documents_limit: int = 10,
        chart_tail: int = 30,
    ):
        self.sessions = sessions
        self.companies = companies
        self.portfolios = portfolios
        self.documents = documents
        self.llm = llm
        self.search = search
        self.history_window = history_window
        self.max_search_results = max_search_results
        self.holdings_limit = holdings_limit
        self.documents_limit = documents_limit
        self.chart_tail = chart_tail

    # -------------------------------------------------------------------------
    # Context sources
    # -------------------------------------------------------------------------

    async def _safe(self, source: str, awaitable: Awaitable[T]) -> T | None:
        try:
            return await awaitable
        except Exception as e:
            logger.warning(f"Chat context source '{source}' failed, omitting it: {e}", exc_info=True)
            return None

    async def _company_context(self, symbol: str | None) -> CompanyContext | None:
        if not symbol:
            return None
        record = await self.companies.get(symbol)
        if record is None:
            return None
        tail = record.chart_data[-self.chart_tail:] if self.chart_tail else []
        return CompanyContext(
            symbol=record.symbol,
            name=record.metrics.name,
            metrics=record.metrics,
            analysis=record.analysis,
            chart_tail=tail,
        )

    async def _portfolio_context(self, user_id: str | None) -> PortfolioContext | None:
        if not user_id:
            return None
        portfolio = await self.portfolios.get(user_id)
        if portfolio is None:
            return None
        return PortfolioContext(
            cash_balance=portfolio.cash_balance,
            total_value=portfolio.total_value,
            total_invested=portfolio.total_invested,
            profit_loss=portfolio.profit_loss,
            holdings=portfolio.holdings[: self.holdings_limit],
            risk_tolerance=portfolio.risk_tolerance,
            investment_goals=portfolio.investment_goals,
        )

    async def _document_context(self, user_id: str | None) -> list[DocumentContext] | None:
        if not user_id:
            return None
        records = await self.documents.list_for_user(
            user_id,
            status=ProcessingStatus.COMPLETED,
            limit=self.documents_limit,
        )
        contexts = [
            DocumentContext(
                file_name=doc.file_name,
                category=doc.category.value,
                summary=doc.analysis.summary if doc.analysis else None,
                key_findings=doc.analysis.key_findings if doc.analysis else [],
                financial_metrics=doc.analysis.financial_metrics if doc.analysis else {},
            )
            for doc in records
        ]
        return contexts or None

    async def gather_context(
        self,
        session: ChatSession,
        symbol: str | None,
        user_id: str | None,
    ) -> ChatContext:
        company, portfolio, documents, history = await asyncio.gather(
            self._safe("company", self._company_context(symbol)),
            self._safe("portfolio", self._portfolio_context(user_id)),
            self._safe("documents", self._document_context(user_id)),
            self._safe("history", self._history(session)),
        )
        return ChatContext(
            company=company,
            portfolio=portfolio,
            documents=documents,
            history=history or [],
        )

    async def _history(self, session: ChatSession) -> list[ChatMessage]:
        if self.history_window <= 0:
            return []
        return session.messages[-self.history_window:]

    # -------------------------------------------------------------------------
    # Web search
    # -------------------------------------------------------------------------

    async def needs_web_search(self, message: str, company: CompanyContext | None) -> bool:
        """Classifier call; any failure means no search."""
        try:
            completion = await self.llm.complete(
                build_classifier_prompt(message, company),
                TaskType.SEARCH_CLASSIFIER,
            )
        except Exception as e:
            logger.warning(f"Search classifier failed, skipping web search: {e}")
            return False
        return "YES" in completion.text.upper()

    async def run_web_search(self, message: str, company: CompanyContext | None) -> list[SearchResult]:
        query = f"{company.name} {company.symbol} {message}" if company else message
        try:
            return await self.search.search(query, self.max_search_results)
        except Exception as e:
            logger.warning(f"Web search raised, continuing without results: {e}")
            return []

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    async def _resolve_session(
        self,
        session_id: str | None,
        symbol: str | None,
        user_id: str | None,
    ) -> ChatSession:
        if session_id:
            session = await self.sessions.get(session_id)
            if session is not None:
                return session
        return ChatSession(
            session_id=session_id or str(uuid.uuid4()),
            symbol=symbol or GENERAL_SYMBOL,
            user_id=user_id,
        )

    async def new_session(self, symbol: str | None = None, user_id: str | None = None) -> NewSessionResponse:
        symbol = (symbol or "").strip().upper() or None
        session = ChatSession(
            session_id=str(uuid.uuid4()),
            symbol=symbol or GENERAL_SYMBOL,
            user_id=user_id,
        )
        await self.sessions.save(session)

        company_name = None
        if symbol:
            record = await self.companies.get(symbol)
            company_name = record.metrics.name if record else None

        return NewSessionResponse(
            session_id=session.session_id,
            symbol=session.symbol,
            company_name=company_name,
        )

    async def get_session(self, session_id: str) -> ChatSession:
        session = await self.sessions.get(session_id)
        if session is None:
            raise NotFoundError(message="Chat session not found")
        return session

    async def delete_session(self, session_id: str) -> None:
        if not await self.sessions.delete(session_id):
            raise NotFoundError(message="Chat session not found")

    # -------------------------------------------------------------------------
    # Chat turn
    # -------------------------------------------------------------------------

    async def chat(
        self,
        message: str,
        symbol: str | None = None,
        session_id: str | None = None,
        user_id: str | None = None,
    ) -> ChatReply:
        if not message or not message.strip():
            raise BadRequestError(message="Message is required")
        symbol = (symbol or "").strip().upper() or None

        session = await self._resolve_session(session_id, symbol, user_id)
        context = await self.gather_context(session, symbol, user_id)

        used_web_search = await self.needs_web_search(message, context.company)
        search_sources: list[Source] = []
        if used_web_search:
            results = await self.run_web_search(message, context.company)
            if results:
                context.web_results = results
                search_sources = [Source(name=r.source or r.title, url=r.url) for r in results]

        prompt = compose_prompt(message, context)
        completion = await self.llm.complete(prompt, TaskType.CHAT)
        answer, chart, sources = parse_chat_response(completion.text)
        sources = sources + search_sources

        user_ts = self._next_timestamp(session.messages[-1].timestamp if session.messages else None)
        assistant_ts = self._next_timestamp(user_ts)
        session.messages.append(ChatMessage(role="user", content=message, timestamp=user_ts))
        session.messages.append(
            ChatMessage(
                role="assistant",
                content=answer,
                timestamp=assistant_ts,
                used_web_search=used_web_search,
                sources=sources,
                chart=chart,
            )
        )
        session.updated_at = assistant_ts
        await self.sessions.save(session)

        logger.info(
            f"Chat turn completed for session {session.session_id}",
            extra={
                "symbol": session.symbol,
                "used_web_search": used_web_search,
                "has_company": context.company is not None,
                "has_portfolio": context.portfolio is not None,
                "documents": len(context.documents or []),
            },
        )
        return ChatReply(
            session_id=session.session_id,
            answer=answer,
            chart=chart,
            sources=sources,
            used_web_search=used_web_search,
            timestamp=assistant_ts,
        )

    @staticmethod
    def _next_timestamp(previous: datetime | None) -> datetime:
        """Current time, nudged forward so session timestamps strictly increase."""
        now = utc_now()
        if previous is not None and now <= previous:
            return previous + TIMESTAMP_STEP
        return now
