"""
Service wiring.

Every external client (store, market data provider, LLM, web search) is an
explicitly constructed object owned by one ServiceContainer. The API lifespan
builds the container, starts the document workers and closes the clients;
tests pass their own fakes for any of the clients.
"""

from __future__ import annotations

from dataclasses import dataclass

from finora.cache.store import DocumentStore, MemoryStore, ValkeyStore
from finora.core.config import Settings
from finora.core.logging import get_logger
from finora.repositories import (
    ChatSessionRepository,
    CompanyRepository,
    DocumentRepository,
    MarketRepository,
    PortfolioRepository,
)
from finora.services.analysis import AnalysisEngine
from finora.services.chat import ChatOrchestrator
from finora.services.company_data import CompanyDataService
from finora.services.data_providers.alpha_vantage import AlphaVantageClient
from finora.services.documents import DocumentPipeline, DocumentService, DocumentWorker
from finora.services.indicators import IndicatorService
from finora.services.llm.client import LLMClient
from finora.services.market_movers import MarketMoversService
from finora.services.web_search import WebSearchClient

logger = get_logger("container")


@dataclass
class ServiceContainer:
    settings: Settings
    store: DocumentStore
    provider: AlphaVantageClient
    llm: LLMClient
    search: WebSearchClient

    companies: CompanyRepository
    sessions: ChatSessionRepository
    documents: DocumentRepository
    portfolios: PortfolioRepository
    market: MarketRepository

    company_data: CompanyDataService
    analysis: AnalysisEngine
    chat: ChatOrchestrator
    market_movers: MarketMoversService
    indicators: IndicatorService
    document_pipeline: DocumentPipeline
    document_worker: DocumentWorker
    document_service: DocumentService

    async def startup(self) -> None:
        """Start document workers and re-enqueue unfinished documents."""
        self.document_worker.start()
        try:
            await self.document_worker.recover()
        except Exception as e:
            logger.warning(f"Document recovery skipped: {e}")

    async def shutdown(self) -> None:
        await self.document_worker.stop()
        for name, close in (
            ("provider", self.provider.aclose),
            ("llm", self.llm.aclose),
            ("search", self.search.aclose),
            ("store", self.store.close),
        ):
            try:
                await close()
            except Exception as e:
                logger.warning(f"Failed to close {name}: {e}")


def create_store(settings: Settings) -> DocumentStore:
    if settings.store_backend == "memory":
        logger.info("Using in-process memory store")
        return MemoryStore()

    from finora.cache.client import create_valkey_client

    return ValkeyStore(create_valkey_client(settings))


def build_container(
    settings: Settings,
    store: DocumentStore | None = None,
    provider: AlphaVantageClient | None = None,
    llm: LLMClient | None = None,
    search: WebSearchClient | None = None,
) -> ServiceContainer:
    """Construct clients (unless injected), repositories and services."""
    store = store or create_store(settings)
    provider = provider or AlphaVantageClient.from_settings(settings)
    llm = llm or LLMClient.from_settings(settings)
    search = search or WebSearchClient.from_settings(settings)

    companies = CompanyRepository(store)
    sessions = ChatSessionRepository(store, ttl=settings.chat_session_ttl)
    documents = DocumentRepository(store)
    portfolios = PortfolioRepository(store)
    market = MarketRepository(store)

    company_data = CompanyDataService(
        companies,
        provider,
        ttl=settings.company_data_ttl,
        max_chart_points=settings.max_chart_points,
        trend_years=settings.historical_trend_years,
    )
    analysis = AnalysisEngine(
        companies,
        company_data,
        llm,
        data_ttl=settings.company_data_ttl,
        analysis_ttl=settings.analysis_ttl,
    )
    chat = ChatOrchestrator(
        sessions,
        companies,
        portfolios,
        documents,
        llm,
        search,
        history_window=settings.chat_history_window,
        max_search_results=settings.web_search_max_results,
        holdings_limit=settings.portfolio_holdings_limit,
        documents_limit=settings.document_context_limit,
        chart_tail=settings.chat_chart_tail,
    )
    market_movers = MarketMoversService(
        market,
        provider,
        ttl=settings.market_movers_ttl,
        limit=settings.market_movers_limit,
    )
    indicators = IndicatorService(provider)
    pipeline = DocumentPipeline(documents, llm, max_text_chars=settings.document_max_text_chars)
    worker = DocumentWorker(pipeline, concurrency=settings.document_workers)
    document_service = DocumentService(
        documents,
        worker,
        upload_dir=settings.upload_dir,
        max_upload_bytes=settings.max_upload_bytes,
    )

    return ServiceContainer(
        settings=settings,
        store=store,
        provider=provider,
        llm=llm,
        search=search,
        companies=companies,
        sessions=sessions,
        documents=documents,
        portfolios=portfolios,
        market=market,
        company_data=company_data,
        analysis=analysis,
        chat=chat,
        market_movers=market_movers,
        indicators=indicators,
        document_pipeline=pipeline,
        document_worker=worker,
        document_service=document_service,
    )
