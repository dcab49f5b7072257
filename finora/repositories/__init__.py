"""Repositories mapping pydantic records onto the document store."""

from .chat_sessions import ChatSessionRepository
from .companies import CompanyRepository
from .documents import DocumentRepository
from .market import MarketRepository
from .portfolios import PortfolioRepository

__all__ = [
    "ChatSessionRepository",
    "CompanyRepository",
    "DocumentRepository",
    "MarketRepository",
    "PortfolioRepository",
]
