"""Paper-trading portfolios repository, keyed by user id."""

from __future__ import annotations

from typing import Optional

from finora.cache.store import DocumentStore
from finora.schemas.portfolio import Portfolio

COLLECTION = "portfolios"


class PortfolioRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, user_id: str) -> Optional[Portfolio]:
        data = await self.store.get(COLLECTION, user_id)
        if data is None:
            return None
        return Portfolio.model_validate(data)

    async def save(self, portfolio: Portfolio) -> Portfolio:
        await self.store.put(COLLECTION, portfolio.user_id, portfolio.model_dump(mode="json"))
        return portfolio
