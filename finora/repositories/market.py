"""Market snapshot repository."""

from __future__ import annotations

from typing import Optional

from finora.cache.store import DocumentStore
from finora.schemas.market import MarketMovers

COLLECTION = "market"
MOVERS_KEY = "top_movers"


class MarketRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_movers(self) -> Optional[MarketMovers]:
        data = await self.store.get(COLLECTION, MOVERS_KEY)
        if data is None:
            return None
        return MarketMovers.model_validate(data)

    async def save_movers(self, movers: MarketMovers) -> MarketMovers:
        await self.store.put(COLLECTION, MOVERS_KEY, movers.model_dump(mode="json"))
        return movers
