"""Company records repository, keyed by uppercase symbol."""

from __future__ import annotations

from typing import Optional

from finora.cache.store import DocumentStore
from finora.schemas.company import CompanyRecord

COLLECTION = "companies"


class CompanyRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, symbol: str) -> Optional[CompanyRecord]:
        """Get a company record by symbol."""
        data = await self.store.get(COLLECTION, symbol.upper())
        if data is None:
            return None
        return CompanyRecord.model_validate(data)

    async def upsert(self, record: CompanyRecord) -> CompanyRecord:
        """Full replace of the record stored under its symbol."""
        await self.store.put(COLLECTION, record.symbol, record.model_dump(mode="json"))
        return record

    async def delete(self, symbol: str) -> bool:
        return await self.store.delete(COLLECTION, symbol.upper())

    async def list_all(self) -> list[CompanyRecord]:
        """All stored companies, newest fetch first."""
        records = [CompanyRecord.model_validate(d) for d in await self.store.scan(COLLECTION)]
        records.sort(key=lambda r: r.fetched_at, reverse=True)
        return records
