"""Uploaded documents repository.

Extracted text is large, so it lives in its own collection and is only loaded
by the pipeline stage that needs it.
"""

from __future__ import annotations

from typing import Iterable, Optional

from finora.cache.store import DocumentStore
from finora.core.data_helpers import utc_now
from finora.schemas.documents import (
    DocumentCategory,
    DocumentRecord,
    ProcessingStatus,
)

COLLECTION = "documents"
TEXT_COLLECTION = "document_texts"


class DocumentRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, document_id: str) -> Optional[DocumentRecord]:
        data = await self.store.get(COLLECTION, document_id)
        if data is None:
            return None
        return DocumentRecord.model_validate(data)

    async def save(self, document: DocumentRecord) -> DocumentRecord:
        """Persist the record, stamping updated_at."""
        document.updated_at = utc_now()
        await self.store.put(COLLECTION, document.document_id, document.model_dump(mode="json"))
        return document

    async def delete(self, document_id: str) -> bool:
        await self.store.delete(TEXT_COLLECTION, document_id)
        return await self.store.delete(COLLECTION, document_id)

    async def list_for_user(
        self,
        user_id: str,
        category: Optional[DocumentCategory] = None,
        status: Optional[ProcessingStatus] = None,
        limit: Optional[int] = None,
    ) -> list[DocumentRecord]:
        """A user's documents, newest upload first."""
        documents = [
            doc
            for doc in await self.list_all()
            if doc.user_id == user_id
            and (category is None or doc.category == category)
            and (status is None or doc.processing_status == status)
        ]
        return documents[:limit] if limit is not None else documents

    async def list_all(self) -> list[DocumentRecord]:
        documents = [DocumentRecord.model_validate(d) for d in await self.store.scan(COLLECTION)]
        documents.sort(key=lambda d: d.uploaded_at, reverse=True)
        return documents

    async def list_by_status(self, statuses: Iterable[ProcessingStatus]) -> list[DocumentRecord]:
        wanted = set(statuses)
        return [doc for doc in await self.list_all() if doc.processing_status in wanted]

    # Extracted text

    async def get_text(self, document_id: str) -> Optional[str]:
        data = await self.store.get(TEXT_COLLECTION, document_id)
        if data is None:
            return None
        return data.get("text")

    async def save_text(self, document_id: str, text: str) -> None:
        await self.store.put(TEXT_COLLECTION, document_id, {"document_id": document_id, "text": text})
