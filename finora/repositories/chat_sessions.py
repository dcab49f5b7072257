"""Chat sessions repository.

Sessions are stored with an inactivity TTL that restarts on every save, so an
untouched session simply disappears from the store once it expires.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from finora.cache.store import DocumentStore
from finora.schemas.chat import ChatSession

COLLECTION = "chat_sessions"


class ChatSessionRepository:
    def __init__(self, store: DocumentStore, ttl: timedelta):
        self.store = store
        self.ttl = ttl

    async def get(self, session_id: str) -> Optional[ChatSession]:
        data = await self.store.get(COLLECTION, session_id)
        if data is None:
            return None
        return ChatSession.model_validate(data)

    async def save(self, session: ChatSession) -> ChatSession:
        await self.store.put(
            COLLECTION,
            session.session_id,
            session.model_dump(mode="json"),
            ttl=self.ttl,
        )
        return session

    async def delete(self, session_id: str) -> bool:
        return await self.store.delete(COLLECTION, session_id)
