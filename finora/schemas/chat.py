"""Chat session schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from finora.core.data_helpers import utc_now


GENERAL_SYMBOL = "GENERAL"


class Source(BaseModel):
    """A cited source."""

    name: str
    url: str = ""


class ChartSpec(BaseModel):
    """Chart the assistant asked the front end to render."""

    type: Literal["line", "bar", "pie"]
    title: str = ""
    labels: list[str] = Field(default_factory=list)
    values: list[float] = Field(default_factory=list)


class ChatMessage(BaseModel):
    """One entry in a session's append-only log."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    used_web_search: bool = False
    sources: list[Source] = Field(default_factory=list)
    chart: ChartSpec | None = None


class ChatSession(BaseModel):
    """Stored chat session, keyed by session id."""

    session_id: str
    symbol: str = GENERAL_SYMBOL
    user_id: str | None = None
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ChatRequest(BaseModel):
    """Chat turn request."""

    message: str = Field(..., description="User message")
    symbol: str | None = Field(default=None, max_length=20)
    session_id: str | None = Field(default=None, max_length=64)

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.upper().strip()
        return v or None


class ChatReply(BaseModel):
    """Assistant reply for one chat turn."""

    ok: bool = True
    session_id: str
    answer: str
    chart: ChartSpec | None = None
    sources: list[Source] = Field(default_factory=list)
    used_web_search: bool = False
    timestamp: datetime


class NewSessionRequest(BaseModel):
    symbol: str | None = Field(default=None, max_length=20)


class NewSessionResponse(BaseModel):
    ok: bool = True
    session_id: str
    symbol: str
    company_name: str | None = None
    message: str = "New chat session created"


class ChatHistoryResponse(BaseModel):
    ok: bool = True
    session_id: str
    symbol: str
    messages: list[ChatMessage]
    created_at: datetime
