"""Chat routes. Anonymous callers are allowed; a token adds portfolio and document context."""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends

from finora.api.dependencies import get_container, get_current_user
from finora.container import ServiceContainer
from finora.core.security import TokenData
from finora.schemas.chat import (
    ChatHistoryResponse,
    ChatReply,
    ChatRequest,
    NewSessionRequest,
    NewSessionResponse,
)
from finora.schemas.common import MessageResponse


router = APIRouter()


@router.post("", response_model=ChatReply, summary="Send a chat message")
async def chat(
    payload: ChatRequest,
    container: Annotated[ServiceContainer, Depends(get_container)],
    user: Annotated[Optional[TokenData], Depends(get_current_user)],
) -> ChatReply:
    return await container.chat.chat(
        payload.message,
        symbol=payload.symbol,
        session_id=payload.session_id,
        user_id=user.sub if user else None,
    )


@router.post("/new", response_model=NewSessionResponse, summary="Start a new chat session")
async def new_session(
    container: Annotated[ServiceContainer, Depends(get_container)],
    user: Annotated[Optional[TokenData], Depends(get_current_user)],
    payload: NewSessionRequest | None = None,
) -> NewSessionResponse:
    symbol = payload.symbol if payload else None
    return await container.chat.new_session(symbol, user_id=user.sub if user else None)


@router.get(
    "/history/{session_id}",
    response_model=ChatHistoryResponse,
    summary="Get chat history",
)
async def get_history(
    session_id: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ChatHistoryResponse:
    session = await container.chat.get_session(session_id)
    return ChatHistoryResponse(
        session_id=session.session_id,
        symbol=session.symbol,
        messages=session.messages,
        created_at=session.created_at,
    )


@router.delete(
    "/history/{session_id}",
    response_model=MessageResponse,
    summary="Delete chat history",
)
async def delete_history(
    session_id: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> MessageResponse:
    await container.chat.delete_session(session_id)
    return MessageResponse(message="Chat history deleted")
