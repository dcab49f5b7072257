"""AI analysis routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from finora.api.dependencies import get_container
from finora.container import ServiceContainer
from finora.schemas.common import MessageResponse
from finora.schemas.company import AnalysisResponse, StoredAnalysisResponse


router = APIRouter()


@router.post(
    "/{symbol}",
    response_model=AnalysisResponse,
    summary="Generate AI analysis",
    description="Returns the stored analysis while fresh, otherwise generates a new one.",
)
async def analyze_company(
    symbol: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> AnalysisResponse:
    result = await container.analysis.analyze_company(symbol)
    message = "Analysis retrieved from cache" if result.cached else "AI analysis generated successfully"
    return AnalysisResponse(message=message, cached=result.cached, symbol=result.symbol, data=result)


@router.get(
    "/{symbol}",
    response_model=StoredAnalysisResponse,
    summary="Get stored analysis",
)
async def get_analysis(
    symbol: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> StoredAnalysisResponse:
    name, analysis = await container.analysis.get_analysis(symbol)
    return StoredAnalysisResponse(symbol=symbol.strip().upper(), name=name, analysis=analysis)


@router.delete(
    "/{symbol}",
    response_model=MessageResponse,
    summary="Delete stored analysis",
)
async def delete_analysis(
    symbol: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> MessageResponse:
    await container.analysis.delete_analysis(symbol)
    return MessageResponse(message="Analysis deleted. Next request will generate fresh analysis.")
