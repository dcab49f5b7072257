"""Company data routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from finora.api.dependencies import get_container
from finora.container import ServiceContainer
from finora.schemas.company import CompanyListResponse, CompanyResponse


router = APIRouter()


@router.get(
    "/company/{symbol}",
    response_model=CompanyResponse,
    summary="Get company data",
    description="Canonical company record, served from the store while fresh and analyzed.",
)
async def get_company(
    symbol: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> CompanyResponse:
    view = await container.company_data.get_company_data(symbol)
    message = "Data retrieved from cache" if view.cached else "Data fetched from provider"
    return CompanyResponse(message=message, data=view)


@router.get(
    "/company/{symbol}/refresh",
    response_model=CompanyResponse,
    summary="Force refresh company data",
)
async def refresh_company(
    symbol: str,
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> CompanyResponse:
    view = await container.company_data.refresh_company_data(symbol)
    return CompanyResponse(message="Data refreshed successfully", data=view)


@router.get(
    "/companies",
    response_model=CompanyListResponse,
    summary="List stored companies",
)
async def list_companies(
    container: Annotated[ServiceContainer, Depends(get_container)],
    limit: int = Query(default=100, ge=1, le=100),
) -> CompanyListResponse:
    companies = await container.company_data.list_companies(limit=limit)
    return CompanyListResponse(count=len(companies), data=companies)
