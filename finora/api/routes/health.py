"""Health check endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from finora.api.dependencies import get_container
from finora.container import ServiceContainer
from finora.core.data_helpers import utc_now
from finora.schemas.common import HealthResponse


router = APIRouter(prefix="/health")


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the API and its record store.",
)
async def health_check(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> HealthResponse:
    checks = {
        "store": await container.store.healthcheck(),
        "document_worker": container.document_worker.running,
    }
    status = "healthy" if all(checks.values()) else "degraded"

    return HealthResponse(
        status=status,
        version=container.settings.app_version,
        timestamp=utc_now(),
        checks=checks,
    )
