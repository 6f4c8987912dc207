"""
Health Check Endpoints
======================

Liveness probe for container orchestration.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from fastapi import APIRouter, Request, status
from pydantic import BaseModel, Field

from open_crm.infrastructure.config import get_settings
from open_crm.infrastructure.dependencies import get_adapter_of

router = APIRouter()


class HealthStatus(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "degraded", "unhealthy"]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    version: str
    environment: str
    database: str


@router.get(
    "/live",
    response_model=HealthStatus,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Check if the API is alive and responding.",
)
async def liveness(request: Request) -> HealthStatus:
    """Always healthy while the process serves requests; reports the backend kind."""
    settings = get_settings()
    return HealthStatus(
        status="healthy",
        version=settings.api.version,
        environment=settings.environment,
        database=type(get_adapter_of(request.app)).__name__,
    )
