"""Health check API endpoint."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from parley import __version__
from parley.config import get_config

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Service status and whether the model endpoint is configured."""

    status: str = Field(..., examples=["ok"])
    version: str = Field(..., examples=["1.0.0"])
    endpoint_configured: bool
    ai_enabled: bool
    model: str
    prompt_count: int


@router.get("/health", response_model=HealthResponse, summary="Service health")
async def health() -> HealthResponse:
    config = get_config()
    return HealthResponse(
        status="ok" if config.is_endpoint_configured else "degraded",
        version=__version__,
        endpoint_configured=config.is_endpoint_configured,
        ai_enabled=config.ai_enabled,
        model=config.model,
        prompt_count=len(config.prompts),
    )
