"""
Internal router - health checks.
"""
from fastapi import APIRouter
from pydantic import BaseModel, Field

router = APIRouter(tags=["internal"])


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(examples=["healthy"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint. Not behind the API key."""
    return HealthResponse(status="healthy")
