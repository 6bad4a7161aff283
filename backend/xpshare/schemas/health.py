"""Health check schemas."""

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field


class HealthCheckResponse(BaseModel):
    """Connectivity of the backing services."""

    status: Literal["ok", "degraded"]
    database: str
    redis: Optional[str] = None
    services: Dict[str, str] = Field(default_factory=dict)
