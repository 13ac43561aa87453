"""Health ping schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    HEALTHY = "healthy"


class HealthResponse(BaseModel):
    """Liveness answer of the booking engine."""

    status: HealthStatus
    service: str = Field(..., description="Service name reported in traces and metrics")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(..., description="Server time, naive UTC")
