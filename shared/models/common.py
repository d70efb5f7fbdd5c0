"""Common Pydantic models shared across services."""

from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    """Health status enum."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class ServiceInfo(BaseModel):
    """Liveness payload."""

    model_config = ConfigDict(use_enum_values=True)

    status: HealthStatus = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    environment: str = Field(..., description="Deployment environment")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")


class ReadinessInfo(BaseModel):
    """Readiness payload with per-dependency health."""

    model_config = ConfigDict(use_enum_values=True)

    status: str = Field(..., description="ready or not_ready")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    checks: Dict[str, HealthStatus] = Field(
        default_factory=dict, description="Dependency health status"
    )
