"""Shared Pydantic models for the marketplace services."""

from .common import (
    HealthStatus,
    ReadinessInfo,
    ServiceInfo,
)

__all__ = [
    "HealthStatus",
    "ReadinessInfo",
    "ServiceInfo",
]
