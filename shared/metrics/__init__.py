"""Metrics module using Prometheus."""

from .prometheus_metrics import (
    MarketplaceMetrics,
    setup_metrics,
    get_metrics_handler,
)

__all__ = [
    "MarketplaceMetrics",
    "setup_metrics",
    "get_metrics_handler",
]
