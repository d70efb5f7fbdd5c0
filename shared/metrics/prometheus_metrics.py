"""Prometheus metrics definitions and helpers.

Provides metric definitions for the marketplace order flow, notifications
and uploads.
"""

from functools import lru_cache
from typing import Callable

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    REGISTRY,
    CollectorRegistry,
)


class MarketplaceMetrics:
    """Order lifecycle and marketplace metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize marketplace metrics.

        Args:
            registry: Prometheus registry to use
        """
        # Orders placed
        self.orders_placed = Counter(
            "marketplace_orders_placed_total",
            "Total number of orders placed",
            ["payment_method"],
            registry=registry,
        )

        # Order value
        self.order_value = Histogram(
            "marketplace_order_value",
            "Order total amount",
            buckets=[100, 200, 300, 500, 750, 1000, 1500, 2500, 5000],
            registry=registry,
        )

        # Status transitions
        self.status_transitions = Counter(
            "marketplace_order_status_transitions_total",
            "Order status transitions applied",
            ["from_status", "to_status", "actor"],
            registry=registry,
        )

        # Lost compare-and-set races
        self.transition_conflicts = Counter(
            "marketplace_order_transition_conflicts_total",
            "Order transitions rejected because the order changed concurrently",
            ["actor"],
            registry=registry,
        )

        # Delivery assignment
        self.delivery_assignments = Counter(
            "marketplace_delivery_assignments_total",
            "Delivery assignment outcomes",
            ["outcome"],
            registry=registry,
        )

        # OTP email delivery
        self.otp_emails = Counter(
            "marketplace_otp_emails_total",
            "Verification emails by result",
            ["result"],
            registry=registry,
        )

        # Image uploads
        self.image_uploads = Counter(
            "marketplace_image_uploads_total",
            "Image uploads by result",
            ["result"],
            registry=registry,
        )


@lru_cache()
def setup_metrics() -> MarketplaceMetrics:
    """Create the process-wide metric instances (registered once).

    Returns:
        MarketplaceMetrics bound to the default registry
    """
    return MarketplaceMetrics()


def get_metrics_handler() -> Callable[[], bytes]:
    """Get metrics handler for HTTP endpoint.

    Returns:
        Function that generates Prometheus metrics output
    """

    def metrics_handler() -> bytes:
        return generate_latest(REGISTRY)

    return metrics_handler
