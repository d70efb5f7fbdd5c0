"""FastAPI service for the food delivery marketplace.

This package provides REST API endpoints for customers ordering from
restaurants, vendors managing menus and orders, and delivery partners
fulfilling deliveries.
"""

__version__ = "0.1.0"
