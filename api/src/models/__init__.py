"""Data models for the marketplace API.

This package contains Pydantic models for request/response validation,
MongoDB documents, and domain rules (order transitions, fees, profile
completion).
"""
