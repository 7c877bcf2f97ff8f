"""Data models for the FastAPI service.

This package contains Pydantic models for request/response validation,
the business entity schemas, and the tables backing them.
"""
