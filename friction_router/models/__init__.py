"""
Models module - Pydantic schemas and plain data types.

This module defines:
- Request models: Input validation for API endpoints
- Response models: Output formatting for API responses
- Internal models: Data transfer objects between layers
"""
from friction_router.models.auth import VerifiedIdentity
from friction_router.models.chat import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    HealthResponse,
    ErrorResponse,
)

__all__ = [
    "VerifiedIdentity",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "HealthResponse",
    "ErrorResponse",
]
