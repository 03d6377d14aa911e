"""
LLM module - Language model integration.

This module handles all provider interactions:
- Request shaping per vendor
- Response text extraction
- Typed failures (ConfigurationError, ProviderError, EmptyResponse)
"""
from friction_router.llm.client import Provider, ProviderDispatcher, get_dispatcher

__all__ = [
    "Provider",
    "ProviderDispatcher",
    "get_dispatcher",
]
