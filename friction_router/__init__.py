"""Friction Router - authenticated, rate-limited gateway to several LLM providers."""

__version__ = "1.0.0"
