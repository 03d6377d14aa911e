"""
Core module - Configuration and cross-cutting concerns.

This module provides:
- config.py         : Environment-based configuration management
- logging_config.py : Centralized logging setup
- exceptions.py     : Error hierarchy mapped onto HTTP responses
- rate_limiter.py   : Fail-closed admission control
- clock.py / timewindows.py : Injectable time and calendar-day windows
"""
from friction_router.core.config import get_settings, Settings
from friction_router.core.logging_config import setup_logging, get_logger, LoggerMixin

__all__ = [
    "get_settings",
    "Settings",
    "setup_logging",
    "get_logger",
    "LoggerMixin",
]
