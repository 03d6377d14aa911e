"""
API module - FastAPI routes and HTTP handling.

This module handles:
- Guard dependencies (kill switch, size caps, identity)
- Response formatting
- Error handling
- Route definitions
"""
