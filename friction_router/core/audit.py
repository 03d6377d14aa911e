"""
Audit Middleware - Request/response logging for monitoring.

One log line per request with method, path, status, duration and client
IP. Headers and bodies are never logged: they carry bearer credentials
and conversation content.
"""
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from friction_router.core.config import get_settings
from friction_router.core.logging_config import get_logger
from friction_router.core.validators import get_client_ip

logger = get_logger(__name__)

QUIET_PATHS = ("/health", "/health/ready")


class AuditMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging all requests and responses.

    Adds an X-Response-Time header to every response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        peer = request.client.host if request.client else None
        client_ip = get_client_ip(request.headers, peer, get_settings().trusted_proxy_ips)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                f"REQUEST FAILED: {method} {path} "
                f"client={client_ip} duration={duration:.3f}s error={type(e).__name__}"
            )
            raise

        duration = time.perf_counter() - start_time
        self._log_request(method, path, response.status_code, duration, client_ip)
        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response

    def _log_request(self, method: str, path: str, status_code: int, duration: float, client_ip: str) -> None:
        if path in QUIET_PATHS:
            logger.debug(f"HEALTH: {path} status={status_code} duration={duration:.3f}s")
            return

        if status_code >= 500:
            log_fn = logger.error
        elif status_code >= 400:
            log_fn = logger.warning
        else:
            log_fn = logger.info

        log_fn(
            f"REQUEST: {method} {path} "
            f"status={status_code} duration={duration:.3f}s client={client_ip}"
        )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds nosniff, frame-deny and referrer-policy headers to every response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response
