"""
FastAPI Application Entry Point.

This module creates and configures the FastAPI application instance.
It handles:
1. Application initialization
2. Router registration
3. Middleware configuration (security headers, audit log, CORS)
4. Exception handlers (RouterException hierarchy -> JSON bodies)
5. Startup/shutdown events

Run with: uvicorn friction_router.api.main:app --reload
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from friction_router import __version__
from friction_router.api.routes import (
    admin_router,
    appointments_router,
    backup_router,
    chat_router,
    health_router,
    youtube_router,
)
from friction_router.core.audit import AuditMiddleware, SecurityHeadersMiddleware
from friction_router.core.config import get_settings
from friction_router.core.exceptions import RateLimitExceeded, RouterException, StoreUnavailable
from friction_router.core.logging_config import get_logger, setup_logging
from friction_router.llm.client import close_dispatcher
from friction_router.services.youtube_service import close_shared_client
from friction_router.store import get_store, reset_store
from friction_router.store.sql import SQLKeyValueStore


# Initialize logging before anything else
settings = get_settings()
setup_logging(settings.log_level, settings.log_dir)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    - Startup: log effective limits, purge expired store rows
    - Shutdown: release store connections and outbound HTTP sessions
    """
    logger.info(f"Starting {settings.app_name} {__version__} in {settings.app_env} mode")
    logger.info(f"AI enabled: {settings.ai_enabled}")
    logger.info(
        f"Admission: user_burst={settings.user_burst_limit} ip_burst={settings.ip_burst_limit} "
        f"per {settings.burst_window_seconds}s, daily={settings.daily_limit} ({settings.reset_timezone})"
    )
    if not settings.google_client_id:
        logger.warning("GOOGLE_CLIENT_ID is not set; every authenticated request will fail")

    store = get_store()
    if isinstance(store, SQLKeyValueStore):
        try:
            store.purge_expired()
        except StoreUnavailable as e:
            logger.error(f"Failed to purge expired entries: {e}")

    yield  # Application runs here

    logger.info(f"Shutting down {settings.app_name}")
    reset_store()
    close_dispatcher()
    close_shared_client()


app = FastAPI(
    title="Friction Router API",
    description="""
    Authenticated, rate-limited gateway to several LLM providers.

    ## Features

    - **Identity**: Google ID tokens verified and cached per instance
    - **Admission control**: per-user and per-IP burst windows plus a daily quota, fail-closed
    - **Providers**: Gemini, Claude, GPT, Grok, Perplexity (with citations), Llama via Groq
    - **Kill switch**: AI_ENABLED pauses every model call without a redeploy
    - **Extras**: encrypted backups, appointment extraction, admin usage views, YouTube proxy
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ============================================================
# Middleware Configuration (Order matters!)
# ============================================================

app.add_middleware(SecurityHeadersMiddleware)

if settings.enable_audit_logging:
    app.add_middleware(AuditMiddleware)
    logger.info("Audit logging middleware enabled")

# Browser clients call from other origins; preflight is answered here.
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# ============================================================
# Exception Handlers
# ============================================================

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle admission denials with a Retry-After header."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"Retry-After": str(exc.retry_after)}
    )


@app.exception_handler(RouterException)
async def router_exception_handler(request: Request, exc: RouterException):
    """Handle all custom router exceptions."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed query parameters are client errors (400, not 422)."""
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()))
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "message": first.get("msg", "Invalid request"),
            "details": f"field={field}" if field else None,
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Handle uncaught exceptions globally.

    Detailed error information is only included in development mode.
    """
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "details": str(exc) if settings.is_development() else None,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


# ============================================================
# Routers
# ============================================================

app.include_router(health_router)
app.include_router(chat_router)
app.include_router(backup_router)
app.include_router(admin_router)
app.include_router(appointments_router)
app.include_router(youtube_router)


@app.get("/", include_in_schema=False)
async def root():
    return {
        "message": "Friction Router API",
        "version": __version__,
        "documentation": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "friction_router.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development()
    )
