"""
Health Check Routes - liveness and readiness probes.

/health answers as long as the process is up. /health/ready also checks
that the key-value store is reachable; without it every chat request
would be refused by the fail-closed admission controller.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from friction_router import __version__
from friction_router.core.logging_config import get_logger
from friction_router.models.chat import HealthResponse
from friction_router.store import KeyValueStore, get_store

logger = get_logger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health"],
)


@router.get("", response_model=HealthResponse, summary="Liveness probe")
async def health_check() -> HealthResponse:
    logger.debug("Health check requested")
    return HealthResponse(status="healthy", version=__version__)


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness probe",
    responses={503: {"model": HealthResponse, "description": "Store unreachable"}},
)
def readiness_check(store: KeyValueStore = Depends(get_store)):
    """Returns 503 when the store cannot be reached."""
    if store.check_connection():
        return HealthResponse(status="ready", version=__version__, store="ok")

    logger.warning("Readiness check failed: store unreachable")
    body = HealthResponse(status="degraded", version=__version__, store="unavailable")
    return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
