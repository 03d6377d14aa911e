"""
Request dependencies - wiring between HTTP and the service layer.

Routes declare their guards as FastAPI dependencies. Route-level
`dependencies=[...]` are resolved first and in order, then the
endpoint's own parameters in signature order, which fixes the guard
order for chat:

    kill switch -> body size cap -> identity -> body parse -> handler

The body is parsed by a dependency rather than a typed body parameter so
that an unauthenticated caller always gets 401, never a parse error.

Tests swap any provider here through `app.dependency_overrides`.
"""
import json
from typing import Any, Optional, Type, TypeVar

from fastapi import Depends, Header, Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from friction_router.core.clock import Clock, SystemClock
from friction_router.core.config import Settings, get_settings
from friction_router.core.exceptions import Forbidden, RequestTooLarge, ServiceDisabled, ValidationError
from friction_router.core.logging_config import get_logger, short_id
from friction_router.core.rate_limiter import AdmissionController
from friction_router.core.validators import extract_bearer_token, get_client_ip
from friction_router.llm.client import ProviderDispatcher, get_dispatcher
from friction_router.models.auth import VerifiedIdentity
from friction_router.models.auxiliary import AppointmentRequest, BackupPayload
from friction_router.models.chat import ChatRequest
from friction_router.services.analytics import AnalyticsReader, UsageRecorder
from friction_router.services.appointment_service import AppointmentService
from friction_router.services.backup_service import BackupService
from friction_router.services.chat_service import ChatService
from friction_router.services.identity import IdentityVerifier, get_identity_verifier
from friction_router.services.youtube_service import YouTubeClient, get_shared_client
from friction_router.store import KeyValueStore, get_store

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_clock = SystemClock()


# ============================================================
# Infrastructure providers
# ============================================================

def get_clock() -> Clock:
    return _clock


def get_admission_controller(
    settings: Settings = Depends(get_settings),
    store: KeyValueStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> AdmissionController:
    return AdmissionController.from_settings(settings, store, clock)


def get_chat_service(
    settings: Settings = Depends(get_settings),
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
    admission: AdmissionController = Depends(get_admission_controller),
) -> ChatService:
    return ChatService(settings, dispatcher, admission)


def get_recorder(
    settings: Settings = Depends(get_settings),
    store: KeyValueStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> UsageRecorder:
    return UsageRecorder(
        store,
        clock=clock,
        salt=settings.analytics_salt,
        timezone=settings.reset_timezone,
        retention_days=settings.analytics_retention_days,
        user_retention_days=settings.user_retention_days,
    )


def get_analytics_reader(
    settings: Settings = Depends(get_settings),
    store: KeyValueStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> AnalyticsReader:
    return AnalyticsReader(store, clock=clock, timezone=settings.reset_timezone)


def get_backup_service(
    settings: Settings = Depends(get_settings),
    store: KeyValueStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> BackupService:
    return BackupService(store, clock=clock, retention_days=settings.backup_retention_days)


def get_appointment_service(dispatcher: ProviderDispatcher = Depends(get_dispatcher)) -> AppointmentService:
    return AppointmentService(dispatcher)


def get_youtube_client(settings: Settings = Depends(get_settings)) -> YouTubeClient:
    return get_shared_client(settings.youtube_api_key)


def client_ip(request: Request, settings: Settings = Depends(get_settings)) -> str:
    peer = request.client.host if request.client else None
    return get_client_ip(request.headers, peer, settings.trusted_proxy_ips)


# ============================================================
# Guards
# ============================================================

def require_ai_enabled(settings: Settings = Depends(get_settings)) -> None:
    """Kill switch: refuse every AI-backed request while AI_ENABLED is off."""
    if not settings.ai_enabled:
        raise ServiceDisabled()


def _enforce_content_length(request: Request, limit: int) -> None:
    raw = request.headers.get("content-length")
    if raw is None:
        return
    try:
        length = int(raw)
    except ValueError:
        raise ValidationError("Invalid Content-Length header")
    if length > limit:
        logger.warning(f"Body rejected: path={request.url.path} length={length} limit={limit}")
        raise RequestTooLarge(limit)


def limit_chat_body(request: Request, settings: Settings = Depends(get_settings)) -> None:
    _enforce_content_length(request, settings.max_body_bytes)


def limit_backup_body(request: Request, settings: Settings = Depends(get_settings)) -> None:
    _enforce_content_length(request, settings.backup_max_bytes)


def limit_appointment_body(request: Request, settings: Settings = Depends(get_settings)) -> None:
    _enforce_content_length(request, settings.appointment_max_bytes)


def require_identity(
    authorization: Optional[str] = Header(default=None),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> VerifiedIdentity:
    """
    Resolve the bearer credential to a verified caller.

    Declared as a plain function so the tokeninfo round trip runs in the
    worker thread pool.
    """
    return verifier.verify(extract_bearer_token(authorization))


def require_admin(identity: VerifiedIdentity = Depends(require_identity)) -> VerifiedIdentity:
    if not identity.is_admin:
        logger.warning(f"Admin endpoint refused: user={short_id(identity.user_id)}")
        raise Forbidden("Administrator access required.")
    return identity


# ============================================================
# Body parsing
# ============================================================

async def read_json_body(request: Request, limit: int) -> Any:
    """
    Read and decode a JSON body, re-checking the size after reading.

    The Content-Length guard cannot see chunked uploads, so the byte
    count is checked again here.
    """
    body = await request.body()
    if len(body) > limit:
        raise RequestTooLarge(limit)
    try:
        return json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Invalid JSON body")


def parse_model(model: Type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(f"Invalid request: {first.get('msg', 'malformed body')}", field=field)


async def chat_payload(request: Request, settings: Settings = Depends(get_settings)) -> ChatRequest:
    data = await read_json_body(request, settings.max_body_bytes)
    if isinstance(data, dict) and not isinstance(data.get("messages"), list):
        raise ValidationError("No messages provided", field="messages")
    return parse_model(ChatRequest, data)


async def backup_payload(request: Request, settings: Settings = Depends(get_settings)) -> BackupPayload:
    return parse_model(BackupPayload, await read_json_body(request, settings.backup_max_bytes))


async def appointment_payload(request: Request, settings: Settings = Depends(get_settings)) -> AppointmentRequest:
    return parse_model(AppointmentRequest, await read_json_body(request, settings.appointment_max_bytes))
