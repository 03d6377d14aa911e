"""
Chat Routes - the metered LLM endpoint.

POST /api/chat runs the full guard chain before any provider is called:

    kill switch (503) -> body cap (413) -> identity (401) -> body (400)
    -> model access (403) -> admission (429) -> provider (500/502)

Usage analytics are recorded after the response is sent.
"""
from fastapi import APIRouter, BackgroundTasks, Depends

from friction_router.api.deps import (
    chat_payload,
    client_ip,
    get_chat_service,
    get_recorder,
    limit_chat_body,
    require_ai_enabled,
    require_identity,
)
from friction_router.core.logging_config import get_logger
from friction_router.models.auth import VerifiedIdentity
from friction_router.models.chat import ChatRequest, ChatResponse, ErrorResponse
from friction_router.services.analytics import UsageEvent, UsageRecorder
from friction_router.services.chat_service import ChatService, resolve_model

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["Chat"],
    responses={
        401: {"model": ErrorResponse, "description": "Missing or invalid credential"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        503: {"model": ErrorResponse, "description": "AI paused"},
    },
)


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Send a conversation to an LLM provider",
    dependencies=[Depends(require_ai_enabled), Depends(limit_chat_body)],
)
def send_chat(
    background_tasks: BackgroundTasks,
    identity: VerifiedIdentity = Depends(require_identity),
    payload: ChatRequest = Depends(chat_payload),
    ip: str = Depends(client_ip),
    service: ChatService = Depends(get_chat_service),
    recorder: UsageRecorder = Depends(get_recorder),
) -> ChatResponse:
    """
    Answer the last user turn with the selected provider.

    Body: {"model": "gemini" | "claude" | "gpt" | "grok" | "perplexity" | "llama",
           "messages": [{"role": "user" | "assistant", "content": "..."}]}

    A plain `def` so the provider round trip runs in the thread pool.
    """
    answer = service.handle(identity, ip, payload)
    background_tasks.add_task(
        recorder.record,
        UsageEvent(user_id=identity.user_id, model=resolve_model(payload.model)),
    )
    return ChatResponse(response=answer)
