"""
Chat Service - Business logic for one chat completion.

This service orchestrates the chat flow for an already-verified caller:
1. Normalizes and validates the conversation
2. Checks model access (admin-only models)
3. Asks the admission controller for an allow/deny decision
4. Dispatches to the selected provider

Validation and model access run before any store write, so a malformed or
forbidden request never consumes quota. A deny short-circuits before the
provider call.
"""
from typing import Iterable, Optional

from friction_router.core.config import Settings
from friction_router.core.exceptions import Forbidden, ValidationError
from friction_router.core.logging_config import get_logger, short_id
from friction_router.core.rate_limiter import AdmissionController
from friction_router.core.validators import normalize_messages, validate_conversation
from friction_router.llm.client import Provider, ProviderDispatcher
from friction_router.models.auth import VerifiedIdentity
from friction_router.models.chat import ChatRequest

logger = get_logger(__name__)


class ChatService:
    """
    Service for handling chat requests.

    Example:
        >>> service = ChatService(settings, dispatcher, admission)
        >>> service.handle(identity, "203.0.113.7", ChatRequest(model="gpt", messages=[...]))
        'Here is what I found...'
    """

    def __init__(
        self,
        settings: Settings,
        dispatcher: ProviderDispatcher,
        admission: AdmissionController,
    ):
        self.settings = settings
        self.dispatcher = dispatcher
        self.admission = admission

    def handle(self, identity: VerifiedIdentity, client_ip: str, request: ChatRequest) -> str:
        """
        Process a chat request and return the provider's answer.

        Raises:
            ValidationError: Empty conversation, last turn not from user, unknown model
            Forbidden: Admin-only model requested by a non-admin
            RateLimitExceeded: Admission denied
            ConfigurationError / ProviderError: Provider failure
        """
        model = resolve_model(request.model)

        messages = normalize_messages(request.messages, self.settings.max_message_chars)
        validate_conversation(messages)

        check_model_access(identity, model, self.settings.admin_only_models)

        decision = self.admission.check_admission(identity, client_ip)
        if not decision.allowed:
            raise decision.to_exception()

        logger.info(
            f"Dispatching chat: user={short_id(identity.user_id)} model={model} turns={len(messages)}"
        )
        return self.dispatcher.send(model, messages)


def resolve_model(raw_model: Optional[str]) -> str:
    """Map a client model selector onto a known provider, or raise 400."""
    model = (raw_model or "").strip().lower()
    if model not in Provider.values():
        raise ValidationError(f"Unknown model: {raw_model}", field="model")
    return model


def check_model_access(identity: VerifiedIdentity, model: str, admin_only_models: Iterable[str]) -> None:
    """
    Enforce admin-only models.

    Independent of quota: a non-admin is refused even with quota left.
    """
    if model in set(admin_only_models) and not identity.is_admin:
        logger.warning(f"Restricted model refused: user={short_id(identity.user_id)} model={model}")
        raise Forbidden(f"Model '{model}' is restricted to administrators.")
