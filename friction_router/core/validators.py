"""
Input Validators - Sanitization and validation utilities.

This module provides the request-boundary checks:
- Conversation normalization (filter, role folding, clamping)
- Bearer credential extraction
- Client address resolution
"""
import re
from typing import Any, Iterable, List, Mapping, Optional

from friction_router.core.exceptions import Unauthenticated, ValidationError
from friction_router.core.logging_config import get_logger
from friction_router.models.chat import ChatMessage

logger = get_logger(__name__)

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def sanitize_content(content: str, max_length: int = 8000) -> str:
    """
    Sanitize one message body.

    - Removes null bytes
    - Strips leading/trailing whitespace
    - Limits length

    Internal newlines are preserved; providers rely on them for formatting.
    """
    cleaned = content.replace("\x00", "").strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
    return cleaned


def normalize_messages(raw_messages: List[Any], max_length: int = 8000) -> List[ChatMessage]:
    """
    Build the normalized conversation from raw client input.

    Entries that are not objects, or whose content is not a non-blank
    string, are dropped. Any role other than "assistant" becomes "user".

    Args:
        raw_messages: Client-supplied list
        max_length: Per-message character cap

    Returns:
        List of ChatMessage, possibly empty
    """
    normalized = []
    for item in raw_messages or []:
        if not isinstance(item, Mapping):
            continue
        content = item.get("content")
        if not isinstance(content, str):
            continue
        cleaned = sanitize_content(content, max_length)
        if not cleaned:
            continue
        role = "assistant" if item.get("role") == "assistant" else "user"
        normalized.append(ChatMessage(role=role, content=cleaned))

    dropped = len(raw_messages or []) - len(normalized)
    if dropped:
        logger.debug(f"Dropped {dropped} empty or malformed message(s)")
    return normalized


def validate_conversation(messages: List[ChatMessage]) -> None:
    """
    Reject conversations the providers cannot answer.

    Raises:
        ValidationError: If empty or if the last turn is not from the user
    """
    if not messages:
        raise ValidationError("No messages provided", field="messages")
    if messages[-1].role != "user":
        raise ValidationError("Last message must be from user. Try again.", field="messages")


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Pull the credential out of an Authorization header.

    Raises:
        Unauthenticated: If the header is absent or not a Bearer credential
    """
    match = _BEARER_RE.match((authorization or "").strip())
    token = match.group(1).strip() if match else ""
    if not token:
        raise Unauthenticated("Missing Authorization Bearer token.")
    return token


def get_client_ip(
    headers: Mapping[str, str],
    peer: Optional[str] = None,
    trusted_proxies: Iterable[str] = (),
) -> str:
    """
    Best-known client address.

    Forwarding headers are only honoured when the socket peer is a trusted
    proxy ("*" trusts every peer).

    Priority: CF-Connecting-IP, first X-Forwarded-For hop, socket peer.
    """
    trusted = set(trusted_proxies)
    if not peer or not ("*" in trusted or peer in trusted):
        return peer or "unknown"

    cf_ip = (headers.get("cf-connecting-ip") or "").strip()
    if cf_ip:
        return cf_ip
    forwarded = headers.get("x-forwarded-for") or ""
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    return peer
