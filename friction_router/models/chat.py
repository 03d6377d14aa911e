"""
Request and Response models for the Chat API.

These Pydantic models define the contract between client and server.
The raw `messages` list is deliberately loose (`List[Any]`): clients send
arbitrary shapes, and normalization (filtering, role folding, clamping)
happens in the service layer rather than failing the whole request.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatMessage:
    """
    A normalized conversation turn.

    Built once per request from raw client input; never persisted.
    """
    role: Literal["user", "assistant"]
    content: str

    def to_dict(self) -> dict:
        """Convert to the OpenAI-style {role, content} shape."""
        return {"role": self.role, "content": self.content}


class ChatRequest(BaseModel):
    """
    Request model for POST /api/chat.

    Attributes:
        model: Provider selector (gemini, claude, gpt, grok, perplexity, llama)
        messages: Raw conversation turns, oldest first
    """
    model: str = Field(
        ...,
        min_length=1,
        description="Provider selector",
        examples=["gemini"]
    )
    messages: List[Any] = Field(
        ...,
        description="Conversation turns as {role, content} objects, oldest first"
    )


class ChatResponse(BaseModel):
    """Response model for POST /api/chat."""
    response: str = Field(..., description="The generated answer")


class HealthResponse(BaseModel):
    """Response model for the /health endpoint."""
    status: str = Field(default="healthy")
    version: str
    timestamp: datetime = Field(default_factory=_utcnow)
    store: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str
    message: str
    details: Optional[str] = None
