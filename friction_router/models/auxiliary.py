"""
Request and Response models for the auxiliary endpoints.

- Encrypted backup (opaque client-side ciphertext)
- Appointment extraction
- Admin analytics
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================
# Encrypted backup
# ============================================================

class BackupPayload(BaseModel):
    """
    An encrypted chat-history blob.

    The server stores these fields verbatim and never attempts decryption;
    key derivation and encryption happen on the client.
    """
    ciphertext: str = Field(..., min_length=1, description="Base64 ciphertext")
    iv: str = Field(..., min_length=1, description="Base64 initialization vector")
    salt: Optional[str] = Field(default=None, description="Base64 key-derivation salt")
    version: int = Field(default=1, ge=1, description="Client envelope format version")


class BackupRecord(BackupPayload):
    """A stored backup, as returned to its owner."""
    updated_at: str


class BackupSaved(BaseModel):
    ok: bool = True
    updated_at: str


# ============================================================
# Appointment extraction
# ============================================================

class AppointmentRequest(BaseModel):
    """Either free text or a base64-encoded image must be supplied."""
    text: Optional[str] = Field(default=None, description="Free text to parse")
    image: Optional[str] = Field(default=None, description="Base64 image (no data: prefix required)")
    mimeType: Optional[str] = Field(default=None, description="Image MIME type, e.g. image/png")


class AppointmentFields(BaseModel):
    title: Optional[str] = None
    date: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    time: Optional[str] = Field(default=None, description="HH:MM, 24h")
    venueName: Optional[str] = None
    address: Optional[str] = None
    contactName: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


class AppointmentResponse(BaseModel):
    """
    Best-effort extraction result.

    Always returned with HTTP 200; `error` explains why the heuristic
    fallback was used.
    """
    fields: AppointmentFields
    confidence: Optional[Dict[str, Any]] = None
    source: str = Field(..., description="'ai' or 'heuristic'")
    error: Optional[str] = None


# ============================================================
# Admin analytics
# ============================================================

class DayStats(BaseModel):
    date: str
    messages: int
    models: Dict[str, int]
    uniqueUsers: str = Field(..., description="Bucketed count, e.g. '10-50'")


class StatsResponse(BaseModel):
    days: List[DayStats]


class UserActivityItem(BaseModel):
    id: str = Field(..., description="Salted hash, never the raw user id")
    firstSeen: Optional[str] = None
    lastSeen: Optional[str] = None
    messages: int = 0


class UserListResponse(BaseModel):
    users: List[UserActivityItem]
    approximateTotal: str
