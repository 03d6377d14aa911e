"""
Services module - Business logic and orchestration.

Services contain the core application logic:
- No HTTP concerns (those belong in api/)
- No storage details (those belong in store/)
- Orchestrate between identity, admission, providers and analytics
"""
from friction_router.services.analytics import AnalyticsReader, UsageEvent, UsageRecorder
from friction_router.services.appointment_service import AppointmentService
from friction_router.services.backup_service import BackupService
from friction_router.services.chat_service import ChatService
from friction_router.services.identity import IdentityVerifier, get_identity_verifier
from friction_router.services.youtube_service import YouTubeClient

__all__ = [
    "AnalyticsReader",
    "AppointmentService",
    "BackupService",
    "ChatService",
    "IdentityVerifier",
    "UsageEvent",
    "UsageRecorder",
    "YouTubeClient",
    "get_identity_verifier",
]
