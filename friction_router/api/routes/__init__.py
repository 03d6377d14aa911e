"""
API Routes module - Endpoint definitions.

Each file in this module defines routes for a specific domain:
- chat.py         : Metered LLM endpoint
- health.py       : Liveness and readiness probes
- backup.py       : Encrypted history backup
- admin.py        : Anonymized usage views
- appointments.py : Appointment extraction
- youtube.py      : Video catalog proxy
"""
from friction_router.api.routes.admin import router as admin_router
from friction_router.api.routes.appointments import router as appointments_router
from friction_router.api.routes.backup import router as backup_router
from friction_router.api.routes.chat import router as chat_router
from friction_router.api.routes.health import router as health_router
from friction_router.api.routes.youtube import router as youtube_router

__all__ = [
    "admin_router",
    "appointments_router",
    "backup_router",
    "chat_router",
    "health_router",
    "youtube_router",
]
