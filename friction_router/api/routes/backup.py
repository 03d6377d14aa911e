"""
Backup Routes - encrypted chat-history storage.

Each verified user owns exactly one backup slot. The body is client-side
ciphertext; nothing here decrypts or inspects it.
"""
from fastapi import APIRouter, Depends

from friction_router.api.deps import backup_payload, get_backup_service, limit_backup_body, require_identity
from friction_router.models.auth import VerifiedIdentity
from friction_router.models.auxiliary import BackupPayload, BackupRecord, BackupSaved
from friction_router.models.chat import ErrorResponse
from friction_router.services.backup_service import BackupService

router = APIRouter(
    prefix="/api/backup",
    tags=["Backup"],
    responses={401: {"model": ErrorResponse, "description": "Missing or invalid credential"}},
)


@router.put(
    "",
    response_model=BackupSaved,
    summary="Store the caller's encrypted backup",
    dependencies=[Depends(limit_backup_body)],
)
def save_backup(
    identity: VerifiedIdentity = Depends(require_identity),
    payload: BackupPayload = Depends(backup_payload),
    service: BackupService = Depends(get_backup_service),
) -> BackupSaved:
    record = service.save(identity, payload)
    return BackupSaved(updated_at=record.updated_at)


@router.get(
    "",
    response_model=BackupRecord,
    summary="Fetch the caller's encrypted backup",
    responses={404: {"model": ErrorResponse, "description": "No backup stored"}},
)
def load_backup(
    identity: VerifiedIdentity = Depends(require_identity),
    service: BackupService = Depends(get_backup_service),
) -> BackupRecord:
    return service.load(identity)
