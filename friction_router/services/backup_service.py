"""
Encrypted backup storage.

Clients encrypt their chat history locally and upload the ciphertext.
The server stores the envelope under backup:{user_id} and returns it to
the same verified user; it never sees keys and never decrypts.
"""
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from friction_router.core.clock import Clock, SystemClock
from friction_router.core.exceptions import NotFound
from friction_router.core.logging_config import get_logger, short_id
from friction_router.models.auth import VerifiedIdentity
from friction_router.models.auxiliary import BackupPayload, BackupRecord
from friction_router.store.base import KeyValueStore

logger = get_logger(__name__)

SECONDS_PER_DAY = 86_400


class BackupService:
    def __init__(self, store: KeyValueStore, clock: Optional[Clock] = None, retention_days: int = 365):
        self.store = store
        self.clock = clock or SystemClock()
        self.retention_days = retention_days

    @staticmethod
    def _key(identity: VerifiedIdentity) -> str:
        return f"backup:{identity.user_id}"

    def save(self, identity: VerifiedIdentity, payload: BackupPayload) -> BackupRecord:
        record = BackupRecord(
            **payload.model_dump(),
            updated_at=self.clock.now().isoformat(timespec="seconds"),
        )
        self.store.put_json(self._key(identity), record.model_dump(), self.retention_days * SECONDS_PER_DAY)
        logger.info(
            f"Backup saved: user={short_id(identity.user_id)} bytes={len(payload.ciphertext)} "
            f"version={payload.version}"
        )
        return record

    def load(self, identity: VerifiedIdentity) -> BackupRecord:
        """
        Raises:
            NotFound: If the caller has no stored backup
        """
        data = self.store.get_json(self._key(identity))
        if not isinstance(data, dict):
            raise NotFound("No backup found.")
        try:
            return BackupRecord.model_validate(data)
        except PydanticValidationError as e:
            logger.warning(f"Stored backup unreadable for user={short_id(identity.user_id)}: {e.error_count()} errors")
            raise NotFound("No backup found.") from e
