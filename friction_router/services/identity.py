"""
Identity Verifier - Bearer credential to verified caller.

Flow for each request:
1. Hash the credential (FNV-1a, 32 bit) into a cache key
2. Cache hit with matching audience -> return immediately
3. Cache miss -> ask Google's tokeninfo endpoint
4. Check audience, subject and email; compute the admin flag
5. Cache the verified claims with a bounded TTL

The cache only ever holds claims that already passed the audience check,
and the audience is checked again on every hit, so a deployment whose
client id changes can never accept an entry written for the old one.
"""
from typing import Any, Dict, Optional, Protocol

import requests

from friction_router.core.cache import TTLCache
from friction_router.core.clock import Clock, SystemClock
from friction_router.core.exceptions import ConfigurationError, StoreUnavailable, Unauthenticated
from friction_router.core.logging_config import get_logger, short_id
from friction_router.models.auth import VerifiedIdentity
from friction_router.store.base import KeyValueStore

logger = get_logger(__name__)

TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"


def fnv1a_32(text: str) -> str:
    """Fast, non-cryptographic digest used only as a cache key."""
    h = 0x811C9DC5
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * 0x01000193) & 0xFFFFFFFF
    return f"{h:08x}"


class IdentityCache(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def set(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[int] = None) -> None: ...


class StoreIdentityCache:
    """
    Identity cache shared across instances through the key-value store.

    Store failures degrade to cache misses; they never fail authentication.
    """

    def __init__(self, store: KeyValueStore, ttl_seconds: int = 3600):
        self.store = store
        self.ttl_seconds = ttl_seconds

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            value = self.store.get_json(key)
        except StoreUnavailable as e:
            logger.warning(f"Identity cache read failed, re-verifying: {e}")
            return None
        return value if isinstance(value, dict) else None

    def set(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[int] = None) -> None:
        try:
            self.store.put_json(key, value, ttl_seconds or self.ttl_seconds)
        except StoreUnavailable as e:
            logger.warning(f"Identity cache write failed: {e}")


class GoogleTokenInfoClient:
    """Calls Google's tokeninfo endpoint to validate an ID token."""

    def __init__(self, timeout_seconds: float = 10.0, session: Optional[requests.Session] = None):
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def fetch_claims(self, id_token: str) -> Dict[str, Any]:
        """
        Return the token's claims.

        Raises:
            Unauthenticated: If Google rejects the token or cannot be reached
        """
        try:
            response = self.session.get(
                TOKENINFO_URL,
                params={"id_token": id_token},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            logger.error(f"tokeninfo request failed: {e}")
            raise Unauthenticated("Could not verify sign-in token.") from e

        if response.status_code != 200:
            logger.info(f"tokeninfo rejected credential: status={response.status_code}")
            raise Unauthenticated()

        try:
            claims = response.json()
        except ValueError as e:
            raise Unauthenticated() from e
        if not isinstance(claims, dict):
            raise Unauthenticated()
        return claims


class IdentityVerifier:
    """
    Resolves a bearer credential into a VerifiedIdentity.

    Example:
        >>> verifier = IdentityVerifier(client_id="123.apps.googleusercontent.com")
        >>> identity = verifier.verify(id_token)
        >>> identity.user_id
        '110169484474386276334'
    """

    def __init__(
        self,
        client_id: Optional[str],
        admin_email: Optional[str] = None,
        token_client: Optional[GoogleTokenInfoClient] = None,
        cache: Optional[IdentityCache] = None,
        cache_ttl_seconds: int = 3600,
        clock: Optional[Clock] = None,
    ):
        self.client_id = client_id
        self.admin_email = (admin_email or "").strip().lower() or None
        self.token_client = token_client or GoogleTokenInfoClient()
        self.clock = clock or SystemClock()
        self.cache = cache if cache is not None else TTLCache(ttl_seconds=cache_ttl_seconds, clock=self.clock)
        self.cache_ttl_seconds = cache_ttl_seconds

    def verify(self, credential: str) -> VerifiedIdentity:
        """
        Verify a raw bearer credential.

        Raises:
            ConfigurationError: If no client id is configured
            Unauthenticated: If the credential is empty or rejected
        """
        if not self.client_id:
            raise ConfigurationError("Server missing GOOGLE_CLIENT_ID.")
        if not credential:
            raise Unauthenticated("Missing Authorization Bearer token.")

        cache_key = f"tok:{fnv1a_32(credential)}"
        cached = self.cache.get(cache_key)
        if cached and self._is_usable(cached):
            return self._to_identity(cached)

        claims = self.token_client.fetch_claims(credential)
        if claims.get("aud") != self.client_id:
            logger.warning("Rejected credential with mismatched audience")
            raise Unauthenticated()
        if not claims.get("sub") or not claims.get("email"):
            raise Unauthenticated()

        entry = {
            "sub": str(claims["sub"]),
            "email": str(claims["email"]),
            "email_verified": str(claims.get("email_verified", "")).lower() == "true",
            "aud": claims["aud"],
            "exp": self._parse_exp(claims.get("exp")),
        }
        self.cache.set(cache_key, entry, self._entry_ttl(entry["exp"]))

        identity = self._to_identity(entry)
        logger.info(f"Verified identity user={short_id(identity.user_id)} admin={identity.is_admin}")
        return identity

    def _is_usable(self, entry: Dict[str, Any]) -> bool:
        if entry.get("aud") != self.client_id:
            return False
        if not entry.get("sub") or not entry.get("email"):
            return False
        exp = entry.get("exp")
        return exp is None or exp > self._now_seconds()

    def _to_identity(self, entry: Dict[str, Any]) -> VerifiedIdentity:
        email = entry["email"]
        is_admin = bool(
            self.admin_email
            and entry.get("email_verified")
            and email.strip().lower() == self.admin_email
        )
        return VerifiedIdentity(user_id=entry["sub"], email=email, is_admin=is_admin)

    def _entry_ttl(self, exp: Optional[int]) -> int:
        """Cache no longer than the token itself stays valid."""
        if exp is None:
            return self.cache_ttl_seconds
        return max(1, min(self.cache_ttl_seconds, exp - self._now_seconds()))

    def _now_seconds(self) -> int:
        return self.clock.now_ms() // 1000

    @staticmethod
    def _parse_exp(raw: Any) -> Optional[int]:
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None


# Module-level instance (singleton pattern)
_verifier: Optional[IdentityVerifier] = None


def get_identity_verifier() -> IdentityVerifier:
    """Get or create the process-wide verifier (holds the per-instance cache)."""
    global _verifier
    if _verifier is None:
        from friction_router.core.config import get_settings
        from friction_router.store import get_store

        settings = get_settings()
        if settings.identity_cache_backend == "store":
            cache = StoreIdentityCache(get_store(), settings.identity_cache_ttl_seconds)
        else:
            cache = TTLCache(
                maxsize=settings.identity_cache_size,
                ttl_seconds=settings.identity_cache_ttl_seconds,
            )
        _verifier = IdentityVerifier(
            client_id=settings.google_client_id,
            admin_email=settings.admin_email,
            cache=cache,
            cache_ttl_seconds=settings.identity_cache_ttl_seconds,
        )
    return _verifier
