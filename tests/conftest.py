from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text

from friction_router.core.cache import TTLCache
from friction_router.core.clock import Clock
from friction_router.core.config import Settings, get_settings
from friction_router.core.exceptions import StoreUnavailable, Unauthenticated
from friction_router.llm.client import get_dispatcher
from friction_router.models.auth import VerifiedIdentity
from friction_router.services.identity import IdentityVerifier, get_identity_verifier
from friction_router.store import get_store
from friction_router.store.base import KeyValueStore
from friction_router.store.memory import MemoryKeyValueStore
from friction_router.store.sql import SQLKeyValueStore

CLIENT_ID = "test-client.apps.googleusercontent.com"
ADMIN_EMAIL = "admin@example.com"

# 2026-03-10 02:00:00 UTC is 13:00 in Sydney (AEDT, UTC+11).
START = datetime(2026, 3, 10, 2, 0, 0, tzinfo=timezone.utc)


class FakeClock(Clock):
    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


class FailingStore(KeyValueStore):
    """Every operation fails as if the backend were unreachable."""

    def get(self, key):
        raise StoreUnavailable()

    def put(self, key, value, ttl_seconds=None):
        raise StoreUnavailable()

    def list(self, prefix, limit=1000):
        raise StoreUnavailable()

    def check_connection(self) -> bool:
        return False


class FakeTokenClient:
    """Stands in for Google's tokeninfo endpoint."""

    def __init__(self):
        self.tokens: Dict[str, Dict[str, Any]] = {}
        self.calls: List[str] = []

    def add(self, token: str, sub: str, email: str, aud: str = CLIENT_ID, verified: bool = True, exp: Optional[int] = None):
        self.tokens[token] = {
            "aud": aud,
            "sub": sub,
            "email": email,
            "email_verified": "true" if verified else "false",
            "exp": str(exp if exp is not None else int(START.timestamp()) + 3600),
        }

    def fetch_claims(self, id_token: str) -> Dict[str, Any]:
        self.calls.append(id_token)
        if id_token not in self.tokens:
            raise Unauthenticated()
        return dict(self.tokens[id_token])


class FakeDispatcher:
    """Records provider calls instead of making them."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None
        self.structured_reply: Optional[str] = None

    def send(self, provider, messages):
        self.calls.append((provider, list(messages)))
        if self.error is not None:
            raise self.error
        return f"answer from {provider}"

    def generate_structured(self, prompt, image_bytes=None, mime_type=None):
        self.calls.append(("structured", prompt, image_bytes, mime_type))
        if self.error is not None:
            raise self.error
        return self.structured_reply or "{}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> MemoryKeyValueStore:
    return MemoryKeyValueStore(clock=clock)


@pytest.fixture
def broken_sql_store(clock) -> SQLKeyValueStore:
    """A real SQL store whose table has vanished underneath it."""
    sql_store = SQLKeyValueStore("sqlite:///:memory:", clock=clock)
    with sql_store.engine.begin() as conn:
        conn.execute(text("DROP TABLE kv_entries"))
    yield sql_store
    sql_store.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ai_enabled=True,
        store_url="memory://",
        google_client_id=CLIENT_ID,
        admin_email=ADMIN_EMAIL,
        admin_only_models=frozenset({"claude"}),
        youtube_api_key="yt-key",
    )


@pytest.fixture
def token_client() -> FakeTokenClient:
    client = FakeTokenClient()
    client.add("alice-token", sub="1001", email="alice@example.com")
    client.add("bob-token", sub="1002", email="bob@example.com")
    client.add("admin-token", sub="9000", email="Admin@Example.com")
    return client


@pytest.fixture
def verifier(settings, token_client, clock) -> IdentityVerifier:
    return IdentityVerifier(
        client_id=settings.google_client_id,
        admin_email=settings.admin_email,
        token_client=token_client,
        cache=TTLCache(maxsize=64, ttl_seconds=3600, clock=clock),
        clock=clock,
    )


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def alice() -> VerifiedIdentity:
    return VerifiedIdentity(user_id="1001", email="alice@example.com")


@pytest.fixture
def make_client(settings, store, clock, verifier, dispatcher) -> Callable[..., TestClient]:
    """
    Build a TestClient with every infrastructure dependency replaced.

    Keyword arguments override individual Settings fields; `store=` swaps
    the key-value store.
    """
    from friction_router.api.deps import get_clock
    from friction_router.api.main import app

    def _make(store_override: Optional[KeyValueStore] = None, **overrides) -> TestClient:
        effective = replace(settings, **overrides)
        app.dependency_overrides[get_settings] = lambda: effective
        app.dependency_overrides[get_store] = lambda: store_override or store
        app.dependency_overrides[get_clock] = lambda: clock
        app.dependency_overrides[get_identity_verifier] = lambda: verifier
        app.dependency_overrides[get_dispatcher] = lambda: dispatcher
        return TestClient(app)

    yield _make

    from friction_router.api.main import app as application
    application.dependency_overrides.clear()


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


@pytest.fixture
def auth_headers() -> Callable[[str], Dict[str, str]]:
    def _make(token: str = "alice-token") -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    return _make
