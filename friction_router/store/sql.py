"""
SQL-backed key-value store.

This module persists the key-value contract in a single SQLAlchemy table.
It provides:
- Connection pooling
- Store-enforced expiry (expired rows are invisible to reads)
- Mapping of every driver failure to StoreUnavailable

SQLite serves a single node; point STORE_URL at Postgres or MySQL to share
counters across instances.
"""
from contextlib import contextmanager
from typing import Generator, List, Optional

from sqlalchemy import BigInteger, Column, String, Text, create_engine, delete, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from friction_router.core.clock import Clock, SystemClock
from friction_router.core.exceptions import StoreUnavailable
from friction_router.core.logging_config import get_logger
from friction_router.store.base import DEFAULT_LIST_LIMIT, KeyValueStore, validate_ttl

logger = get_logger(__name__)

Base = declarative_base()


class KVEntry(Base):
    """One key-value pair. `expires_at_ms` is NULL for keys without a TTL."""
    __tablename__ = "kv_entries"

    key = Column(String(512), primary_key=True)
    value = Column(Text, nullable=False)
    expires_at_ms = Column(BigInteger, nullable=True, index=True)


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        # pool_pre_ping: Test connections before using (handles stale connections)
        return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # A private in-memory database exists per connection; share one.
        kwargs["poolclass"] = StaticPool
    return kwargs


class SQLKeyValueStore(KeyValueStore):
    """
    Key-value store over any SQLAlchemy URL.

    Example:
        >>> store = SQLKeyValueStore("sqlite:///./friction_kv.db")
        >>> store.put("backup:123", "{...}", ttl_seconds=3600)
        >>> store.list("backup:", limit=10)
        ['backup:123']
    """

    def __init__(self, url: str, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self.engine = create_engine(url, echo=False, **_engine_kwargs(url))
        self._session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
        )
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Could not initialize key-value table: {e}") from e

        logger.info(f"SQLKeyValueStore initialized: {url.split('@')[-1]}")

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a database session with automatic cleanup.

        Transactions are rolled back on error, committed on success.
        Driver errors surface as StoreUnavailable; IntegrityError is
        re-raised untouched so `put` can retry a lost insert race.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Key-value store error, rolling back: {e}")
            raise StoreUnavailable(str(e)) from e
        finally:
            session.close()

    def _live(self, now_ms: int):
        return or_(KVEntry.expires_at_ms.is_(None), KVEntry.expires_at_ms > now_ms)

    def get(self, key: str) -> Optional[str]:
        now_ms = self.clock.now_ms()
        with self.get_session() as session:
            return session.execute(
                select(KVEntry.value).where(KVEntry.key == key, self._live(now_ms))
            ).scalar_one_or_none()

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ttl = validate_ttl(ttl_seconds)
        expires_at_ms = None if ttl is None else self.clock.now_ms() + ttl * 1000
        entry = dict(key=key, value=str(value), expires_at_ms=expires_at_ms)

        # merge() is select-then-insert; a concurrent first write can win the
        # insert, in which case the second attempt becomes an update.
        for attempt in range(2):
            try:
                with self.get_session() as session:
                    session.merge(KVEntry(**entry))
                return
            except IntegrityError as e:
                if attempt == 1:
                    raise StoreUnavailable(str(e)) from e
                logger.debug(f"Insert race on key prefix={key.split(':')[0]}, retrying as update")

    def list(self, prefix: str, limit: int = DEFAULT_LIST_LIMIT) -> List[str]:
        if limit <= 0:
            return []
        now_ms = self.clock.now_ms()
        with self.get_session() as session:
            rows = session.execute(
                select(KVEntry.key)
                .where(KVEntry.key.startswith(prefix, autoescape=True), self._live(now_ms))
                .order_by(KVEntry.key)
                .limit(limit)
            ).scalars()
            return list(rows)

    def purge_expired(self) -> int:
        """Physically delete expired rows. Returns the number removed."""
        now_ms = self.clock.now_ms()
        with self.get_session() as session:
            result = session.execute(
                delete(KVEntry).where(KVEntry.expires_at_ms.is_not(None), KVEntry.expires_at_ms <= now_ms)
            )
            removed = result.rowcount or 0
        if removed:
            logger.info(f"Purged {removed} expired key-value entries")
        return removed

    def check_connection(self) -> bool:
        try:
            with self.get_session() as session:
                session.execute(select(1))
            return True
        except StoreUnavailable:
            return False

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Key-value store connections closed")
