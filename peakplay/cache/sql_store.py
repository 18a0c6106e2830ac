"""
Persistent cache store backed by SQLAlchemy.

Shared by every server instance pointing at the same database. Besides the
freshness policy, each row carries an absolute expiry as a hard safety
net: an expired row is treated as absent and removed on read.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .core import IDENTITY_CODEC, CacheEntry, PayloadCodec, ensure_utc
from .freshness import Clock, utc_now

logger = logging.getLogger("cache.sql_store")

Base = declarative_base()

DEFAULT_ABSOLUTE_EXPIRY_SECONDS = 172800  # 48 hours


class CacheRow(Base):
    """
    One cached document per key.
    Timestamps are stored as naive UTC.
    """
    __tablename__ = "cache_entries"

    key = Column(String, primary_key=True)
    payload = Column(Text, nullable=False)
    cached_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<CacheRow(key='{self.key}', cached_at={self.cached_at})>"


def _naive_utc(moment: datetime) -> datetime:
    return ensure_utc(moment).replace(tzinfo=None)


def make_engine(database_url: str):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=False, **kwargs)
    return create_engine(database_url, echo=False, pool_pre_ping=True)


class SqlCacheStore:
    """
    Server-tier CacheStore.

    All backend errors are logged and swallowed; reads degrade to a miss
    and writes to a no-op.
    """

    def __init__(
        self,
        database_url: str = "sqlite:///./peakplay_cache.db",
        codec: PayloadCodec = IDENTITY_CODEC,
        clock: Clock = utc_now,
        absolute_expiry_seconds: int = DEFAULT_ABSOLUTE_EXPIRY_SECONDS,
        engine=None,
    ):
        self._engine = engine or make_engine(database_url)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        self._codec = codec
        self._clock = clock
        self._expiry = timedelta(seconds=absolute_expiry_seconds)
        self._initialized = False

    def _ensure_schema(self) -> None:
        # Safe to call multiple times (won't recreate existing tables)
        if not self._initialized:
            Base.metadata.create_all(bind=self._engine)
            self._initialized = True

    def get(self, key: str) -> Optional[CacheEntry]:
        now = _naive_utc(self._clock())
        try:
            self._ensure_schema()
            with self._session_factory() as session:
                row = session.get(CacheRow, key)
                if row is None:
                    return None
                if row.expires_at <= now:
                    logger.info(f"Cache entry {key} passed absolute expiry, removing")
                    session.delete(row)
                    session.commit()
                    return None
                payload = row.payload
        except SQLAlchemyError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

        try:
            return CacheEntry.from_record(json.loads(payload), self._codec)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(f"Dropping malformed cache entry {key}: {e}")
            self.delete(key)
            return None

    def set(self, key: str, value) -> None:
        cached_at = self._clock()
        try:
            document = json.dumps(CacheEntry(data=value, cached_at=cached_at).to_record(self._codec))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Cache write failed for {key}: unserialisable value ({e})")
            return

        try:
            self._ensure_schema()
            with self._session_factory() as session:
                session.merge(CacheRow(
                    key=key,
                    payload=document,
                    cached_at=_naive_utc(cached_at),
                    expires_at=_naive_utc(cached_at + self._expiry),
                ))
                session.commit()
            logger.info(f"Cache updated: {key} ({len(document)} bytes)")
        except SQLAlchemyError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self._ensure_schema()
            with self._session_factory() as session:
                row = session.get(CacheRow, key)
                if row is not None:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Cache delete failed for {key}: {e}")
