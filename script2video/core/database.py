"""
Database configuration for Script2Video.

Provides an explicitly constructed async SQLAlchemy handle (engine, session
factory, schema initialization) and the declarative base for the models.
The media cache and the video history store each receive a Database handle
from their caller; there are no module-level engines.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

# Version of the persisted layout. v1: media_cache + video_store (integer keys).
# v2: adds video_history (UUID keys); video_store rows are migrated on read.
SCHEMA_VERSION = 2


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite round-trips."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Database:
    """
    Async database handle.

    Usage:
        db = Database("sqlite+aiosqlite:///./script2video.db")
        await db.init_schema()
        async with db.session() as session:
            ...
        await db.dispose()
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        engine_kwargs = {}
        if url.endswith(":memory:") or url.endswith("://"):
            # A single shared connection keeps in-memory data alive across sessions
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            engine_kwargs["poolclass"] = StaticPool

        self.engine = create_async_engine(url, echo=echo, future=True, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Provide an async session; rolls back and re-raises on error.

        Callers commit explicitly.
        """
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def init_schema(self) -> int:
        """
        Create all tables and record the schema version.

        Legacy tables are created too so that older databases and new ones
        share one layout; legacy rows stay readable until migrated.

        Returns:
            The schema version now recorded in schema_meta.
        """
        from script2video.models import SchemaMeta  # registers all models

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with self.session() as session:
            meta = (await session.execute(select(SchemaMeta))).scalars().first()
            if meta is None:
                session.add(SchemaMeta(id=1, version=SCHEMA_VERSION, updated_at=utcnow()))
            elif meta.version < SCHEMA_VERSION:
                meta.version = SCHEMA_VERSION
                meta.updated_at = utcnow()
            await session.commit()
        return SCHEMA_VERSION

    async def schema_version(self) -> Optional[int]:
        """Return the recorded schema version, or None for an uninitialized database."""
        from script2video.models import SchemaMeta

        try:
            async with self.session() as session:
                meta = (await session.execute(select(SchemaMeta))).scalars().first()
                return meta.version if meta else None
        except SQLAlchemyError:
            return None

    async def ping(self) -> bool:
        """Check the database connection."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()
