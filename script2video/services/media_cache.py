"""
Media Cache

Persistent cache of fetched media bytes, keyed by the original source URL.

Blobs are stored in a sharded directory structure:
{cache_root}/{blob_key[:2]}/{blob_key}.bin

where blob_key is the SHA-256 of the URL. A media_cache row indexes each
blob and carries the access time used by the LRU capacity policy.
"""

import hashlib
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional

import aiofiles
import aiofiles.os
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from script2video.core.database import Database, utcnow
from script2video.core.errors import StoreTransactionError
from script2video.models import MediaCacheEntry

logger = logging.getLogger(__name__)

MEDIA_KINDS = ("audio", "video", "image")


@dataclass
class CachedMedia:
    """One cache hit."""
    url: str
    kind: str
    content: bytes
    stored_at: datetime

    @property
    def size_bytes(self) -> int:
        return len(self.content)


def blob_key_for(url: str) -> str:
    """SHA-256 hex digest of the URL; names the blob file."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def _upsert_statement(dialect_name: str, values: dict):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert

    stmt = insert(MediaCacheEntry).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=[MediaCacheEntry.url],
        set_={key: stmt.excluded[key] for key in values if key != "url"},
    )


class MediaCache:
    """
    Cache manager for fetched media.

    Usage:
        cache = MediaCache(database, settings.cache_root, settings.cache_max_bytes)

        cached = await cache.get(url)
        if cached is None:
            content = await fetch(url)
            await cache.put(url, content, "video")
    """

    def __init__(self, database: Database, cache_root: Path, max_bytes: int = 0):
        """
        Initialize cache manager.

        Args:
            database: Database handle holding the media_cache table
            cache_root: Root directory for blob storage
            max_bytes: Capacity in bytes; 0 disables eviction on put
        """
        self.database = database
        self.cache_root = Path(cache_root)
        self.max_bytes = max_bytes
        self.cache_root.mkdir(parents=True, exist_ok=True)

    def _get_blob_path(self, blob_key: str) -> Path:
        """Sharded blob path, first 2 key characters as the shard."""
        return self.cache_root / blob_key[:2] / f"{blob_key}.bin"

    async def _remove_blob(self, blob_key: str) -> None:
        blob_path = self._get_blob_path(blob_key)
        try:
            await aiofiles.os.remove(blob_path)
        except FileNotFoundError:
            pass

    async def get(self, url: str) -> Optional[CachedMedia]:
        """
        Look up cached bytes for a URL and refresh its access time.

        A row whose blob file is missing or empty is treated as a miss and
        removed.

        Returns:
            CachedMedia on a hit, None on a miss

        Raises:
            StoreTransactionError: If the row or blob cannot be read
        """
        try:
            async with self.database.session() as session:
                entry = await session.get(MediaCacheEntry, url)
                if entry is None:
                    return None

                blob_path = self._get_blob_path(entry.blob_key)
                if not blob_path.exists() or blob_path.stat().st_size == 0:
                    logger.warning(f"Cache row without blob, dropping: {url}")
                    await session.delete(entry)
                    await session.commit()
                    return None

                async with aiofiles.open(blob_path, "rb") as f:
                    content = await f.read()

                cached = CachedMedia(
                    url=entry.url,
                    kind=entry.kind,
                    content=content,
                    stored_at=entry.stored_at,
                )
                entry.last_accessed_at = utcnow()
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise StoreTransactionError("get", e) from e

        logger.debug(f"Cache hit: {url} ({cached.size_bytes} bytes)")
        return cached

    async def put(self, url: str, content: bytes, kind: str) -> None:
        """
        Store bytes for a URL, replacing any previous record.

        The blob is written to a temp file and renamed into place before the
        row is committed. When a capacity is configured, least-recently-used
        records are evicted afterwards; the record just written is kept.

        Raises:
            ValueError: If kind is not audio, video or image
            StoreTransactionError: If the blob or row cannot be written
        """
        if kind not in MEDIA_KINDS:
            raise ValueError(f"Unknown media kind: {kind}")

        blob_key = blob_key_for(url)
        blob_path = self._get_blob_path(blob_key)
        # Unique per writer so concurrent puts of one URL never share a temp file
        temp_path = blob_path.with_name(f"{blob_key}.{uuid.uuid4().hex}.tmp")

        try:
            blob_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(content)
            await aiofiles.os.replace(temp_path, blob_path)

            now = utcnow()
            values = {
                "url": url,
                "kind": kind,
                "blob_key": blob_key,
                "content_sha256": hashlib.sha256(content).hexdigest(),
                "size_bytes": len(content),
                "stored_at": now,
                "last_accessed_at": now,
            }
            async with self.database.session() as session:
                await session.execute(_upsert_statement(self.database.engine.dialect.name, values))
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            temp_path.unlink(missing_ok=True)
            raise StoreTransactionError("put", e) from e

        logger.info(f"Cached {kind}: {url} ({len(content)} bytes)")

        if self.max_bytes > 0:
            await self.evict_lru(self.max_bytes, keep=(url,))

    async def delete(self, url: str) -> bool:
        """
        Remove one record and its blob.

        Returns:
            True if a record was removed
        """
        try:
            async with self.database.session() as session:
                entry = await session.get(MediaCacheEntry, url)
                if entry is None:
                    return False
                blob_key = entry.blob_key
                await session.delete(entry)
                await session.commit()
            await self._remove_blob(blob_key)
        except (SQLAlchemyError, OSError) as e:
            raise StoreTransactionError("delete", e) from e
        return True

    async def total_bytes(self) -> int:
        try:
            async with self.database.session() as session:
                total = await session.scalar(select(func.coalesce(func.sum(MediaCacheEntry.size_bytes), 0)))
        except SQLAlchemyError as e:
            raise StoreTransactionError("total_bytes", e) from e
        return int(total or 0)

    async def evict_lru(self, max_bytes: int, keep: Iterable[str] = ()) -> int:
        """
        Evict least-recently-used records until total size <= max_bytes.

        Args:
            max_bytes: Target total size in bytes
            keep: URLs that must not be evicted

        Returns:
            Number of records removed
        """
        keep = set(keep)
        removed_keys = []
        try:
            async with self.database.session() as session:
                entries = (
                    await session.execute(
                        select(MediaCacheEntry).order_by(MediaCacheEntry.last_accessed_at.asc())
                    )
                ).scalars().all()

                total = sum(entry.size_bytes for entry in entries)
                for entry in entries:
                    if total <= max_bytes:
                        break
                    if entry.url in keep:
                        continue
                    total -= entry.size_bytes
                    removed_keys.append(entry.blob_key)
                    await session.delete(entry)
                await session.commit()

            for blob_key in removed_keys:
                await self._remove_blob(blob_key)
        except (SQLAlchemyError, OSError) as e:
            raise StoreTransactionError("evict_lru", e) from e

        if total > max_bytes:
            logger.warning(
                f"Cache still over capacity after eviction: {total} > {max_bytes} bytes "
                f"(protected entries exceed the limit)"
            )
        if removed_keys:
            logger.info(f"Evicted {len(removed_keys)} cached media entries (LRU)")
        return len(removed_keys)

    async def evict_older_than(self, max_age_hours: float) -> int:
        """
        Remove records not accessed within max_age_hours.

        Returns:
            Number of records removed
        """
        cutoff = utcnow() - timedelta(hours=max_age_hours)
        try:
            async with self.database.session() as session:
                entries = (
                    await session.execute(
                        select(MediaCacheEntry).where(MediaCacheEntry.last_accessed_at < cutoff)
                    )
                ).scalars().all()
                blob_keys = [entry.blob_key for entry in entries]
                for entry in entries:
                    await session.delete(entry)
                await session.commit()

            for blob_key in blob_keys:
                await self._remove_blob(blob_key)
        except (SQLAlchemyError, OSError) as e:
            raise StoreTransactionError("evict_older_than", e) from e

        logger.info(f"Cleaned up {len(blob_keys)} cached media entries older than {max_age_hours}h")
        return len(blob_keys)

    async def clear(self) -> int:
        """
        Remove every record and blob.

        Returns:
            Number of records removed
        """
        try:
            async with self.database.session() as session:
                blob_keys = (await session.execute(select(MediaCacheEntry.blob_key))).scalars().all()
                await session.execute(delete(MediaCacheEntry))
                await session.commit()

            for blob_key in blob_keys:
                await self._remove_blob(blob_key)
        except (SQLAlchemyError, OSError) as e:
            raise StoreTransactionError("clear", e) from e

        logger.info(f"Cleared media cache ({len(blob_keys)} entries)")
        return len(blob_keys)

    async def stats(self) -> dict:
        """
        Get cache statistics.

        Returns:
            Dict with total_entries, total_bytes, total_size_mb, by_kind,
            max_bytes and oldest_access_hours
        """
        try:
            async with self.database.session() as session:
                rows = (
                    await session.execute(
                        select(
                            MediaCacheEntry.kind,
                            func.count(),
                            func.coalesce(func.sum(MediaCacheEntry.size_bytes), 0),
                        ).group_by(MediaCacheEntry.kind)
                    )
                ).all()
                oldest = await session.scalar(select(func.min(MediaCacheEntry.last_accessed_at)))
        except SQLAlchemyError as e:
            raise StoreTransactionError("stats", e) from e

        by_kind = {kind: {"entries": count, "bytes": int(size)} for kind, count, size in rows}
        total_entries = sum(item["entries"] for item in by_kind.values())
        total_bytes = sum(item["bytes"] for item in by_kind.values())
        oldest_hours = (utcnow() - oldest).total_seconds() / 3600 if oldest else 0

        return {
            "total_entries": total_entries,
            "total_bytes": total_bytes,
            "total_size_mb": round(total_bytes / (1024 * 1024), 2),
            "by_kind": by_kind,
            "max_bytes": self.max_bytes,
            "oldest_access_hours": round(oldest_hours, 1),
        }
