"""
Media Resolver

Cache-aside fetch: serve media bytes from the MediaCache when present,
otherwise fetch through the MediaProxy and populate the cache under the
original URL. Cache failures never fail a resolution.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from script2video.core.errors import StoreTransactionError
from script2video.services.media_cache import MediaCache
from script2video.services.media_proxy import MediaProxy

logger = logging.getLogger(__name__)


@dataclass
class ResolvedMedia:
    """Result of one resolution."""
    url: str
    kind: str
    content: bytes
    from_cache: bool
    content_type: Optional[str] = None
    cache_error: Optional[StoreTransactionError] = None


class MediaResolver:
    """
    Resolves media URLs to bytes.

    Concurrent resolutions of the same URL are not deduplicated; each
    misses, fetches and writes the same record.
    """

    def __init__(self, cache: MediaCache, fetcher: MediaProxy):
        self.cache = cache
        self.fetcher = fetcher
        self.stats = {"hits": 0, "misses": 0, "fetches": 0, "cache_errors": 0}

    async def resolve_media(self, url: str, kind: str) -> ResolvedMedia:
        """
        Resolve a URL, reporting where the bytes came from.

        Raises:
            MediaFetchError: If the URL is not cached and cannot be fetched
        """
        try:
            cached = await self.cache.get(url)
        except StoreTransactionError as e:
            self.stats["cache_errors"] += 1
            logger.warning(f"Cache read failed, treating as miss: {e}")
            cached = None

        if cached is not None:
            self.stats["hits"] += 1
            return ResolvedMedia(url=url, kind=kind, content=cached.content, from_cache=True)

        self.stats["misses"] += 1
        self.stats["fetches"] += 1
        media = await self.fetcher.fetch(url, kind)

        cache_error = None
        try:
            await self.cache.put(url, media.content, kind)
        except StoreTransactionError as e:
            self.stats["cache_errors"] += 1
            cache_error = e
            logger.warning(f"Cache write failed for {url}: {e}")

        return ResolvedMedia(
            url=url,
            kind=kind,
            content=media.content,
            from_cache=False,
            content_type=media.content_type,
            cache_error=cache_error,
        )

    async def resolve(self, url: str, kind: str) -> bytes:
        """Resolve a URL to its bytes."""
        return (await self.resolve_media(url, kind)).content
