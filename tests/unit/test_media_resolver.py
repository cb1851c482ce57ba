"""
Unit tests for the cache-aside media resolver.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from script2video.core.errors import MediaFetchError, StoreTransactionError
from tests.conftest import VIDEO_BYTES, VIDEO_URL


class TestResolve:
    """Tests for MediaResolver.resolve / resolve_media."""

    @pytest.mark.asyncio
    async def test_second_resolution_served_from_cache(self, resolver, origin):
        first = await resolver.resolve(VIDEO_URL, "video")
        second = await resolver.resolve(VIDEO_URL, "video")

        assert first == second == VIDEO_BYTES
        assert origin.count(VIDEO_URL) == 1
        assert resolver.stats == {"hits": 1, "misses": 1, "fetches": 1, "cache_errors": 0}

    @pytest.mark.asyncio
    async def test_resolve_media_reports_source(self, resolver):
        fetched = await resolver.resolve_media(VIDEO_URL, "video")
        cached = await resolver.resolve_media(VIDEO_URL, "video")

        assert fetched.from_cache is False
        assert fetched.content_type == "video/mp4"
        assert cached.from_cache is True
        assert cached.content == fetched.content

    @pytest.mark.asyncio
    async def test_cache_keyed_by_original_url(self, resolver, media_cache):
        await resolver.resolve(VIDEO_URL, "video")

        cached = await media_cache.get(VIDEO_URL)
        assert cached is not None
        assert cached.kind == "video"

    @pytest.mark.asyncio
    async def test_fetch_failure_raises_and_caches_nothing(self, resolver, media_cache, origin):
        origin.add("https://cdn.test/broken.mp4", status=500)

        with pytest.raises(MediaFetchError):
            await resolver.resolve("https://cdn.test/broken.mp4", "video")
        assert await media_cache.get("https://cdn.test/broken.mp4") is None

    @pytest.mark.asyncio
    async def test_cache_read_failure_is_a_miss(self, resolver, media_cache):
        media_cache.get = AsyncMock(side_effect=StoreTransactionError("get", "disk I/O error"))

        content = await resolver.resolve(VIDEO_URL, "video")

        assert content == VIDEO_BYTES
        assert resolver.stats["cache_errors"] == 1

    @pytest.mark.asyncio
    async def test_cache_write_failure_is_reported(self, resolver, media_cache):
        media_cache.put = AsyncMock(side_effect=StoreTransactionError("put", "disk full"))

        resolved = await resolver.resolve_media(VIDEO_URL, "video")

        assert resolved.content == VIDEO_BYTES
        assert isinstance(resolved.cache_error, StoreTransactionError)

    @pytest.mark.asyncio
    async def test_concurrent_same_url_resolutions(self, resolver, origin):
        origin.add(VIDEO_URL, VIDEO_BYTES, delay=0.02)

        results = await asyncio.gather(
            resolver.resolve(VIDEO_URL, "video"),
            resolver.resolve(VIDEO_URL, "video"),
        )

        assert results == [VIDEO_BYTES, VIDEO_BYTES]
        assert await resolver.resolve(VIDEO_URL, "video") == VIDEO_BYTES
