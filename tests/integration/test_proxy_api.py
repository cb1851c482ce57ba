"""
Integration tests for the media proxy endpoint and health check.

The app is driven through httpx.ASGITransport; upstream media is served
by the fake origin.
"""

import httpx
import pytest
import pytest_asyncio

from script2video.main import create_app
from tests.conftest import AUDIO_BYTES, AUDIO_URL, THUMB_URL


@pytest_asyncio.fixture
async def client(settings, media_proxy, database):
    app = create_app(settings, media_proxy=media_proxy, database=database)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestProxyEndpoint:
    """Tests for GET /api/proxy."""

    @pytest.mark.asyncio
    async def test_missing_url(self, client):
        response = await client.get("/api/proxy")

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Missing URL parameter"}

    @pytest.mark.asyncio
    async def test_non_http_url_rejected(self, client, origin):
        response = await client.get("/api/proxy", params={"url": "file:///etc/passwd"})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert origin.requests == []

    @pytest.mark.asyncio
    async def test_proxies_audio_with_cors_headers(self, client, origin):
        response = await client.get("/api/proxy", params={"url": AUDIO_URL, "type": "audio"})

        assert response.status_code == 200
        assert response.content == AUDIO_BYTES
        assert response.headers["content-type"] == "audio/mpeg"
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["x-proxy-info"] == "Proxied audio resource"
        assert response.headers["x-original-type"] == "application/octet-stream"
        assert origin.count(AUDIO_URL) == 1

    @pytest.mark.asyncio
    async def test_declared_type_kept_without_hint(self, client):
        response = await client.get("/api/proxy", params={"url": THUMB_URL})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["x-proxy-info"] == "Proxied media resource"

    @pytest.mark.asyncio
    async def test_invalid_type_rejected(self, client):
        response = await client.get("/api/proxy", params={"url": AUDIO_URL, "type": "font"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_upstream_failure(self, client):
        response = await client.get("/api/proxy", params={"url": "https://cdn.test/missing.mp3"})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Failed to proxy resource"
        assert "404" in body["details"]


class TestHealth:
    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    @pytest.mark.asyncio
    async def test_health_with_database(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert "available" in body["checks"]["ffmpeg"]
