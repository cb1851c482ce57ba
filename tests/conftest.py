"""
Shared test fixtures for Script2Video tests.

Provides:
- Test settings and database (temporary SQLite file per test)
- Media cache rooted in a temporary directory
- Fake media origin served through httpx.MockTransport
- Recording rendering engine (no ffmpeg needed)
- Sample script timeline payloads
"""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

# Set test environment variables before importing app modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6379/0"
_test_storage_dir = tempfile.mkdtemp(prefix="script2video_test_")
os.environ["STORAGE_PATH"] = _test_storage_dir

from script2video.core.config import Settings
from script2video.core.database import Database
from script2video.schemas.export import ExportSettings
from script2video.schemas.timeline import ScriptTimeline
from script2video.services.compositor import TimelineCompositor
from script2video.services.engine import Composition, Encoder, RenderingEngine
from script2video.services.media_cache import MediaCache
from script2video.services.media_proxy import MediaProxy
from script2video.services.media_resolver import MediaResolver

AUDIO_URL = "https://cdn.test/a.mp3"
VIDEO_URL = "https://cdn.test/v.mp4"
THUMB_URL = "https://cdn.test/t.jpg"

AUDIO_BYTES = b"ID3-fake-audio-bytes"
VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42-fake-video"
THUMB_BYTES = b"\xff\xd8\xff\xe0-fake-jpeg"


# =============================================================================
# Fake media origin
# =============================================================================


class FakeOrigin:
    """
    In-memory HTTP origin for httpx.MockTransport.

    Routes are keyed by scheme://host/path (query ignored). Unknown routes
    return 404. Tracks every request and the peak number in flight.
    """

    def __init__(self):
        self.routes: Dict[str, dict] = {}
        self.requests: List[httpx.Request] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @staticmethod
    def _key(url: httpx.URL) -> str:
        return f"{url.scheme}://{url.host}{url.path}"

    def add(
        self,
        url: str,
        body: bytes = b"payload",
        status: int = 200,
        content_type: str = "application/octet-stream",
        delay: float = 0.0,
        error: bool = False,
    ) -> None:
        self.routes[self._key(httpx.URL(url))] = {
            "body": body,
            "status": status,
            "content_type": content_type,
            "delay": delay,
            "error": error,
        }

    def count(self, url: str) -> int:
        key = self._key(httpx.URL(url))
        return sum(1 for request in self.requests if self._key(request.url) == key)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            route = self.routes.get(self._key(request.url))
            if route is None:
                return httpx.Response(404, content=b"not found")
            if route["delay"]:
                await asyncio.sleep(route["delay"])
            if route["error"]:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(
                route["status"],
                content=route["body"],
                headers={"content-type": route["content_type"]},
            )
        finally:
            self.in_flight -= 1


# =============================================================================
# Recording engine
# =============================================================================


class RecordingEncoder(Encoder):
    def __init__(self, engine: "RecordingEngine", composition: Composition, settings: ExportSettings):
        super().__init__(composition, settings)
        self.engine = engine

    async def render(self, destination: Path) -> Path:
        destination = Path(destination)
        if self.engine.failures_remaining > 0:
            self.engine.failures_remaining -= 1
            self.engine.failed.append(destination)
            raise RuntimeError("encoder failure")
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"fake-mp4-" + str(len(self.composition.clips)).encode())
        self.engine.renders.append((destination, self.settings))
        return destination


class RecordingEngine(RenderingEngine):
    """Engine whose encoder writes a small fake file and records the call."""

    def __init__(self, failures: int = 0):
        self.failures_remaining = failures
        self.renders: List[tuple] = []
        self.failed: List[Path] = []

    def encoder(self, composition: Composition, settings: ExportSettings) -> RecordingEncoder:
        return RecordingEncoder(self, composition, settings)


# =============================================================================
# Settings / Database Fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        storage_path=str(tmp_path / "data"),
        cache_max_bytes=0,
    )


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh file-backed SQLite database with the schema created."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await db.init_schema()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def bare_database(tmp_path):
    """Database without tables, for store failure paths."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'bare.db'}")
    yield db
    await db.dispose()


@pytest.fixture
def cache_root(tmp_path) -> Path:
    return tmp_path / "cache"


@pytest_asyncio.fixture
async def media_cache(database, cache_root) -> MediaCache:
    return MediaCache(database, cache_root)


# =============================================================================
# Fetching Fixtures
# =============================================================================


@pytest.fixture
def origin() -> FakeOrigin:
    fake = FakeOrigin()
    fake.add(AUDIO_URL, AUDIO_BYTES)
    fake.add(VIDEO_URL, VIDEO_BYTES, content_type="video/mp4")
    fake.add(THUMB_URL, THUMB_BYTES, content_type="image/jpeg")
    return fake


@pytest_asyncio.fixture
async def http_client(origin):
    client = httpx.AsyncClient(transport=httpx.MockTransport(origin.handler))
    yield client
    await client.aclose()


@pytest.fixture
def media_proxy(http_client) -> MediaProxy:
    return MediaProxy(client=http_client)


@pytest.fixture
def resolver(media_cache, media_proxy) -> MediaResolver:
    return MediaResolver(media_cache, media_proxy)


@pytest.fixture
def engine() -> RecordingEngine:
    return RecordingEngine()


@pytest.fixture
def compositor(engine, resolver) -> TimelineCompositor:
    return TimelineCompositor(engine, resolver, fps=30, width=1280, height=720)


# =============================================================================
# Timeline Fixtures
# =============================================================================


def make_point(start: int, end: int, video_url: str = VIDEO_URL, thumbnail: str = THUMB_URL,
               video_id: str = "vid") -> dict:
    return {
        "text": f"point {start}-{end}",
        "videoId": video_id,
        "videoUrl": video_url,
        "videoThumbnail": thumbnail,
        "startTime": start,
        "endTime": end,
    }


def make_payload(sections: List[dict], success: bool = True) -> dict:
    return {"success": success, "sections": sections}


@pytest.fixture
def simple_payload() -> dict:
    """One section: a.mp3 narration over one 5 second v.mp4 point."""
    return make_payload([
        {
            "sectionId": "s1",
            "audioUrl": AUDIO_URL,
            "voiceOverId": "vo1",
            "points": [make_point(0, 5000)],
        }
    ])


@pytest.fixture
def simple_timeline(simple_payload) -> ScriptTimeline:
    return ScriptTimeline.from_payload(simple_payload)


def timeline_of(sections: List[dict], success: bool = True) -> ScriptTimeline:
    return ScriptTimeline.from_payload(make_payload(sections, success))


@pytest.fixture
def build_timeline():
    """Factory: build_timeline(sections, success=True) -> ScriptTimeline."""
    return timeline_of


@pytest.fixture
def point():
    """Factory: point(start, end, video_url=..., thumbnail=..., video_id=...) -> dict."""
    return make_point
