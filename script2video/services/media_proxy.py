"""
Media Proxy

Fetches remote media with browser-like headers and normalizes the content
type. When a proxy base URL is configured, external URLs are routed through
its /api/proxy endpoint so that hosts without CORS headers stay reachable.
Local paths and file:// URLs are read from disk.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlencode, urlsplit

import aiofiles
import httpx

from script2video.core.errors import MediaFetchError

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "identity",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

GENERIC_CONTENT_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

# Extension -> MIME type per media kind; the first entry is the kind's default
EXTENSION_CONTENT_TYPES = {
    "audio": [(".mp3", "audio/mpeg"), (".wav", "audio/wav"), (".m4a", "audio/mp4"), (".ogg", "audio/ogg")],
    "video": [(".mp4", "video/mp4"), (".webm", "video/webm"), (".mov", "video/quicktime")],
    "image": [
        (".jpg", "image/jpeg"),
        (".jpeg", "image/jpeg"),
        (".png", "image/png"),
        (".gif", "image/gif"),
        (".webp", "image/webp"),
    ],
}


@dataclass
class ProxiedMedia:
    """Fetched media bytes with normalized and upstream content types."""
    url: str
    content: bytes
    content_type: str
    original_content_type: str


def _by_extension(url: str, kind: str) -> Optional[str]:
    lowered = url.lower()
    try:
        path = urlsplit(lowered).path
    except ValueError:
        path = lowered
    for ext, mime in EXTENSION_CONTENT_TYPES[kind]:
        if path.endswith(ext) or lowered.endswith(ext):
            return mime
    return None


def infer_content_type(url: str, kind: Optional[str] = None, declared: Optional[str] = None) -> str:
    """
    Decide the content type for fetched media.

    A declared, non-generic type wins when no kind hint is given. Otherwise
    the type is inferred from the extension within the hinted kind (falling
    back to the kind's default), or from any known extension.

    Example:
        >>> infer_content_type("https://x.test/a.wav", "audio", "application/octet-stream")
        'audio/wav'
        >>> infer_content_type("https://x.test/stream", "video")
        'video/mp4'
    """
    declared = (declared or "").split(";")[0].strip().lower()
    if declared not in GENERIC_CONTENT_TYPES and not kind:
        return declared

    if kind in EXTENSION_CONTENT_TYPES:
        return _by_extension(url, kind) or EXTENSION_CONTENT_TYPES[kind][0][1]

    for candidate in EXTENSION_CONTENT_TYPES:
        mime = _by_extension(url, candidate)
        if mime:
            return mime
    return declared or "application/octet-stream"


def create_proxy_url(url: str, kind: Optional[str], proxy_base_url: Optional[str]) -> str:
    """
    Route an external http(s) URL through the proxy endpoint.

    Local URLs, localhost URLs and everything when no proxy is configured
    are returned unchanged.
    """
    if not proxy_base_url or not url.startswith("http") or "localhost" in url:
        return url
    query = urlencode({"url": url, "type": kind or ""})
    return f"{proxy_base_url.rstrip('/')}/api/proxy?{query}"


class MediaProxy:
    """
    Async fetcher for media URLs.

    Usage:
        async with MediaProxy(proxy_base_url=settings.proxy_base_url) as proxy:
            media = await proxy.fetch(url, "audio")
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        proxy_base_url: Optional[str] = None,
        timeout: float = 60.0,
    ):
        self.proxy_base_url = proxy_base_url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers=BROWSER_HEADERS,
            )
        return self._client

    async def fetch(self, url: str, kind: Optional[str] = None, direct: bool = False) -> ProxiedMedia:
        """
        Fetch media bytes.

        Args:
            url: Original media URL (http(s), file:// or local path)
            kind: Media kind hint (audio, video, image)
            direct: Skip the configured proxy; the proxy endpoint itself uses this

        Raises:
            MediaFetchError: On transport errors, non-2xx responses or empty bodies
        """
        try:
            parts = urlsplit(url)
        except ValueError as e:
            raise MediaFetchError(url, e) from e
        if parts.scheme in ("", "file"):
            return await self._read_local(url, unquote(parts.path) if parts.scheme else url, kind)

        try:
            target = url if direct else create_proxy_url(url, kind, self.proxy_base_url)
            if target != url:
                logger.debug(f"Fetching via proxy: {url}")
            response = await self._get_client().get(target, headers=BROWSER_HEADERS)
        # InvalidURL and UnicodeError (a ValueError) are not httpx.HTTPError subclasses
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.warning(f"Fetch failed for {url}: {e}")
            raise MediaFetchError(url, e) from e

        if not response.is_success:
            logger.warning(f"Fetch failed for {url}: HTTP {response.status_code}")
            raise MediaFetchError(url, f"HTTP {response.status_code} {response.reason_phrase}")

        if not response.content:
            raise MediaFetchError(url, "empty response body")

        original_type = response.headers.get("content-type", "")
        return ProxiedMedia(
            url=url,
            content=response.content,
            content_type=infer_content_type(url, kind, original_type),
            original_content_type=original_type,
        )

    async def _read_local(self, url: str, path: str, kind: Optional[str]) -> ProxiedMedia:
        try:
            async with aiofiles.open(Path(path), "rb") as f:
                content = await f.read()
        except (OSError, ValueError) as e:
            raise MediaFetchError(url, e) from e
        if not content:
            raise MediaFetchError(url, "empty file")
        return ProxiedMedia(
            url=url,
            content=content,
            content_type=infer_content_type(url, kind),
            original_content_type="",
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MediaProxy":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
