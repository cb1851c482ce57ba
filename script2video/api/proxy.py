"""
Media proxy endpoint.

GET /api/proxy?url=<media url>&type=<audio|video|image>

Fetches remote media server-side and returns it with CORS headers, so
hosts that do not send CORS headers themselves stay usable from a browser.
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response

from script2video.core.errors import MediaFetchError
from script2video.services.media_proxy import MediaProxy

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "*",
    "Cache-Control": "public, max-age=3600",
    "Accept-Ranges": "bytes",
}


def get_media_proxy(request: Request) -> MediaProxy:
    """Dependency: the application's shared MediaProxy."""
    return request.app.state.media_proxy


@router.get("/proxy")
async def proxy_media(
    url: Optional[str] = Query(default=None, description="Media URL to fetch"),
    type: Optional[Literal["audio", "video", "image"]] = Query(
        default=None, description="Media kind hint used for content-type inference"
    ),
    proxy: MediaProxy = Depends(get_media_proxy),
):
    """
    Proxy a media resource.

    Returns:
        The resource bytes with the inferred Content-Type

    Error responses:
        400: url parameter missing or not http(s)
        500: upstream fetch failed
    """
    if not url:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Missing URL parameter"},
        )
    if not url.startswith(("http://", "https://")):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Only http(s) URLs can be proxied"},
        )

    logger.info(f"Proxying {type or 'media'}: {url}")

    try:
        media = await proxy.fetch(url, type, direct=True)
    except MediaFetchError as e:
        logger.error(f"Proxy fetch failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to proxy resource", "details": str(e.cause)},
        )

    headers = dict(CORS_HEADERS)
    headers["X-Proxy-Info"] = f"Proxied {type or 'media'} resource"
    headers["X-Original-Type"] = media.original_content_type or "unknown"

    return Response(content=media.content, media_type=media.content_type, headers=headers)
