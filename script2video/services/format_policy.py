"""
Format Policy

Classifies media URLs as supported or unsupported before any fetch.

Video is strict: only the path extension counts, because a wrongly accepted
video fails hard at decode time while a placeholder is cheap.
Audio is lenient, checked in three tiers:
  1. a content-type query hint naming an audio/* MIME type
  2. the path extension
  3. any audio extension token anywhere in the URL (signed URLs often carry
     the real filename in a query parameter)
"""

import logging
from enum import Enum
from urllib.parse import parse_qsl, urlsplit

logger = logging.getLogger(__name__)

SUPPORTED_VIDEO_EXTENSIONS = (".mp4", ".webm")
SUPPORTED_AUDIO_EXTENSIONS = (".mp3", ".wav", ".m4a", ".ogg", ".aac")

# Query parameters that may declare the media content type
CONTENT_TYPE_HINT_PARAMS = {
    "contenttype",
    "content_type",
    "content-type",
    "response-content-type",
    "mime",
    "mimetype",
    "type",
}


class FormatSupport(str, Enum):
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"

    @property
    def is_supported(self) -> bool:
        return self is FormatSupport.SUPPORTED


def _of(flag: bool) -> FormatSupport:
    return FormatSupport.SUPPORTED if flag else FormatSupport.UNSUPPORTED


def classify_video(url: str) -> FormatSupport:
    """
    Supported iff the URL path (query and fragment ignored) ends with .mp4 or .webm.

    Example:
        >>> classify_video("https://cdn.example.com/clip.mp4?token=abc")
        <FormatSupport.SUPPORTED: 'supported'>
        >>> classify_video("https://cdn.example.com/clip.mov")
        <FormatSupport.UNSUPPORTED: 'unsupported'>
    """
    if not url:
        return FormatSupport.UNSUPPORTED
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        logger.debug(f"Unparseable video URL treated as unsupported: {url}")
        return FormatSupport.UNSUPPORTED
    return _of(path.endswith(SUPPORTED_VIDEO_EXTENSIONS))


def classify_audio(url: str) -> FormatSupport:
    """
    Lenient audio classification (content-type hint, path extension, substring).

    Falls back to the substring check when the URL cannot be parsed.
    """
    if not url:
        return FormatSupport.UNSUPPORTED

    lowered = url.lower()
    try:
        parts = urlsplit(url)
        for key, value in parse_qsl(parts.query, keep_blank_values=True):
            if key.lower() in CONTENT_TYPE_HINT_PARAMS and value.lower().startswith("audio/"):
                return FormatSupport.SUPPORTED
        if parts.path.lower().endswith(SUPPORTED_AUDIO_EXTENSIONS):
            return FormatSupport.SUPPORTED
    except ValueError:
        logger.debug(f"Unparseable audio URL, using substring check: {url}")

    return _of(any(ext in lowered for ext in SUPPORTED_AUDIO_EXTENSIONS))
