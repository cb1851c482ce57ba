"""
SQLAlchemy models for Script2Video.

This module exports all database models for convenient importing:

    from script2video.models import MediaCacheEntry, VideoHistoryEntry, LegacyVideoEntry
"""

from .media_cache import MediaCacheEntry
from .history import LegacyVideoEntry, VideoHistoryEntry
from .meta import SchemaMeta

__all__ = [
    "MediaCacheEntry",
    "VideoHistoryEntry",
    "LegacyVideoEntry",
    "SchemaMeta",
]
