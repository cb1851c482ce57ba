"""
Pydantic schemas for Script2Video.
"""

from .export import ArtifactLocation, AudioEncoding, ExportSettings, VideoEncoding
from .history import HistoryRecord
from .timeline import Point, ScriptTimeline, Section

__all__ = [
    "Point",
    "Section",
    "ScriptTimeline",
    "HistoryRecord",
    "ExportSettings",
    "VideoEncoding",
    "AudioEncoding",
    "ArtifactLocation",
]
