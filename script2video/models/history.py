"""
Video history models for Script2Video.

VideoHistoryEntry is the current record shape (UUID keys).
LegacyVideoEntry is the superseded shape (reusable auto-increment integer
keys); its rows are upgraded into video_history when read.
"""

from datetime import datetime
from typing import Any, Optional
import uuid

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from script2video.core.database import Base, utcnow


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


class VideoHistoryEntry(Base):
    """A completed composition stored for replay."""

    __tablename__ = "video_history"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        doc="UUID primary key (never reused)"
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        doc="User-facing title"
    )
    timeline: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        doc="ScriptTimeline payload (camelCase wire form)"
    )
    thumbnail_url: Mapped[str] = mapped_column(
        String(2048),
        nullable=False,
        default="",
        doc="Best-effort thumbnail URL"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
        doc="When the record was created"
    )
    migrated_from: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        unique=True,
        index=True,
        doc="Legacy integer key this record was upgraded from"
    )

    def __repr__(self) -> str:
        return f"<VideoHistoryEntry(id={self.id!r}, title={self.title!r})>"


class LegacyVideoEntry(Base):
    """Schema v1 history record, keyed by a reused auto-increment integer."""

    __tablename__ = "video_store"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    video_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    timestamp: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        index=True,
        doc="Creation time in epoch milliseconds"
    )
    thumbnail: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    def __repr__(self) -> str:
        return f"<LegacyVideoEntry(id={self.id}, title={self.title!r})>"
