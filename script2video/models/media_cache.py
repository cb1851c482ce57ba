"""
MediaCacheEntry model for Script2Video.

Index row for one cached media blob. The bytes live on the filesystem in a
sharded directory; this table maps the source URL to that blob and keeps the
access time used by the LRU capacity policy.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from script2video.core.database import Base, utcnow


class MediaCacheEntry(Base):
    """
    One cached media asset, keyed by its original (non-proxied) URL.

    One record per URL; storing the same URL again overwrites it.
    """

    __tablename__ = "media_cache"

    url: Mapped[str] = mapped_column(
        String(2048),
        primary_key=True,
        doc="Original source URL"
    )
    kind: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
        doc="Media kind: audio, video or image"
    )
    blob_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="SHA-256 of the URL; names the blob file"
    )
    content_sha256: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="SHA-256 of the cached bytes"
    )
    size_bytes: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        doc="Blob size in bytes"
    )
    stored_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        doc="When the blob was written"
    )
    last_accessed_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
        doc="Last cache hit or write (LRU ordering)"
    )

    def __repr__(self) -> str:
        return f"<MediaCacheEntry(url={self.url!r}, kind={self.kind!r}, size={self.size_bytes})>"
