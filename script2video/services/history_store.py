"""
Video History Store

Persists completed compositions for later replay.

Records are keyed by UUID. Records of the legacy shape (video_store table,
reused auto-increment integer keys) are upgraded when read: list() returns
the upgraded shape immediately and persists the upgrade (delete legacy row,
insert new row, one transaction) in a background task.

A legacy record is migrated exactly once. The store builds one upgraded row
per legacy key and reuses it, so concurrent reads report the same UUID; at
most one upgrade per key is in flight; the legacy delete must hit exactly one
row before the insert is committed; and video_history.migrated_from is unique.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from script2video.core.database import Database, utcnow
from script2video.core.errors import StoreTransactionError, StructuralError
from script2video.models import LegacyVideoEntry, VideoHistoryEntry
from script2video.models.history import generate_uuid
from script2video.schemas.history import HistoryRecord
from script2video.schemas.timeline import ScriptTimeline

logger = logging.getLogger(__name__)

HistoryId = Union[str, int]


def extract_thumbnail(timeline: ScriptTimeline) -> str:
    """First point's thumbnail of the first section that has points, else ""."""
    for section in timeline.sections:
        if section.points:
            return section.points[0].video_thumbnail or ""
    return ""


def _from_epoch_ms(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).replace(tzinfo=None)


def _legacy_id(record_id: HistoryId) -> Optional[int]:
    if isinstance(record_id, int):
        return record_id
    if isinstance(record_id, str) and record_id.isdigit():
        return int(record_id)
    return None


class VideoHistoryStore:
    """
    Async store of HistoryRecords.

    Usage:
        store = VideoHistoryStore(database)
        record_id = await store.put(timeline, "My video")
        records = await store.list()
        await store.drain()
    """

    def __init__(self, database: Database):
        self.database = database
        self._pending: Set[asyncio.Task] = set()
        # Legacy key -> upgraded row, stable for the life of the store
        self._upgrades: Dict[int, VideoHistoryEntry] = {}
        self._migrating: Set[int] = set()

    async def drain(self) -> None:
        """Wait for all scheduled legacy upgrades to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_migrations(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Record conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _to_record(entry: VideoHistoryEntry) -> HistoryRecord:
        return HistoryRecord(
            id=entry.id,
            timeline=ScriptTimeline.from_payload(entry.timeline),
            title=entry.title,
            created_at=entry.created_at,
            thumbnail_url=entry.thumbnail_url or "",
            migrated_from=entry.migrated_from,
        )

    @staticmethod
    def _upgrade(legacy: LegacyVideoEntry) -> VideoHistoryEntry:
        """
        Build the current-shape row for a legacy row.

        Raises:
            StructuralError: If the legacy payload is not a valid timeline
        """
        timeline = ScriptTimeline.from_payload(legacy.video_data)
        return VideoHistoryEntry(
            id=generate_uuid(),
            title=legacy.title or "",
            timeline=timeline.to_payload(),
            thumbnail_url=legacy.thumbnail or extract_thumbnail(timeline),
            created_at=_from_epoch_ms(legacy.timestamp),
            migrated_from=legacy.id,
        )

    def _upgraded(self, legacy: LegacyVideoEntry) -> VideoHistoryEntry:
        """The upgraded row for a legacy row, built once per legacy key."""
        upgraded = self._upgrades.get(legacy.id)
        if upgraded is None:
            upgraded = self._upgrade(legacy)
            self._upgrades[legacy.id] = upgraded
        return upgraded

    @staticmethod
    def _copy(entry: VideoHistoryEntry) -> VideoHistoryEntry:
        # A fresh instance per session; the cached row is never attached
        return VideoHistoryEntry(
            id=entry.id,
            title=entry.title,
            timeline=entry.timeline,
            thumbnail_url=entry.thumbnail_url,
            created_at=entry.created_at,
            migrated_from=entry.migrated_from,
        )

    # ------------------------------------------------------------------
    # Legacy upgrade persistence
    # ------------------------------------------------------------------

    async def _persist_upgrade(self, legacy_id: int, upgraded: VideoHistoryEntry) -> bool:
        """
        Delete the legacy row and insert the upgraded row in one transaction.

        The insert is committed only if the delete removed exactly one row.

        Returns:
            False if the legacy row was already gone (nothing written)
        """
        async with self.database.session() as session:
            result = await session.execute(
                delete(LegacyVideoEntry).where(LegacyVideoEntry.id == legacy_id)
            )
            if result.rowcount != 1:
                await session.rollback()
                return False
            session.add(self._copy(upgraded))
            try:
                await session.commit()
            except IntegrityError:
                # Another writer already recorded this legacy key
                await session.rollback()
                return False
        logger.info(f"Migrated legacy history record {legacy_id} -> {upgraded.id}")
        return True

    async def _migrate_in_background(self, legacy_id: int, upgraded: VideoHistoryEntry) -> None:
        try:
            await self._persist_upgrade(legacy_id, upgraded)
        except SQLAlchemyError as e:
            # Legacy row is still there; the next list() retries
            logger.error(f"Failed to migrate legacy history record {legacy_id}: {e}")
        finally:
            self._migrating.discard(legacy_id)

    def _schedule_upgrade(self, legacy_id: int, upgraded: VideoHistoryEntry) -> bool:
        """Start a background upgrade unless one is already in flight for this key."""
        if legacy_id in self._migrating:
            return False
        self._migrating.add(legacy_id)
        task = asyncio.create_task(self._migrate_in_background(legacy_id, upgraded))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    @staticmethod
    async def _find_migrated(session, legacy_id: int) -> Optional[VideoHistoryEntry]:
        return await session.scalar(
            select(VideoHistoryEntry).where(VideoHistoryEntry.migrated_from == legacy_id)
        )

    # ------------------------------------------------------------------
    # Store operations
    # ------------------------------------------------------------------

    async def put(self, timeline: ScriptTimeline, title: str) -> str:
        """
        Store a timeline; returns after the transaction commits.

        Returns:
            The new record's UUID

        Raises:
            StoreTransactionError: If the write fails
        """
        await self.drain()

        entry = VideoHistoryEntry(
            id=generate_uuid(),
            title=title,
            timeline=timeline.to_payload(),
            thumbnail_url=extract_thumbnail(timeline),
            created_at=utcnow(),
        )
        try:
            async with self.database.session() as session:
                session.add(entry)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreTransactionError("put", e) from e

        logger.info(f"Stored history record {entry.id}: {title!r}")
        return entry.id

    async def get(self, record_id: HistoryId) -> Optional[HistoryRecord]:
        """
        Fetch one record by UUID, or by legacy integer key.

        A legacy record is upgraded before it is returned.

        Raises:
            StoreTransactionError: If the read (or upgrade) fails
        """
        await self.drain()

        legacy_id = _legacy_id(record_id)
        try:
            if legacy_id is not None:
                async with self.database.session() as session:
                    legacy = await session.get(LegacyVideoEntry, legacy_id)
                    if legacy is None:
                        # Already upgraded: find it by the id it was migrated from
                        entry = await self._find_migrated(session, legacy_id)
                        return self._to_record(entry) if entry is not None else None
                upgraded = self._upgraded(legacy)
                if await self._persist_upgrade(legacy_id, upgraded):
                    return self._to_record(upgraded)
                async with self.database.session() as session:
                    entry = await self._find_migrated(session, legacy_id)
                return self._to_record(entry) if entry is not None else None

            async with self.database.session() as session:
                entry = await session.get(VideoHistoryEntry, record_id)
            return self._to_record(entry) if entry is not None else None
        except (SQLAlchemyError, StructuralError) as e:
            raise StoreTransactionError("get", e) from e

    async def list(self) -> List[HistoryRecord]:
        """
        All records, newest first.

        Legacy records appear in their upgraded shape; their persistence is
        scheduled in the background. Rows whose payload is not a valid
        timeline are skipped with a warning.

        Raises:
            StoreTransactionError: If the read fails
        """
        await self.drain()

        try:
            async with self.database.session() as session:
                # Legacy rows first: an upgrade committed between the two reads
                # then shows up in both and is deduplicated below
                legacy_rows = (
                    await session.execute(
                        select(LegacyVideoEntry).order_by(LegacyVideoEntry.timestamp.desc())
                    )
                ).scalars().all()
                current = (
                    await session.execute(
                        select(VideoHistoryEntry).order_by(VideoHistoryEntry.created_at.desc())
                    )
                ).scalars().all()
        except SQLAlchemyError as e:
            raise StoreTransactionError("list", e) from e

        records: List[HistoryRecord] = []
        for entry in current:
            try:
                records.append(self._to_record(entry))
            except StructuralError as e:
                logger.warning(f"Skipping unreadable history record {entry.id}: {e}")

        migrated = {entry.migrated_from for entry in current if entry.migrated_from is not None}
        scheduled = 0
        for legacy in legacy_rows:
            if legacy.id in migrated:
                continue
            try:
                upgraded = self._upgraded(legacy)
            except StructuralError as e:
                logger.warning(f"Skipping unreadable legacy history record {legacy.id}: {e}")
                continue
            records.append(self._to_record(upgraded))
            if self._schedule_upgrade(legacy.id, upgraded):
                scheduled += 1

        if scheduled:
            logger.info(f"Scheduled migration of {scheduled} legacy history records")

        records.sort(key=lambda record: record.created_at, reverse=True)
        return records

    async def delete(self, record_id: HistoryId) -> bool:
        """
        Delete a record by UUID or legacy integer key.

        A legacy key that was already upgraded deletes the upgraded record.

        Returns:
            True if a record was deleted
        """
        await self.drain()

        legacy_id = _legacy_id(record_id)
        try:
            async with self.database.session() as session:
                if legacy_id is not None:
                    self._upgrades.pop(legacy_id, None)
                    entry = await session.get(LegacyVideoEntry, legacy_id)
                    if entry is None:
                        entry = await self._find_migrated(session, legacy_id)
                else:
                    entry = await session.get(VideoHistoryEntry, record_id)
                if entry is None:
                    return False
                await session.delete(entry)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreTransactionError("delete", e) from e

        logger.info(f"Deleted history record {record_id}")
        return True
