"""
Timeline Compositor

Turns a ScriptTimeline into a Composition on the rendering engine:
- one audio clip per section, at the section's first point
- one muted video clip per point, at its start frame, trimmed to its length
- a thumbnail placeholder when a point's video is unsupported or unreachable

Media is prefetched concurrently (bounded by max_concurrent_fetches);
insertion then walks sections and points strictly in array order, so clip
order never depends on network timing.

Asset-level failures never fail a build. They degrade the output (silent
section, placeholder, skipped point) and are reported as diagnostics.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from script2video.core.errors import MediaFetchError, StructuralError, UnsupportedFormatError
from script2video.schemas.timeline import Point, ScriptTimeline, Section
from script2video.services.engine import Clip, Composition, RenderingEngine
from script2video.services.format_policy import classify_audio, classify_video
from script2video.services.media_resolver import MediaResolver, ResolvedMedia
from script2video.services.time_model import DEFAULT_FPS, frames_at, seconds_at

logger = logging.getLogger(__name__)

FetchOutcome = Union[ResolvedMedia, BaseException]


class CompositorState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"
    READY = "ready"
    FAILED = "failed"


# ============================================================================
# Build Results
# ============================================================================


@dataclass
class Diagnostic:
    """An absorbed asset-level failure.

    kind is one of: unsupported_format, media_fetch, cache_write, point_skipped.
    """
    kind: str
    message: str
    section_id: Optional[str] = None
    video_id: Optional[str] = None
    url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "section_id": self.section_id,
            "video_id": self.video_id,
            "url": self.url,
        }


@dataclass
class Insertion:
    """One clip placed on the composition."""
    kind: str  # audio, video or placeholder
    start_frame: int
    duration_frames: Optional[int]
    url: str
    section_id: str = ""
    video_id: str = ""
    clip: Optional[Clip] = field(default=None, repr=False)


@dataclass
class ComposeResult:
    state: CompositorState
    composition: Composition
    insertions: List[Insertion] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def duration_frames(self) -> int:
        return self.composition.duration_frames

    @property
    def placeholder_count(self) -> int:
        return sum(1 for insertion in self.insertions if insertion.kind == "placeholder")


# ============================================================================
# Compositor
# ============================================================================


class TimelineCompositor:
    """
    Builds compositions from script timelines.

    One build at a time per instance; compose() is not reentrant.

    Usage:
        compositor = TimelineCompositor(engine, resolver, fps=30)
        result = await compositor.compose(timeline)
        for diagnostic in result.diagnostics:
            ...
    """

    def __init__(
        self,
        engine: RenderingEngine,
        resolver: MediaResolver,
        fps: int = DEFAULT_FPS,
        width: int = 1920,
        height: int = 1080,
        max_concurrent_fetches: int = 6,
    ):
        self.engine = engine
        self.resolver = resolver
        self.fps = fps
        self.width = width
        self.height = height
        self.max_concurrent_fetches = max_concurrent_fetches
        self.state = CompositorState.IDLE
        self.composition: Optional[Composition] = None
        self._player: Optional[Any] = None

    async def compose(self, timeline: ScriptTimeline) -> ComposeResult:
        """
        Build a fresh composition from a timeline.

        Raises:
            RuntimeError: If a build is already in progress
            StructuralError: If the timeline reports failure or has no sections
        """
        if self.state is CompositorState.BUILDING:
            raise RuntimeError("compose() called while a build is in progress")
        self.state = CompositorState.BUILDING

        try:
            self._validate(timeline)
        except StructuralError as e:
            self.state = CompositorState.FAILED
            logger.error(f"Rejected script timeline: {e}")
            raise

        insertions: List[Insertion] = []
        diagnostics: List[Diagnostic] = []

        try:
            composition = self.engine.new_composition(self.width, self.height, self.fps)
            if self._player is not None:
                composition.mount(self._player)
            self.composition = composition

            prefetched = await self._prefetch(timeline, diagnostics)

            previous_end = 0
            for section in timeline.sections:
                previous_end = await self._insert_section(
                    section, previous_end, prefetched, insertions, diagnostics
                )
        except BaseException:
            self.state = CompositorState.FAILED
            raise

        self.state = CompositorState.READY
        result = ComposeResult(
            state=self.state,
            composition=composition,
            insertions=insertions,
            diagnostics=diagnostics,
        )
        logger.info(
            f"Composition ready: {len(timeline.sections)} sections, "
            f"{len(insertions)} insertions, {result.placeholder_count} placeholders, "
            f"{len(diagnostics)} diagnostics, {result.duration_frames} frames"
        )
        return result

    def _validate(self, timeline: ScriptTimeline) -> None:
        if not timeline.success:
            raise StructuralError("Script timeline reports success=false")
        if not timeline.sections:
            raise StructuralError("Script timeline has no sections")

    # ------------------------------------------------------------------
    # Media prefetch
    # ------------------------------------------------------------------

    async def _prefetch(
        self, timeline: ScriptTimeline, diagnostics: List[Diagnostic]
    ) -> Dict[Tuple[str, str], FetchOutcome]:
        """Resolve all supported section audio and point video concurrently."""
        wanted: Dict[Tuple[str, str], None] = {}
        for section in timeline.sections:
            if section.audio_url and classify_audio(section.audio_url).is_supported:
                wanted[(section.audio_url, "audio")] = None
            for point in section.points:
                if classify_video(point.video_url).is_supported:
                    wanted[(point.video_url, "video")] = None

        semaphore = asyncio.Semaphore(self.max_concurrent_fetches)

        async def resolve_one(url: str, kind: str) -> ResolvedMedia:
            async with semaphore:
                return await self.resolver.resolve_media(url, kind)

        keys = list(wanted)
        results = await asyncio.gather(
            *(resolve_one(url, kind) for url, kind in keys),
            return_exceptions=True,
        )

        outcomes = dict(zip(keys, results))
        for (url, kind), outcome in outcomes.items():
            if isinstance(outcome, ResolvedMedia) and outcome.cache_error is not None:
                diagnostics.append(Diagnostic("cache_write", str(outcome.cache_error), url=url))
        logger.debug(f"Prefetched {len(keys)} media URLs")
        return outcomes

    def _take(self, prefetched: Dict[Tuple[str, str], FetchOutcome], url: str, kind: str) -> ResolvedMedia:
        """Return a prefetched resolution; MediaFetchError marks an unreachable asset."""
        outcome = prefetched[(url, kind)]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    async def _insert_section(
        self,
        section: Section,
        previous_end: int,
        prefetched: Dict[Tuple[str, str], FetchOutcome],
        insertions: List[Insertion],
        diagnostics: List[Diagnostic],
    ) -> int:
        """Insert one section; returns its end in milliseconds."""
        if section.points:
            section_start, section_end = section.start_ms, section.end_ms
        else:
            section_start = section_end = previous_end

        if section.audio_url:
            self._insert_audio(section, section_start, prefetched, insertions, diagnostics)

        last_end: Optional[int] = None
        for point in section.points:
            if last_end is not None and point.start_time < last_end:
                logger.debug(
                    f"Point {point.video_id or point.video_url} overlaps the previous point "
                    f"({point.start_time} < {last_end})"
                )
            await self._insert_point(section, point, prefetched, insertions, diagnostics)
            last_end = point.end_time

        return section_end

    def _insert_audio(
        self,
        section: Section,
        section_start: int,
        prefetched: Dict[Tuple[str, str], FetchOutcome],
        insertions: List[Insertion],
        diagnostics: List[Diagnostic],
    ) -> None:
        url = section.audio_url
        if not classify_audio(url).is_supported:
            error = UnsupportedFormatError(url, "audio")
            logger.warning(f"Section {section.section_id}: {error}; audio skipped")
            diagnostics.append(
                Diagnostic("unsupported_format", str(error), section_id=section.section_id, url=url)
            )
            return

        try:
            media = self._take(prefetched, url, "audio")
        except MediaFetchError as e:
            logger.warning(f"Section {section.section_id}: {e}; audio skipped")
            diagnostics.append(
                Diagnostic("media_fetch", str(e), section_id=section.section_id, url=url)
            )
            return

        start_frame = frames_at(section_start, self.fps)
        clip = self.composition.add(self.engine.audio_clip(media.content).offset(start_frame))
        insertions.append(
            Insertion("audio", start_frame, None, url, section_id=section.section_id, clip=clip)
        )

    async def _insert_point(
        self,
        section: Section,
        point: Point,
        prefetched: Dict[Tuple[str, str], FetchOutcome],
        insertions: List[Insertion],
        diagnostics: List[Diagnostic],
    ) -> None:
        start_frame = frames_at(point.start_time, self.fps)
        duration_frames = frames_at(point.end_time, self.fps) - start_frame

        if not classify_video(point.video_url).is_supported:
            error = UnsupportedFormatError(point.video_url, "video")
            logger.warning(f"Point {point.video_id}: {error}; using placeholder")
            diagnostics.append(
                Diagnostic(
                    "unsupported_format",
                    str(error),
                    section_id=section.section_id,
                    video_id=point.video_id,
                    url=point.video_url,
                )
            )
            await self._insert_placeholder(section, point, start_frame, duration_frames, insertions, diagnostics)
            return

        try:
            media = self._take(prefetched, point.video_url, "video")
        except MediaFetchError as e:
            logger.warning(f"Point {point.video_id}: {e}; using placeholder")
            diagnostics.append(
                Diagnostic(
                    "media_fetch",
                    str(e),
                    section_id=section.section_id,
                    video_id=point.video_id,
                    url=point.video_url,
                )
            )
            await self._insert_placeholder(section, point, start_frame, duration_frames, insertions, diagnostics)
            return

        clip = self.engine.video_clip(media.content, muted=True)
        clip.offset(start_frame).subclip(0, duration_frames)
        self.composition.add(clip)
        insertions.append(
            Insertion(
                "video",
                start_frame,
                duration_frames,
                point.video_url,
                section_id=section.section_id,
                video_id=point.video_id,
                clip=clip,
            )
        )

    async def _insert_placeholder(
        self,
        section: Section,
        point: Point,
        start_frame: int,
        duration_frames: int,
        insertions: List[Insertion],
        diagnostics: List[Diagnostic],
    ) -> None:
        """Insert the point's thumbnail image in place of its video, or skip the point."""
        url = point.video_thumbnail

        def skip(reason: str) -> None:
            logger.warning(f"Point {point.video_id} skipped: {reason}")
            diagnostics.append(
                Diagnostic(
                    "point_skipped",
                    reason,
                    section_id=section.section_id,
                    video_id=point.video_id,
                    url=url or None,
                )
            )

        if not url:
            skip("no thumbnail for placeholder")
            return

        try:
            media = await self.resolver.resolve_media(url, "image")
        except MediaFetchError as e:
            skip(f"placeholder unavailable: {e}")
            return

        if media.cache_error is not None:
            diagnostics.append(Diagnostic("cache_write", str(media.cache_error), url=url))

        clip = self.engine.image_clip(media.content).trim(start_frame, start_frame + duration_frames)
        self.composition.add(clip)
        insertions.append(
            Insertion(
                "placeholder",
                start_frame,
                duration_frames,
                url,
                section_id=section.section_id,
                video_id=point.video_id,
                clip=clip,
            )
        )

    # ------------------------------------------------------------------
    # Preview playback
    # ------------------------------------------------------------------

    def attach_player(self, handle: Any) -> None:
        """Attach a preview player; the current and future compositions mount it."""
        self._player = handle
        if self.composition is not None:
            self.composition.mount(handle)

    def _playable(self, action: str) -> bool:
        if self._player is None or self.composition is None:
            logger.warning(f"Cannot {action}: no player attached")
            return False
        return True

    def play(self) -> None:
        if self._playable("play"):
            self.composition.play()

    def pause(self) -> None:
        if self._playable("pause"):
            self.composition.pause()

    def seek_to(self, ms: int) -> None:
        """Seek the preview to a timeline position in milliseconds, snapped to a frame."""
        if self._playable("seek"):
            self.composition.seek(seconds_at(frames_at(ms, self.fps), self.fps))
