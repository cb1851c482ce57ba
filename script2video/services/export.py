"""
Export Pipeline

Renders a ready composition to a file with two strategies, in order:

1. save_location: ask a SaveLocationProvider (e.g. a file picker or the
   CLI --output flag) for a destination and render there. Cancellation or
   any failure is logged and falls through.
2. anonymous: render to a temp file in the work directory, then hand it to
   the saved handler (default: move into the downloads directory under a
   sanitized, collision-free name).

Both strategies encode with the same ExportSettings.
"""

import asyncio
import logging
import os
import re
import shutil
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Optional

from script2video.core.config import Settings
from script2video.core.errors import ExportError, SaveCancelled
from script2video.schemas.export import ArtifactLocation, AudioEncoding, ExportSettings, VideoEncoding
from script2video.services.compositor import CompositorState, TimelineCompositor
from script2video.services.engine import Composition, RenderingEngine

logger = logging.getLogger(__name__)

# Async callable: suggested filename -> chosen destination; raises SaveCancelled
SaveLocationProvider = Callable[[str], Awaitable[Path]]
# Async callable: (rendered temp file, suggested filename) -> final path
SavedHandler = Callable[[Path, str], Awaitable[Path]]

DEFAULT_EXTENSION = ".mp4"


def sanitize_filename(filename: str) -> str:
    """
    Sanitize a suggested filename for the downloads directory.

    - Strips directory components (basename only)
    - Removes null bytes, control characters and characters forbidden on Windows
    - Limits the name to 100 characters and forces the .mp4 extension

    Example:
        >>> sanitize_filename("../My: Video?")
        'My Video.mp4'
    """
    filename = os.path.basename(filename.replace("\\", "/"))
    filename = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "", filename)

    name, ext = os.path.splitext(filename)
    if ext.lower() != DEFAULT_EXTENSION:
        name = filename
    name = name.strip(". ")[:100]

    if not name:
        name = f"video_{uuid.uuid4().hex[:8]}"

    return f"{name}{DEFAULT_EXTENSION}"


def unique_path(directory: Path, filename: str) -> Path:
    """Return directory/filename, adding " (n)" before the extension until unused."""
    candidate = directory / filename
    stem, suffix = os.path.splitext(filename)
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem} ({counter}){suffix}"
        counter += 1
    return candidate


def build_export_settings(settings: Settings, composition: Composition) -> ExportSettings:
    """Encoder settings for a composition: its resolution and fps, configured codecs."""
    return ExportSettings(
        video=VideoEncoding(
            codec=settings.video_codec,
            bitrate=settings.video_bitrate,
            fps=composition.fps,
            width=composition.width,
            height=composition.height,
        ),
        audio=AudioEncoding(
            codec=settings.audio_codec,
            bitrate=settings.audio_bitrate,
            sample_rate=settings.audio_sample_rate,
            channels=settings.audio_channels,
        ),
    )


def save_to_directory(directory: Path) -> SavedHandler:
    """Saved handler that moves the rendered file into directory."""

    async def handler(rendered: Path, suggested_filename: str) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        target = unique_path(directory, sanitize_filename(suggested_filename))
        await asyncio.to_thread(shutil.move, str(rendered), str(target))
        return target

    return handler


class ExportPipeline:
    """
    Exports the composition of a ready compositor.

    Usage:
        pipeline = ExportPipeline(engine, compositor, export_settings, work_dir, downloads_dir)
        artifact = await pipeline.export("my-video.mp4")
    """

    def __init__(
        self,
        engine: RenderingEngine,
        compositor: TimelineCompositor,
        settings: ExportSettings,
        work_dir: Path,
        downloads_dir: Path,
        save_location: Optional[SaveLocationProvider] = None,
        on_saved: Optional[SavedHandler] = None,
    ):
        self.engine = engine
        self.compositor = compositor
        self.settings = settings
        self.work_dir = Path(work_dir)
        self.save_location = save_location
        self.on_saved = on_saved or save_to_directory(Path(downloads_dir))

    def _ready_composition(self) -> Composition:
        if self.compositor.state is not CompositorState.READY or self.compositor.composition is None:
            raise ExportError(f"Cannot export: compositor is {self.compositor.state.value}, not ready")
        return self.compositor.composition

    async def _render(self, composition: Composition, destination: Path) -> int:
        encoder = self.engine.encoder(composition, self.settings)
        written = await encoder.render(destination)
        return Path(written).stat().st_size

    async def export(self, suggested_filename: str) -> ArtifactLocation:
        """
        Render the composition, trying the save-location strategy first.

        Raises:
            ExportError: If the composition is not ready or the anonymous strategy fails
        """
        composition = self._ready_composition()

        if self.save_location is not None:
            try:
                destination = Path(await self.save_location(suggested_filename))
                size = await self._render(composition, destination)
                logger.info(f"Exported to chosen location: {destination} ({size} bytes)")
                return ArtifactLocation(path=destination, strategy="save_location", size_bytes=size)
            except SaveCancelled:
                logger.info("Save location cancelled; falling back to anonymous export")
            except Exception as e:
                logger.warning(f"Save-location export failed, falling back to anonymous export: {e}")
        else:
            logger.info("No save-location capability; using anonymous export")

        self.work_dir.mkdir(parents=True, exist_ok=True)
        rendered = self.work_dir / f"export_{uuid.uuid4().hex}{DEFAULT_EXTENSION}"
        try:
            await self._render(composition, rendered)
            final_path = Path(await self.on_saved(rendered, suggested_filename))
        except Exception as e:
            rendered.unlink(missing_ok=True)
            raise ExportError("Export failed", e) from e

        size = final_path.stat().st_size
        logger.info(f"Exported anonymously: {final_path} ({size} bytes)")
        return ArtifactLocation(path=final_path, strategy="anonymous", size_bytes=size)
