"""
Script-to-video pipeline wiring.

build_pipeline(settings) constructs the database handle, media cache,
proxy, resolver, rendering engine and history store explicitly; nothing is
a module-level singleton. ScriptVideoPipeline.run() performs one
compose -> export -> history put cycle.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from script2video.core.config import Settings, get_settings
from script2video.core.database import Database
from script2video.core.errors import StructuralError
from script2video.schemas.export import ArtifactLocation
from script2video.schemas.timeline import ScriptTimeline
from script2video.services.compositor import ComposeResult, TimelineCompositor
from script2video.services.engine import RenderingEngine
from script2video.services.export import ExportPipeline, SaveLocationProvider, SavedHandler, build_export_settings
from script2video.services.ffmpeg_engine import FFmpegEngine
from script2video.services.ffmpeg_runner import ProgressCallback
from script2video.services.history_store import HistoryId, VideoHistoryStore
from script2video.services.media_cache import MediaCache
from script2video.services.media_proxy import MediaProxy
from script2video.services.media_resolver import MediaResolver

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    compose: ComposeResult
    artifact: ArtifactLocation
    history_id: Optional[str] = None


class ScriptVideoPipeline:
    """Composes, exports and records script timelines."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        cache: MediaCache,
        proxy: MediaProxy,
        engine: RenderingEngine,
        history: VideoHistoryStore,
        save_location: Optional[SaveLocationProvider] = None,
        on_saved: Optional[SavedHandler] = None,
    ):
        self.settings = settings
        self.database = database
        self.cache = cache
        self.proxy = proxy
        self.resolver = MediaResolver(cache, proxy)
        self.engine = engine
        self.history = history
        self.save_location = save_location
        self.on_saved = on_saved

    def new_compositor(self) -> TimelineCompositor:
        return TimelineCompositor(
            self.engine,
            self.resolver,
            fps=self.settings.fps,
            width=self.settings.output_width,
            height=self.settings.output_height,
            max_concurrent_fetches=self.settings.max_concurrent_fetches,
        )

    async def run(
        self,
        timeline: ScriptTimeline,
        title: str,
        output_filename: Optional[str] = None,
        store_history: bool = True,
    ) -> PipelineResult:
        """
        Compose, export and (optionally) record one timeline.

        Raises:
            StructuralError: If the timeline is rejected
            ExportError: If no export strategy succeeds
            StoreTransactionError: If the history write fails
        """
        compositor = self.new_compositor()
        compose_result = await compositor.compose(timeline)

        exporter = ExportPipeline(
            self.engine,
            compositor,
            build_export_settings(self.settings, compose_result.composition),
            work_dir=self.settings.work_dir,
            downloads_dir=self.settings.downloads_dir,
            save_location=self.save_location,
            on_saved=self.on_saved,
        )
        artifact = await exporter.export(output_filename or f"{title or 'video'}.mp4")

        history_id = None
        if store_history:
            history_id = await self.history.put(timeline, title)

        logger.info(f"Pipeline finished: {artifact.path} ({artifact.strategy})")
        return PipelineResult(compose=compose_result, artifact=artifact, history_id=history_id)

    async def replay(self, record_id: HistoryId, output_filename: Optional[str] = None) -> PipelineResult:
        """
        Re-render a stored timeline without recording it again.

        Raises:
            StructuralError: If no record has the given id
        """
        record = await self.history.get(record_id)
        if record is None:
            raise StructuralError(f"History record not found: {record_id}")
        return await self.run(record.timeline, record.title, output_filename, store_history=False)

    async def aclose(self) -> None:
        await self.history.drain()
        await self.proxy.aclose()
        await self.database.dispose()


async def build_pipeline(
    settings: Optional[Settings] = None,
    save_location: Optional[SaveLocationProvider] = None,
    progress_callback: Optional[ProgressCallback] = None,
    engine: Optional[RenderingEngine] = None,
    proxy: Optional[MediaProxy] = None,
) -> ScriptVideoPipeline:
    """
    Construct a pipeline from settings and initialize the schema.

    Args:
        settings: Application settings (defaults to get_settings())
        save_location: Optional provider for the save-location export strategy
        progress_callback: Called with (percent, message) while rendering
        engine: Rendering engine override (defaults to FFmpegEngine)
        proxy: Media proxy override
    """
    settings = settings or get_settings()

    database = Database(settings.database_url, echo=settings.debug)
    await database.init_schema()

    cache = MediaCache(database, settings.cache_root, settings.cache_max_bytes)
    proxy = proxy or MediaProxy(
        proxy_base_url=settings.proxy_base_url,
        timeout=settings.fetch_timeout_seconds,
    )
    engine = engine or FFmpegEngine(
        settings.work_dir,
        timeout_seconds=settings.render_timeout_seconds,
        progress_callback=progress_callback,
    )

    return ScriptVideoPipeline(
        settings=settings,
        database=database,
        cache=cache,
        proxy=proxy,
        engine=engine,
        history=VideoHistoryStore(database),
        save_location=save_location,
    )
