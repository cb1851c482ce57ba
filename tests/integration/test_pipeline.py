"""
End-to-end pipeline tests: compose -> export -> history, with the recording
engine standing in for ffmpeg.
"""

import pytest
import pytest_asyncio

from script2video.core.errors import SaveCancelled, StructuralError
from script2video.services.pipeline import build_pipeline
from tests.conftest import AUDIO_URL, VIDEO_URL, RecordingEngine


@pytest.fixture
def recording_engine() -> RecordingEngine:
    return RecordingEngine()


@pytest_asyncio.fixture
async def pipeline(settings, recording_engine, media_proxy):
    pipeline = await build_pipeline(settings, engine=recording_engine, proxy=media_proxy)
    yield pipeline
    await pipeline.aclose()


class TestRun:
    @pytest.mark.asyncio
    async def test_anonymous_export_and_history(self, pipeline, simple_timeline, settings):
        result = await pipeline.run(simple_timeline, "First video")

        assert result.artifact.strategy == "anonymous"
        assert result.artifact.path == settings.downloads_dir / "First video.mp4"
        assert result.artifact.path.exists()
        assert result.history_id

        record = await pipeline.history.get(result.history_id)
        assert record.title == "First video"
        assert record.timeline == simple_timeline

    @pytest.mark.asyncio
    async def test_export_uses_composition_settings(self, pipeline, simple_timeline, recording_engine, settings):
        await pipeline.run(simple_timeline, "Settings")

        (_, export_settings), = recording_engine.renders
        assert export_settings.video.fps == settings.fps
        assert export_settings.video.width == settings.output_width
        assert export_settings.audio.sample_rate == settings.audio_sample_rate

    @pytest.mark.asyncio
    async def test_second_run_served_from_cache(self, pipeline, simple_timeline, origin):
        await pipeline.run(simple_timeline, "one")
        await pipeline.run(simple_timeline, "two")

        assert origin.count(AUDIO_URL) == 1
        assert origin.count(VIDEO_URL) == 1
        assert pipeline.resolver.stats["hits"] == 2

    @pytest.mark.asyncio
    async def test_repeated_titles_get_unique_files(self, pipeline, simple_timeline):
        first = await pipeline.run(simple_timeline, "same")
        second = await pipeline.run(simple_timeline, "same")

        assert first.artifact.path != second.artifact.path
        assert second.artifact.path.name == "same (1).mp4"

    @pytest.mark.asyncio
    async def test_without_history(self, pipeline, simple_timeline):
        result = await pipeline.run(simple_timeline, "untracked", store_history=False)

        assert result.history_id is None
        assert await pipeline.history.list() == []

    @pytest.mark.asyncio
    async def test_rejected_timeline_renders_nothing(self, pipeline, build_timeline, point, recording_engine):
        timeline = build_timeline([{"audioUrl": AUDIO_URL, "points": [point(0, 1000)]}], success=False)

        with pytest.raises(StructuralError):
            await pipeline.run(timeline, "rejected")

        assert recording_engine.renders == []


class TestSaveLocation:
    @pytest.mark.asyncio
    async def test_chosen_location(self, settings, recording_engine, media_proxy, simple_timeline, tmp_path):
        target = tmp_path / "chosen" / "mine.mp4"

        async def choose(suggested_filename):
            return target

        pipeline = await build_pipeline(settings, save_location=choose, engine=recording_engine, proxy=media_proxy)
        try:
            result = await pipeline.run(simple_timeline, "chosen")
        finally:
            await pipeline.aclose()

        assert result.artifact.strategy == "save_location"
        assert result.artifact.path == target
        assert target.exists()

    @pytest.mark.asyncio
    async def test_cancelled_location_falls_back(self, settings, recording_engine, media_proxy, simple_timeline):
        async def cancel(suggested_filename):
            raise SaveCancelled()

        pipeline = await build_pipeline(settings, save_location=cancel, engine=recording_engine, proxy=media_proxy)
        try:
            result = await pipeline.run(simple_timeline, "fallback")
        finally:
            await pipeline.aclose()

        assert result.artifact.strategy == "anonymous"
        assert result.artifact.path.parent == settings.downloads_dir


class TestReplay:
    @pytest.mark.asyncio
    async def test_replay_stored_record(self, pipeline, simple_timeline, recording_engine):
        first = await pipeline.run(simple_timeline, "replayable")

        replayed = await pipeline.replay(first.history_id, "again.mp4")

        assert replayed.history_id is None
        assert replayed.artifact.path.name == "again.mp4"
        assert len(recording_engine.renders) == 2
        assert len(await pipeline.history.list()) == 1

    @pytest.mark.asyncio
    async def test_replay_unknown_record(self, pipeline):
        with pytest.raises(StructuralError):
            await pipeline.replay("00000000-0000-0000-0000-000000000000")
