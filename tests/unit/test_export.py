"""
Unit tests for the export pipeline and its filename helpers.
"""

from pathlib import Path

import pytest
import pytest_asyncio

from script2video.core.errors import ExportError, SaveCancelled
from script2video.schemas.export import ExportSettings
from script2video.services.export import (
    ExportPipeline,
    build_export_settings,
    sanitize_filename,
    unique_path,
)
from tests.conftest import RecordingEngine


@pytest_asyncio.fixture
async def ready_compositor(compositor, simple_timeline):
    await compositor.compose(simple_timeline)
    return compositor


def make_exporter(engine, compositor, tmp_path, save_location=None) -> ExportPipeline:
    return ExportPipeline(
        engine,
        compositor,
        ExportSettings(),
        work_dir=tmp_path / "work",
        downloads_dir=tmp_path / "downloads",
        save_location=save_location,
    )


class TestFilenames:
    """Tests for sanitize_filename and unique_path."""

    @pytest.mark.parametrize(
        "suggested,expected",
        [
            ("My Video.mp4", "My Video.mp4"),
            ("clip.MP4", "clip.mp4"),
            ("../../etc/passwd", "passwd.mp4"),
            ("what: now?", "what now.mp4"),
            ("v1.2 final", "v1.2 final.mp4"),
        ],
    )
    def test_sanitize(self, suggested, expected):
        assert sanitize_filename(suggested) == expected

    def test_sanitize_empty_generates_name(self):
        name = sanitize_filename("...")
        assert name.startswith("video_")
        assert name.endswith(".mp4")

    def test_unique_path_adds_counter(self, tmp_path):
        (tmp_path / "out.mp4").write_bytes(b"x")
        (tmp_path / "out (1).mp4").write_bytes(b"x")

        assert unique_path(tmp_path, "out.mp4") == tmp_path / "out (2).mp4"
        assert unique_path(tmp_path, "new.mp4") == tmp_path / "new.mp4"


class TestExportSettings:
    def test_built_from_composition_and_settings(self, settings, engine):
        composition = engine.new_composition(1280, 720, 25)

        export_settings = build_export_settings(settings, composition)

        assert export_settings.video.resolution == "1280x720"
        assert export_settings.video.fps == 25
        assert export_settings.video.codec == "libx264"
        assert export_settings.video.bitrate == "8M"
        assert export_settings.audio.codec == "aac"
        assert export_settings.audio.bitrate == "192k"
        assert export_settings.audio.sample_rate == 48000
        assert export_settings.audio.channels == 2


class TestExportPipeline:
    """Strategy selection and fallback."""

    @pytest.mark.asyncio
    async def test_requires_ready_composition(self, engine, compositor, tmp_path):
        with pytest.raises(ExportError):
            await make_exporter(engine, compositor, tmp_path).export("out.mp4")

    @pytest.mark.asyncio
    async def test_anonymous_without_save_capability(self, engine, ready_compositor, tmp_path):
        artifact = await make_exporter(engine, ready_compositor, tmp_path).export("My Video")

        assert artifact.strategy == "anonymous"
        assert artifact.path == tmp_path / "downloads" / "My Video.mp4"
        assert artifact.path.exists()
        assert artifact.size_bytes == artifact.path.stat().st_size
        assert list((tmp_path / "work").glob("export_*")) == []

    @pytest.mark.asyncio
    async def test_anonymous_does_not_overwrite(self, engine, ready_compositor, tmp_path):
        exporter = make_exporter(engine, ready_compositor, tmp_path)

        first = await exporter.export("clip.mp4")
        second = await exporter.export("clip.mp4")

        assert first.path.name == "clip.mp4"
        assert second.path.name == "clip (1).mp4"

    @pytest.mark.asyncio
    async def test_save_location_strategy(self, engine, ready_compositor, tmp_path):
        chosen = tmp_path / "chosen" / "final.mp4"

        async def provider(suggested: str) -> Path:
            assert suggested == "out.mp4"
            return chosen

        artifact = await make_exporter(engine, ready_compositor, tmp_path, provider).export("out.mp4")

        assert artifact.strategy == "save_location"
        assert artifact.path == chosen
        assert chosen.exists()

    @pytest.mark.asyncio
    async def test_cancelled_save_falls_back(self, engine, ready_compositor, tmp_path):
        async def provider(suggested: str) -> Path:
            raise SaveCancelled("user dismissed the dialog")

        artifact = await make_exporter(engine, ready_compositor, tmp_path, provider).export("out.mp4")

        assert artifact.strategy == "anonymous"
        assert artifact.path.exists()

    @pytest.mark.asyncio
    async def test_failed_save_render_falls_back_with_same_settings(self, ready_compositor, tmp_path):
        engine = RecordingEngine(failures=1)

        async def provider(suggested: str) -> Path:
            return tmp_path / "chosen.mp4"

        exporter = make_exporter(engine, ready_compositor, tmp_path, provider)
        artifact = await exporter.export("out.mp4")

        assert artifact.strategy == "anonymous"
        assert engine.failed == [tmp_path / "chosen.mp4"]
        (_, used_settings), = engine.renders
        assert used_settings == exporter.settings

    @pytest.mark.asyncio
    async def test_both_strategies_failing_raises(self, ready_compositor, tmp_path):
        engine = RecordingEngine(failures=2)

        async def provider(suggested: str) -> Path:
            return tmp_path / "chosen.mp4"

        with pytest.raises(ExportError) as exc_info:
            await make_exporter(engine, ready_compositor, tmp_path, provider).export("out.mp4")
        assert isinstance(exc_info.value.cause, RuntimeError)
