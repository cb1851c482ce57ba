"""
Unit tests for the RQ compose task.

Redis is not needed: the current job and the queue are replaced, and the
pipeline runs with the recording engine against the fake origin.
"""

from unittest.mock import MagicMock

import httpx
import pytest

from script2video import tasks
from script2video.core.errors import StructuralError
from script2video.services.media_proxy import MediaProxy
from script2video.services.pipeline import build_pipeline
from tests.conftest import RecordingEngine


@pytest.fixture
def job(monkeypatch):
    job = MagicMock()
    job.meta = {}
    monkeypatch.setattr(tasks, "get_current_job", lambda: job)
    return job


@pytest.fixture
def patched_pipeline(monkeypatch, settings, origin):
    """Route tasks.build_pipeline to the test settings, engine and origin."""
    engine = RecordingEngine()

    async def fake_build_pipeline(_settings=None, save_location=None, progress_callback=None):
        client = httpx.AsyncClient(transport=httpx.MockTransport(origin.handler))
        return await build_pipeline(
            settings,
            save_location=save_location,
            progress_callback=progress_callback,
            engine=engine,
            proxy=MediaProxy(client=client),
        )

    monkeypatch.setattr(tasks, "build_pipeline", fake_build_pipeline)
    return engine


class TestUpdateJobProgress:
    def test_writes_job_meta(self, job):
        tasks.update_job_progress(42, "Rendering")

        assert job.meta == {"progress_percent": 42, "progress_message": "Rendering"}
        job.save_meta.assert_called_once()

    def test_no_current_job_is_noop(self, monkeypatch):
        monkeypatch.setattr(tasks, "get_current_job", lambda: None)
        tasks.update_job_progress(10, "ignored")


class TestEnqueueCompose:
    def test_enqueues_with_job_timeout(self, monkeypatch, simple_payload):
        queue = MagicMock()
        monkeypatch.setattr("script2video.queues.compose_queue", queue)

        tasks.enqueue_compose(simple_payload, "Title", "out.mp4")

        queue.enqueue.assert_called_once_with(
            tasks.compose_script_video,
            simple_payload,
            "Title",
            "out.mp4",
            job_timeout=tasks.COMPOSE_JOB_TIMEOUT,
        )


class TestComposeScriptVideo:
    def test_composes_exports_and_records(self, job, patched_pipeline, simple_payload, settings):
        result = tasks.compose_script_video(simple_payload, "Narrated", "narrated.mp4")

        assert result["strategy"] == "anonymous"
        assert result["output_path"] == str(settings.downloads_dir / "narrated.mp4")
        assert result["file_size"] > 0
        assert result["duration_frames"] == 150
        assert result["placeholder_count"] == 0
        assert result["diagnostics"] == []
        assert result["history_id"]
        assert len(patched_pipeline.renders) == 1
        assert job.meta["progress_percent"] == 100

    def test_degraded_assets_reported(self, job, patched_pipeline, simple_payload):
        simple_payload["sections"][0]["points"][0]["videoUrl"] = "https://cdn.test/clip.mov"

        result = tasks.compose_script_video(simple_payload, "Degraded")

        assert result["placeholder_count"] == 1
        assert [d["kind"] for d in result["diagnostics"]] == ["unsupported_format"]

    def test_malformed_payload_rejected(self, job, patched_pipeline):
        with pytest.raises(StructuralError):
            tasks.compose_script_video({"success": True, "sections": "nope"}, "Broken")

        assert patched_pipeline.renders == []
