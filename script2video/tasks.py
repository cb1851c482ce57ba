"""
Compose Task for the Script2Video Worker

Consumes a terminal-success ScriptTimeline payload and runs
compose -> export -> history put, reporting progress through RQ job meta.

Progress ranges:
- 0-10: validating and preparing
- 10-25: fetching media and composing
- 25-95: rendering (ffmpeg progress scaled)
- 95-100: recording history

Job timeout: COMPOSE_JOB_TIMEOUT (30 minutes)
"""

import asyncio
import logging
from typing import Any, Mapping, Optional

from rq import get_current_job

from script2video.core.config import get_settings
from script2video.schemas.timeline import ScriptTimeline
from script2video.services.pipeline import build_pipeline

logger = logging.getLogger(__name__)

COMPOSE_JOB_TIMEOUT = 1800  # 30 minutes


def update_job_progress(percent: int, message: str) -> None:
    """
    Update RQ job progress metadata.

    Args:
        percent: Progress percentage (0-100)
        message: Progress message
    """
    job = get_current_job()
    if job:
        job.meta["progress_percent"] = percent
        job.meta["progress_message"] = message
        job.save_meta()


def enqueue_compose(payload: Mapping[str, Any], title: str, output_filename: Optional[str] = None):
    """
    Enqueue a compose job with the proper timeout.

    Use this instead of enqueueing compose_script_video directly.

    Args:
        payload: ScriptTimeline wire payload
        title: History title for the composed video
        output_filename: Suggested export filename

    Returns:
        RQ Job instance
    """
    from script2video.queues import compose_queue

    return compose_queue.enqueue(
        compose_script_video,
        dict(payload),
        title,
        output_filename,
        job_timeout=COMPOSE_JOB_TIMEOUT,
    )


async def _compose(timeline: ScriptTimeline, title: str, output_filename: Optional[str]) -> dict:
    def progress_callback(percent: int, message: str) -> None:
        # Scale ffmpeg progress (0-100) to our range (25-95)
        update_job_progress(25 + int(percent * 0.7), message)

    pipeline = await build_pipeline(get_settings(), progress_callback=progress_callback)
    try:
        update_job_progress(10, "Fetching media and composing")
        result = await pipeline.run(timeline, title, output_filename)
    finally:
        await pipeline.aclose()

    return {
        "history_id": result.history_id,
        "output_path": str(result.artifact.path),
        "strategy": result.artifact.strategy,
        "file_size": result.artifact.size_bytes,
        "duration_frames": result.compose.duration_frames,
        "placeholder_count": result.compose.placeholder_count,
        "diagnostics": [diagnostic.to_dict() for diagnostic in result.compose.diagnostics],
    }


def compose_script_video(
    payload: Mapping[str, Any],
    title: str,
    output_filename: Optional[str] = None,
) -> dict:
    """
    RQ task to compose, export and record one script timeline.

    Args:
        payload: ScriptTimeline wire payload (camelCase keys)
        title: History title
        output_filename: Suggested export filename

    Returns:
        dict with history_id, output_path, strategy, file_size,
        duration_frames, placeholder_count and diagnostics

    Raises:
        StructuralError: If the payload is not a usable timeline
        ExportError: If rendering fails
        StoreTransactionError: If the history write fails
    """
    logger.info(f"Starting compose job: {title!r}")
    update_job_progress(0, "Validating script timeline")

    timeline = ScriptTimeline.from_payload(payload)
    result = asyncio.run(_compose(timeline, title, output_filename))

    update_job_progress(100, "Complete")
    logger.info(f"Compose job finished: {result['output_path']}")
    return result
