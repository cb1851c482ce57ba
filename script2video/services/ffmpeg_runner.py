"""
FFmpeg Runner with Timeout Enforcement

Runs FFmpeg as an asyncio subprocess with:
- Progress tracking via -progress pipe:1
- Strict timeout enforcement
- Its own session/process group for clean termination
- stderr drained concurrently and attached to failures
"""

import asyncio
import logging
import os
import re
import signal
import subprocess
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

# Progress output patterns, in order of preference
TIME_US_PATTERN = re.compile(r"out_time_us=(\d+)")
TIME_MS_PATTERN = re.compile(r"out_time_ms=(\d+)")
TIME_STR_PATTERN = re.compile(r"out_time=(\d+):(\d+):(\d+)\.(\d+)")
PROGRESS_PATTERN = re.compile(r"progress=(\w+)")

# Grace period for ffmpeg to exit after its progress stream ends
EXIT_GRACE_SECONDS = 30


class FFmpegTimeout(Exception):
    """Raised when FFmpeg exceeds the allowed timeout."""

    pass


class FFmpegError(Exception):
    """Raised when FFmpeg cannot start or exits with a non-zero code."""

    pass


def parse_progress_time(line: str) -> Optional[int]:
    """
    Parse the current output time from one FFmpeg progress line.

    Accepts out_time_us (microseconds), out_time_ms (which, despite the name,
    ffmpeg also reports in microseconds) and out_time=HH:MM:SS.micro.

    Returns:
        Current time in milliseconds, or None if the line carries no time
    """
    match = TIME_US_PATTERN.search(line) or TIME_MS_PATTERN.search(line)
    if match:
        return int(match.group(1)) // 1000

    match = TIME_STR_PATTERN.search(line)
    if match:
        hours, minutes, seconds = (int(match.group(i)) for i in (1, 2, 3))
        microseconds = int(match.group(4).ljust(6, "0")[:6])
        return hours * 3_600_000 + minutes * 60_000 + seconds * 1000 + microseconds // 1000

    return None


async def _consume_progress(
    stream: asyncio.StreamReader,
    total_duration_ms: int,
    progress_callback: Optional[ProgressCallback],
) -> None:
    last_percent = 0
    while True:
        raw = await stream.readline()
        if not raw:
            return
        line = raw.decode("utf-8", errors="replace").strip()

        progress_match = PROGRESS_PATTERN.search(line)
        if progress_match and progress_match.group(1) == "end":
            logger.info("FFmpeg signaled completion")
            continue

        current_ms = parse_progress_time(line)
        if current_ms is not None and total_duration_ms > 0:
            percent = min(99, int((current_ms / total_duration_ms) * 100))
            if percent > last_percent:
                last_percent = percent
                if progress_callback:
                    progress_callback(percent, f"Rendering: {percent}%")


async def run_ffmpeg_with_progress(
    cmd: List[str],
    total_duration_ms: int,
    progress_callback: Optional[ProgressCallback] = None,
    timeout_seconds: int = 1800,
) -> None:
    """
    Run an FFmpeg command with progress tracking and timeout enforcement.

    Args:
        cmd: FFmpeg command as list of arguments (without -progress)
        total_duration_ms: Expected output duration, used for percentages
        progress_callback: Optional function called with (percent, message)
        timeout_seconds: Maximum allowed runtime in seconds

    Raises:
        FFmpegTimeout: If FFmpeg exceeds the timeout
        FFmpegError: If FFmpeg is missing or exits with a non-zero code
    """
    cmd_with_progress = cmd + ["-progress", "pipe:1", "-stats_period", "0.5"]

    logger.info(f"Starting FFmpeg with timeout={timeout_seconds}s, duration={total_duration_ms}ms")
    logger.debug(f"FFmpeg command: {' '.join(cmd_with_progress)}")

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd_with_progress,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise FFmpegError(f"Could not start ffmpeg: {e}") from e

    stderr_task = asyncio.ensure_future(process.stderr.read())
    loop = asyncio.get_running_loop()
    started = loop.time()

    try:
        await asyncio.wait_for(
            _consume_progress(process.stdout, total_duration_ms, progress_callback),
            timeout=timeout_seconds,
        )
        return_code = await asyncio.wait_for(process.wait(), timeout=EXIT_GRACE_SECONDS)
    except asyncio.TimeoutError:
        elapsed = loop.time() - started
        logger.warning(f"FFmpeg timeout after {elapsed:.1f}s (limit: {timeout_seconds}s)")
        _kill_process_group(process)
        await process.wait()
        stderr_task.cancel()
        raise FFmpegTimeout(f"FFmpeg exceeded timeout of {timeout_seconds} seconds")
    except asyncio.CancelledError:
        _kill_process_group(process)
        stderr_task.cancel()
        raise

    stderr_output = (await stderr_task).decode("utf-8", errors="replace")

    if return_code != 0:
        error_msg = f"FFmpeg failed with code {return_code}"
        if stderr_output:
            error_msg += f": {stderr_output[-2000:]}"
        logger.error(error_msg)
        raise FFmpegError(error_msg)

    logger.info(f"FFmpeg completed successfully in {loop.time() - started:.1f}s")
    if progress_callback:
        progress_callback(100, "Complete")


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill FFmpeg and its whole process group with SIGKILL."""
    try:
        pgid = os.getpgid(process.pid)
        logger.info(f"Killing FFmpeg process group {pgid}")
        os.killpg(pgid, signal.SIGKILL)
    except ProcessLookupError:
        logger.debug("Process already terminated")
    except (AttributeError, OSError) as e:
        # No process groups on this platform, or not permitted
        logger.warning(f"Error killing process group: {e}")
        try:
            process.kill()
        except ProcessLookupError:
            pass


def validate_ffmpeg_available() -> bool:
    """
    Check if FFmpeg is available and working.

    Returns:
        True if FFmpeg is available, False otherwise
    """
    try:
        result = subprocess.run(
            ["ffmpeg", "-version"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"FFmpeg not available: {e}")
        return False
