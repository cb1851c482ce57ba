"""
FFmpeg Rendering Engine

Renders a Composition with a single ffmpeg invocation.

FFmpeg Filter Graph:
- One input per clip; in-memory clip bytes are materialized under the work
  directory first (content-addressed, so repeated assets are written once)
- A black color source at the composition resolution is the canvas
- Each visual clip is trimmed, scaled/padded to the canvas, shifted to its
  timeline offset with setpts and overlaid while between(t, start, end)
- Images use -loop 1 so they can be trimmed by time
- Audio clips are delayed to their offset with adelay and mixed with amix;
  a silent track is generated when there is no audio
"""

import hashlib
import logging
import uuid
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles
import aiofiles.os

from script2video.schemas.export import ExportSettings
from script2video.services.engine import Clip, Composition, Encoder, RenderingEngine
from script2video.services.ffmpeg_runner import FFmpegError, ProgressCallback, run_ffmpeg_with_progress
from script2video.services.time_model import ms_at, seconds_at

logger = logging.getLogger(__name__)


class FFmpegCommandBuilder:
    """
    Builds an FFmpeg command from a Composition.

    Args:
        composition: Composition whose clips are rendered in insertion order
        settings: Encoder settings
        output_path: Path for the output video file
        clip_paths: Input path or URL for each clip, parallel to composition.clips
    """

    def __init__(
        self,
        composition: Composition,
        settings: ExportSettings,
        output_path: str,
        clip_paths: List[str],
    ):
        self.composition = composition
        self.settings = settings
        self.output_path = output_path
        self.clip_paths = clip_paths

        # clip index -> input index
        self.input_map: Dict[int, int] = {}
        self.next_input_idx = 0

    @property
    def total_frames(self) -> int:
        return self.composition.duration_frames

    def _renders(self, clip: Clip) -> bool:
        # Zero-length visuals stay in the composition but produce no frames
        return not (clip.is_visual and clip.duration_frames == 0)

    def build(self) -> List[str]:
        """
        Build complete FFmpeg command.

        Raises:
            FFmpegError: If the composition has nothing to render
        """
        if not any(self._renders(clip) for clip in self.composition.clips):
            raise FFmpegError("Composition has no clips to render")

        cmd = ["ffmpeg", "-y", "-hide_banner"]
        cmd.extend(self._build_inputs())
        cmd.extend(["-filter_complex", self._build_filter_complex()])
        cmd.extend(self._build_output_options())
        cmd.append(str(self.output_path))
        return cmd

    def _build_inputs(self) -> List[str]:
        inputs = []
        for index, clip in enumerate(self.composition.clips):
            if not self._renders(clip):
                continue
            path = self.clip_paths[index]
            if clip.kind == "image":
                # -loop 1 allows trimming image stream by time
                inputs.extend(["-loop", "1", "-i", path])
            else:
                inputs.extend(["-i", path])
            self.input_map[index] = self.next_input_idx
            self.next_input_idx += 1
        return inputs

    def _build_filter_complex(self) -> str:
        filters = [self._build_canvas()]
        filters.extend(self._build_overlays())
        filters.extend(self._build_audio_mix())
        return ";".join(filters)

    def _build_canvas(self) -> str:
        video = self.settings.video
        canvas = f"color=c=black:s={video.width}x{video.height}:r={video.fps}"
        if self.total_frames > 0:
            canvas += f":d={seconds_at(self.total_frames, video.fps)}"
        return f"{canvas}[base]"

    def _build_overlays(self) -> List[str]:
        video = self.settings.video
        w, h, fps = video.width, video.height, video.fps
        filters = []
        current = "[base]"
        count = 0

        for index, clip in enumerate(self.composition.clips):
            if not clip.is_visual or index not in self.input_map:
                continue

            duration_frames = clip.duration_frames
            if duration_frames is None:
                duration_frames = max(self.total_frames - clip.offset_frames, 0)

            start_sec = seconds_at(clip.offset_frames, fps)
            duration_sec = seconds_at(duration_frames, fps)
            end_sec = seconds_at(clip.offset_frames + duration_frames, fps)

            if clip.kind == "video":
                source_in_sec = seconds_at(clip.source_start_frames, fps)
                trim = f"trim=start={source_in_sec}:duration={duration_sec}"
            else:
                trim = f"trim=duration={duration_sec}"

            clip_label = f"[c{count}]"
            filters.append(
                f"[{self.input_map[index]}:v]"
                f"{trim},"
                f"setpts=PTS-STARTPTS+{start_sec}/TB,"
                f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
                f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:black,"
                f"setsar=1,fps={fps}{clip_label}"
            )
            out_label = f"[o{count}]"
            filters.append(
                f"{current}{clip_label}"
                f"overlay=eof_action=pass:enable='between(t,{start_sec},{end_sec})'{out_label}"
            )
            current = out_label
            count += 1

        filters.append(f"{current}null[outv]")
        return filters

    def _build_audio_mix(self) -> List[str]:
        audio = self.settings.audio
        fps = self.settings.video.fps
        layout = "mono" if audio.channels == 1 else "stereo"
        filters = []
        labels = []

        for index, clip in enumerate(self.composition.clips):
            if index not in self.input_map or clip.muted:
                continue
            if clip.kind not in ("audio", "video"):
                continue

            chain = f"[{self.input_map[index]}:a]"
            if clip.duration_frames is not None:
                chain += (
                    f"atrim=start={seconds_at(clip.source_start_frames, fps)}"
                    f":duration={seconds_at(clip.duration_frames, fps)},"
                )
            delay_ms = ms_at(clip.offset_frames, fps)
            label = f"[a{len(labels)}]"
            chain += (
                f"asetpts=PTS-STARTPTS,"
                f"adelay={delay_ms}:all=1,"
                f"aformat=sample_rates={audio.sample_rate}:channel_layouts={layout}{label}"
            )
            filters.append(chain)
            labels.append(label)

        if not labels:
            total_sec = seconds_at(self.total_frames, fps)
            filters.append(f"anullsrc=r={audio.sample_rate}:cl={layout},atrim=0:{total_sec}[outa]")
        elif len(labels) == 1:
            filters.append(f"{labels[0]}anull[outa]")
        else:
            filters.append(
                f"{''.join(labels)}amix=inputs={len(labels)}:duration=longest:normalize=0[outa]"
            )
        return filters

    def _build_output_options(self) -> List[str]:
        video = self.settings.video
        audio = self.settings.audio
        options = [
            "-map", "[outv]",
            "-map", "[outa]",
            "-c:v", video.codec,
            "-b:v", video.bitrate,
            "-r", str(video.fps),
            "-pix_fmt", "yuv420p",
            "-c:a", audio.codec,
            "-b:a", audio.bitrate,
            "-ar", str(audio.sample_rate),
            "-ac", str(audio.channels),
            "-movflags", "+faststart",
        ]
        if self.total_frames > 0:
            options.extend(["-t", str(seconds_at(self.total_frames, video.fps))])
        else:
            # Audio-only composition: the canvas is unbounded, stop with the audio
            options.append("-shortest")
        return options


class FFmpegEncoder(Encoder):
    """Materializes clip bytes and runs ffmpeg for one composition."""

    def __init__(
        self,
        composition: Composition,
        settings: ExportSettings,
        work_dir: Path,
        timeout_seconds: int = 1800,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        super().__init__(composition, settings)
        self.work_dir = Path(work_dir)
        self.timeout_seconds = timeout_seconds
        self.progress_callback = progress_callback

    async def _materialize(self) -> List[str]:
        clip_dir = self.work_dir / "clips"
        clip_dir.mkdir(parents=True, exist_ok=True)

        paths = []
        for clip in self.composition.clips:
            if isinstance(clip.source, str):
                paths.append(clip.source)
                continue

            digest = hashlib.sha256(clip.source).hexdigest()
            path = clip_dir / f"{digest}.{clip.kind}"
            if not path.exists():
                temp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
                async with aiofiles.open(temp_path, "wb") as f:
                    await f.write(clip.source)
                await aiofiles.os.replace(temp_path, path)
            paths.append(str(path))
        return paths

    def build_command(self, destination: Path, clip_paths: List[str]) -> List[str]:
        builder = FFmpegCommandBuilder(self.composition, self.settings, str(destination), clip_paths)
        return builder.build()

    async def render(self, destination: Path) -> Path:
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        clip_paths = await self._materialize()
        cmd = self.build_command(destination, clip_paths)

        total_ms = ms_at(self.composition.duration_frames, self.composition.fps)
        logger.info(
            f"Rendering {len(self.composition.clips)} clips "
            f"({self.composition.duration_frames} frames) to {destination}"
        )
        await run_ffmpeg_with_progress(
            cmd,
            total_duration_ms=total_ms,
            progress_callback=self.progress_callback,
            timeout_seconds=self.timeout_seconds,
        )

        if not destination.exists() or destination.stat().st_size == 0:
            raise FFmpegError("Output file not created or empty")
        return destination


class FFmpegEngine(RenderingEngine):
    """
    RenderingEngine backed by the ffmpeg command line.

    Usage:
        engine = FFmpegEngine(settings.work_dir)
        composition = engine.new_composition(1920, 1080, 30)
        composition.add(engine.video_clip(data, muted=True).offset(0).subclip(0, 150))
        await engine.encoder(composition, ExportSettings()).render(Path("out.mp4"))
    """

    def __init__(
        self,
        work_dir: Path,
        timeout_seconds: int = 1800,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.work_dir = Path(work_dir)
        self.timeout_seconds = timeout_seconds
        self.progress_callback = progress_callback

    def encoder(self, composition: Composition, settings: ExportSettings) -> FFmpegEncoder:
        return FFmpegEncoder(
            composition,
            settings,
            work_dir=self.work_dir,
            timeout_seconds=self.timeout_seconds,
            progress_callback=self.progress_callback,
        )
