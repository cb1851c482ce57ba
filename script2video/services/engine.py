"""
Rendering Engine Interface

The compositor places clips on a Composition through this interface and
never touches an encoder directly. Clip sources are raw bytes (resolved
through the media cache) or a URL/path string the engine reads itself.

Frame positions are integers at the composition's fps; clip placement is:
- offset(frame): timeline frame where the clip starts
- subclip(start, length): source in-point and length, in frames
- trim(start_frame, end_frame): visible timeline range; sets offset and length
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional, Union

from script2video.schemas.export import ExportSettings
from script2video.services.time_model import DEFAULT_FPS

ClipSource = Union[bytes, str]


class Clip:
    """A media clip placed on the composition timeline."""

    kind = "clip"
    is_visual = True

    def __init__(self, source: ClipSource, muted: bool = False):
        self.source = source
        self.muted = muted
        self.offset_frames = 0
        self.source_start_frames = 0
        self.duration_frames: Optional[int] = None

    def offset(self, frame: int) -> "Clip":
        if frame < 0:
            raise ValueError(f"offset must be non-negative, got {frame}")
        self.offset_frames = frame
        return self

    def subclip(self, start: int, length: int) -> "Clip":
        if start < 0 or length < 0:
            raise ValueError(f"subclip range must be non-negative, got ({start}, {length})")
        self.source_start_frames = start
        self.duration_frames = length
        return self

    def trim(self, start_frame: int, end_frame: int) -> "Clip":
        if end_frame < start_frame:
            raise ValueError(f"trim end {end_frame} precedes start {start_frame}")
        self.offset(start_frame)
        self.duration_frames = end_frame - start_frame
        return self

    @property
    def end_frame(self) -> Optional[int]:
        """Timeline frame where the clip ends, None for natural length."""
        if self.duration_frames is None:
            return None
        return self.offset_frames + self.duration_frames

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__}(offset={self.offset_frames}, "
            f"duration={self.duration_frames}, muted={self.muted})>"
        )


class AudioClip(Clip):
    kind = "audio"
    is_visual = False


class VideoClip(Clip):
    kind = "video"


class ImageClip(Clip):
    kind = "image"


class Composition:
    """
    Ordered set of clips at a fixed resolution and frame rate.

    Later clips draw on top of earlier ones where they overlap.
    """

    def __init__(self, width: int, height: int, fps: int = DEFAULT_FPS):
        self.width = width
        self.height = height
        self.fps = fps
        self.clips: List[Clip] = []
        self.player: Optional[Any] = None
        self.playing = False
        self.position_seconds = 0.0

    def add(self, clip: Clip) -> Clip:
        self.clips.append(clip)
        return clip

    def clips_of(self, kind: str) -> List[Clip]:
        return [clip for clip in self.clips if clip.kind == kind]

    @property
    def duration_frames(self) -> int:
        """End of the last bounded clip; natural-length audio is not counted."""
        return max((clip.end_frame for clip in self.clips if clip.end_frame is not None), default=0)

    @property
    def duration_seconds(self) -> float:
        return self.duration_frames / self.fps

    # Preview playback; only meaningful once a player handle is mounted

    def mount(self, handle: Any) -> None:
        self.player = handle

    def play(self) -> None:
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    def seek(self, seconds: float) -> None:
        self.position_seconds = max(0.0, seconds)


class Encoder(ABC):
    """Renders one composition to a file."""

    def __init__(self, composition: Composition, settings: ExportSettings):
        self.composition = composition
        self.settings = settings

    @abstractmethod
    async def render(self, destination: Path) -> Path:
        """
        Encode the composition to destination.

        Returns:
            The written file path

        Raises:
            Exception: Any encoder failure; callers treat it as export failure
        """


class RenderingEngine(ABC):
    """Factory for compositions, clips and encoders."""

    def new_composition(self, width: int, height: int, fps: int = DEFAULT_FPS) -> Composition:
        return Composition(width, height, fps)

    def audio_clip(self, source: ClipSource) -> AudioClip:
        return AudioClip(source)

    def video_clip(self, source: ClipSource, muted: bool = False) -> VideoClip:
        return VideoClip(source, muted=muted)

    def image_clip(self, source: ClipSource) -> ImageClip:
        return ImageClip(source)

    @abstractmethod
    def encoder(self, composition: Composition, settings: ExportSettings) -> Encoder:
        """Create an encoder for the composition."""
