"""
Export settings and artifact location schemas.

Both export strategies encode with the same ExportSettings so output is
reproducible for a given timeline.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

ExportStrategy = Literal["save_location", "anonymous"]


class VideoEncoding(BaseModel):
    """Video stream settings."""
    codec: str = "libx264"
    bitrate: str = "8M"
    fps: int = Field(default=30, gt=0)
    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


class AudioEncoding(BaseModel):
    """Audio stream settings."""
    codec: str = "aac"
    bitrate: str = "192k"
    sample_rate: int = 48000
    channels: int = 2


class ExportSettings(BaseModel):
    """Fixed encoder configuration for one export."""
    video: VideoEncoding = Field(default_factory=VideoEncoding)
    audio: AudioEncoding = Field(default_factory=AudioEncoding)


class ArtifactLocation(BaseModel):
    """Where an export ended up and which strategy produced it."""
    path: Path
    strategy: ExportStrategy
    size_bytes: int = 0
