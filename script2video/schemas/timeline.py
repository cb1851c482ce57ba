"""
Pydantic schemas for the script timeline.

A ScriptTimeline is produced by the script-to-media service: ordered
narration sections, each with an optional audio track and an ordered list of
timed visual points. Wire payloads use camelCase keys; attributes are
snake_case. The section list may arrive under "sections" or under the
older "data" key.

Example usage:
    from script2video.schemas.timeline import ScriptTimeline

    timeline = ScriptTimeline.from_payload(json_text)
"""

from typing import Annotated, Any, List, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, NonNegativeInt, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from script2video.core.errors import StructuralError


# Integers stay integers on the wire; fractional values are kept as floats
Milliseconds = Union[NonNegativeInt, Annotated[float, Field(ge=0, allow_inf_nan=False)]]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Point(_WireModel):
    """A single timed visual insertion within a section.

    Times are absolute timeline milliseconds and may be fractional; they are
    rounded to frames once, at placement. A zero-length point is valid.
    """
    text: str = ""
    video_id: str = ""
    video_url: str = ""
    video_thumbnail: str = ""
    start_time: Milliseconds = Field(..., description="Start on the timeline in milliseconds")
    end_time: Milliseconds = Field(..., description="End on the timeline in milliseconds")

    @model_validator(mode="after")
    def _check_range(self) -> "Point":
        if self.end_time < self.start_time:
            raise ValueError(
                f"endTime ({self.end_time}) must be >= startTime ({self.start_time})"
            )
        return self

    @property
    def duration_ms(self) -> Union[int, float]:
        return self.end_time - self.start_time


class Section(_WireModel):
    """A narration unit: one audio track and an ordered list of points.

    Points are expected to be contiguous but gaps and overlaps are tolerated.
    """
    section_id: str = ""
    audio_url: Optional[str] = None
    voice_over_id: str = ""
    points: List[Point] = Field(default_factory=list)

    @property
    def start_ms(self) -> Optional[Milliseconds]:
        """First point's start, or None when the section has no points."""
        return self.points[0].start_time if self.points else None

    @property
    def end_ms(self) -> Optional[Milliseconds]:
        """Last point's end, or None when the section has no points."""
        return self.points[-1].end_time if self.points else None


class ScriptTimeline(_WireModel):
    """The complete script description consumed by one composition."""
    success: bool
    sections: List[Section] = Field(
        default_factory=list,
        validation_alias=AliasChoices("sections", "data"),
    )

    @classmethod
    def from_payload(cls, payload: Union[str, bytes, Mapping[str, Any]]) -> "ScriptTimeline":
        """
        Validate a raw payload (JSON text or mapping).

        Raises:
            StructuralError: If the payload does not describe a timeline
        """
        try:
            if isinstance(payload, (str, bytes)):
                return cls.model_validate_json(payload)
            return cls.model_validate(payload)
        except ValidationError as e:
            raise StructuralError(
                f"Malformed script timeline ({e.error_count()} validation errors): {e}"
            ) from e

    def to_payload(self) -> dict:
        """Serialize to the camelCase wire form."""
        return self.model_dump(by_alias=True, mode="json")

    @property
    def point_count(self) -> int:
        return sum(len(section.points) for section in self.sections)
