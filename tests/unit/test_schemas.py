"""
Unit tests for the script timeline schemas.
"""

import json

import pytest

from script2video.core.errors import StructuralError
from script2video.schemas.timeline import Point, ScriptTimeline, Section
from tests.conftest import AUDIO_URL, VIDEO_URL, make_payload, make_point


class TestScriptTimelinePayload:
    """Tests for ScriptTimeline.from_payload / to_payload."""

    def test_parses_camel_case_mapping(self, simple_payload):
        timeline = ScriptTimeline.from_payload(simple_payload)

        assert timeline.success is True
        assert len(timeline.sections) == 1
        section = timeline.sections[0]
        assert section.section_id == "s1"
        assert section.audio_url == AUDIO_URL
        assert section.voice_over_id == "vo1"
        assert section.points[0].video_url == VIDEO_URL
        assert section.points[0].start_time == 0
        assert section.points[0].end_time == 5000

    def test_parses_json_text_and_bytes(self, simple_payload):
        text = json.dumps(simple_payload)
        assert ScriptTimeline.from_payload(text) == ScriptTimeline.from_payload(text.encode())

    def test_accepts_data_key_for_sections(self):
        payload = {"success": True, "data": [{"sectionId": "s1", "points": [make_point(0, 1000)]}]}
        timeline = ScriptTimeline.from_payload(payload)
        assert timeline.sections[0].section_id == "s1"

    def test_to_payload_uses_wire_keys(self, simple_timeline):
        payload = simple_timeline.to_payload()
        assert "sections" in payload
        point = payload["sections"][0]["points"][0]
        assert set(point) == {"text", "videoId", "videoUrl", "videoThumbnail", "startTime", "endTime"}
        assert ScriptTimeline.from_payload(payload) == simple_timeline

    def test_missing_success_is_structural_error(self):
        with pytest.raises(StructuralError):
            ScriptTimeline.from_payload({"sections": []})

    def test_invalid_json_is_structural_error(self):
        with pytest.raises(StructuralError):
            ScriptTimeline.from_payload("{not json")

    def test_end_before_start_is_structural_error(self):
        with pytest.raises(StructuralError):
            ScriptTimeline.from_payload(make_payload([{"points": [make_point(3000, 1000)]}]))

    def test_negative_time_is_structural_error(self):
        with pytest.raises(StructuralError):
            ScriptTimeline.from_payload(make_payload([{"points": [make_point(-10, 1000)]}]))

    def test_fractional_milliseconds_accepted(self):
        timeline = ScriptTimeline.from_payload(make_payload([{"points": [make_point(0, 1500.5)]}]))

        point = timeline.sections[0].points[0]
        assert point.end_time == 1500.5
        assert point.duration_ms == 1500.5

    def test_integer_milliseconds_stay_integers(self, simple_timeline):
        point = simple_timeline.sections[0].points[0]
        assert isinstance(point.end_time, int)
        assert simple_timeline.to_payload()["sections"][0]["points"][0]["endTime"] == 5000

    def test_infinite_time_is_structural_error(self):
        with pytest.raises(StructuralError):
            ScriptTimeline.from_payload(make_payload([{"points": [make_point(0, float("inf"))]}]))

    def test_point_count(self):
        timeline = ScriptTimeline.from_payload(make_payload([
            {"points": [make_point(0, 1000), make_point(1000, 2000)]},
            {"points": []},
            {"points": [make_point(2000, 3000)]},
        ]))
        assert timeline.point_count == 3


class TestSection:
    """Tests for Section span helpers."""

    def test_span_from_first_and_last_point(self):
        section = Section(points=[
            Point(start_time=1000, end_time=2000),
            Point(start_time=2000, end_time=4500),
        ])
        assert section.start_ms == 1000
        assert section.end_ms == 4500

    def test_span_of_empty_section(self):
        section = Section(section_id="empty")
        assert section.start_ms is None
        assert section.end_ms is None

    def test_zero_length_point_is_valid(self):
        point = Point(start_time=1000, end_time=1000)
        assert point.duration_ms == 0
