"""Tests for image analysis: vision passes, enum validation and fallback."""

import json

import httpx
import pytest
from unittest.mock import MagicMock

from sift.common.schemas import ChartType, ImageRecord, VisualStyle
from sift.ingest.image_analyzer import ImageAnalyzer, resolve_image_url

ANALYSIS = {
    "title": "GenAI adoption by sector",
    "description": "Bar chart of production GenAI use across five sectors.",
    "chart_type": "Bar Chart",
    "key_insight": "Banking leads adoption at 41%.",
    "data_points": ["Banking 41%", "Retail 22%"],
    "topic_tags": ["AI adoption"],
    "visual_style": "neon",
}


def make_image(**kwargs) -> ImageRecord:
    kwargs.setdefault("id", "img_20250101_abc")
    kwargs.setdefault("owner_id", "owner-1")
    kwargs.setdefault("image_url", "https://images.example.com/chart.png")
    kwargs.setdefault("title", "Sector chart")
    return ImageRecord(**kwargs)


def make_vision(*responses):
    vision = MagicMock()
    vision.supports_media = True
    vision.generate_with_media.side_effect = list(responses)
    return vision


def image_client(content_type="image/png"):
    return httpx.Client(transport=httpx.MockTransport(
        lambda request: httpx.Response(200, content=b"\x89PNG", headers={"content-type": content_type})
    ))


class TestVisionPasses:
    def test_uri_pass_validated(self):
        vision = make_vision(json.dumps(ANALYSIS))

        analysis = ImageAnalyzer(vision, http_client=image_client()).analyze(make_image())

        assert analysis.title == "GenAI adoption by sector"
        assert analysis.chart_type == ChartType.BAR_CHART
        assert analysis.visual_style == VisualStyle.CORPORATE
        assert analysis.data_points == ["Banking 41%", "Retail 22%"]
        assert not analysis.degraded
        kwargs = vision.generate_with_media.call_args.kwargs
        assert kwargs["file_uri"] == "https://images.example.com/chart.png"
        assert kwargs["mime_type"] == "image/jpeg"

    def test_inline_pass_after_uri_failure(self):
        vision = make_vision(RuntimeError("cannot fetch file"), json.dumps(ANALYSIS))

        analysis = ImageAnalyzer(vision, http_client=image_client()).analyze(make_image())

        assert not analysis.degraded
        inline = vision.generate_with_media.call_args_list[1].kwargs
        assert inline["data"] == b"\x89PNG"
        assert inline["mime_type"] == "image/png"

    def test_non_image_download_falls_back(self):
        vision = make_vision(RuntimeError("cannot fetch file"))

        analysis = ImageAnalyzer(vision, http_client=image_client("text/html")).analyze(make_image())

        assert analysis.degraded
        assert vision.generate_with_media.call_count == 1

    def test_malformed_json_falls_back(self):
        vision = make_vision("not json at all", "{}")

        analysis = ImageAnalyzer(vision, http_client=image_client()).analyze(make_image())

        assert analysis.degraded
        assert analysis.title == "Sector chart"


class TestFallback:
    def test_no_vision_model(self):
        analysis = ImageAnalyzer().analyze(make_image(title=""))

        assert analysis.degraded
        assert analysis.title == "Untitled image"
        assert analysis.description == "Image: Untitled image"
        assert analysis.chart_type == ChartType.OTHER

    def test_validate_keeps_image_title_when_model_omits_it(self):
        analysis = ImageAnalyzer().validate({"description": "A table", "chart_type": "table"}, make_image())
        assert analysis.title == "Sector chart"
        assert analysis.chart_type == ChartType.TABLE


class TestImageUrl:
    def test_drive_link_resolved(self):
        url = resolve_image_url("https://drive.google.com/file/d/abc123XYZ_0/view?usp=sharing")
        assert url == "https://lh3.googleusercontent.com/d/abc123XYZ_0"

    @pytest.mark.parametrize("url", [
        "https://images.example.com/chart.png",
        "https://cdn.example.com/a/b.jpg?size=large",
    ])
    def test_other_links_unchanged(self, url):
        assert resolve_image_url(url) == url
