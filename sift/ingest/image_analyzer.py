"""
Image Analyzer

The image analog of structured extraction: acquire the image, run a vision
pass, validate the closed enumerations. The vision pass is tried first by
URL (the provider fetches the file) and then with downloaded bytes; if both
fail a degraded analysis derived from the image title is returned.
"""

import logging
from typing import Optional

import httpx

from ..common.fallback import StrategyResult, run_chain
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json
from ..common.schemas import ChartType, ImageAnalysis, ImageRecord, VisualStyle
from ..common.schemas.image_record import DEFAULT_CHART_TYPE, DEFAULT_VISUAL_STYLE
from .channels import drive_view_url, extract_drive_file_id, is_drive_url

logger = logging.getLogger("sift.ingest.image_analyzer")

DEFAULT_IMAGE_MIME = "image/jpeg"

IMAGE_ANALYSIS_PROMPT = """Analyze this image in detail for use in a business consulting knowledge library.

Return a JSON object with these exact fields:
{
  "title": "A clear, descriptive title (max 80 characters)",
  "description": "What the image shows, its context, and key information displayed (2-3 sentences)",
  "chart_type": "One of: bar_chart, line_graph, pie_chart, infographic, diagram, framework, matrix, table, screenshot, other",
  "key_insight": "The single most important takeaway from this image (1 sentence)",
  "data_points": ["3-5 specific data points, statistics, or metrics shown"],
  "trends_and_patterns": ["2-3 trends or patterns visible in the data"],
  "topic_tags": ["5-8 relevant topic tags like 'AI adoption', 'cloud computing'"],
  "use_cases": ["2-4 ways a consultant could use this image in presentations or reports"],
  "relevance_note": "How this relates to data, AI, analytics and digital transformation work (1-2 sentences)",
  "visual_style": "One of: corporate, academic, infographic, minimalist, detailed, colorful, technical"
}

Rules:
- Be specific and precise with data points
- If you cannot determine something, use reasonable defaults
- Return ONLY the JSON object"""


def _enum_or_default(value, enum_cls, default):
    if isinstance(value, str):
        key = value.strip().lower().replace(" ", "_")
        for member in enum_cls:
            if member.value == key:
                return member
    return default


def resolve_image_url(url: str) -> str:
    """Drive share links are turned into a directly loadable image URL."""
    if is_drive_url(url):
        file_id = extract_drive_file_id(url)
        if file_id:
            return drive_view_url(file_id)
    return url


class ImageAnalyzer:
    """
    Vision analysis for ImageRecords.

    Args:
        vision_client: Media-capable LLM client
        http_client: httpx client for the inline-bytes path
    """

    def __init__(self, vision_client: Optional[LLMClient] = None, http_client: Optional[httpx.Client] = None):
        self._vision = vision_client
        self._http = http_client or httpx.Client(timeout=30.0, follow_redirects=True)

    @property
    def strategies(self):
        return [
            ("file_uri", self._analyze_by_uri),
            ("inline", self._analyze_inline),
            ("fallback", self._fallback),
        ]

    def analyze(self, image: ImageRecord) -> ImageAnalysis:
        """Never raises; a failed vision pass yields a degraded analysis."""
        chain = run_chain(self.strategies, image)
        if chain.strategy == "fallback":
            logger.warning("Image analysis fell back for %s: %s", image.id, chain.diagnostics)
        return chain.value

    def _vision_ready(self) -> bool:
        return self._vision is not None and self._vision.supports_media

    def _parse(self, raw: str, image: ImageRecord) -> StrategyResult:
        data = parse_llm_json(raw)
        if not data or not data.get("title") and not data.get("description"):
            return StrategyResult.fail("malformed analysis JSON")
        return StrategyResult.ok(self.validate(data, image), "vision analysis")

    def _analyze_by_uri(self, image: ImageRecord) -> StrategyResult:
        if not self._vision_ready():
            return StrategyResult.fail("no vision model configured")
        try:
            raw = self._vision.generate_with_media(
                IMAGE_ANALYSIS_PROMPT,
                mime_type=image.mime_type or DEFAULT_IMAGE_MIME,
                file_uri=resolve_image_url(image.image_url),
                json_mode=True,
            )
        except Exception as e:
            logger.info("file_uri analysis failed for %s, trying inline bytes: %s", image.id, e)
            return StrategyResult.fail(f"file_uri pass failed: {e}")
        return self._parse(raw, image)

    def _analyze_inline(self, image: ImageRecord) -> StrategyResult:
        if not self._vision_ready():
            return StrategyResult.fail("no vision model configured")
        try:
            response = self._http.get(resolve_image_url(image.image_url))
            response.raise_for_status()
        except httpx.HTTPError as e:
            return StrategyResult.fail(f"image download failed: {e}")

        mime_type = image.mime_type or response.headers.get("content-type", DEFAULT_IMAGE_MIME).split(";")[0]
        if not mime_type.startswith("image/"):
            return StrategyResult.fail(f"not an image: {mime_type}")
        try:
            raw = self._vision.generate_with_media(
                IMAGE_ANALYSIS_PROMPT,
                mime_type=mime_type,
                data=response.content,
                json_mode=True,
            )
        except Exception as e:
            logger.warning("Inline analysis failed for %s: %s", image.id, e)
            return StrategyResult.fail(f"inline pass failed: {e}")
        return self._parse(raw, image)

    def _fallback(self, image: ImageRecord) -> StrategyResult:
        title = image.title or "Untitled image"
        return StrategyResult.ok(
            ImageAnalysis(
                title=title,
                description=f"Image: {title}",
                relevance_note="Pending detailed analysis.",
                degraded=True,
            ),
            "deterministic fallback",
        )

    def validate(self, data: dict, image: ImageRecord) -> ImageAnalysis:
        title = data.get("title") if isinstance(data.get("title"), str) else ""
        return ImageAnalysis(
            title=(title or image.title)[:80],
            description=str(data.get("description") or ""),
            chart_type=_enum_or_default(data.get("chart_type"), ChartType, DEFAULT_CHART_TYPE),
            key_insight=str(data.get("key_insight") or ""),
            data_points=data.get("data_points"),
            trends_and_patterns=data.get("trends_and_patterns"),
            topic_tags=data.get("topic_tags"),
            use_cases=data.get("use_cases"),
            relevance_note=str(data.get("relevance_note") or ""),
            visual_style=_enum_or_default(data.get("visual_style"), VisualStyle, DEFAULT_VISUAL_STYLE),
        )
