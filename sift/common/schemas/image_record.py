"""
Image Record Schema

Visual assets (charts, frameworks, screenshots) go through the same
acquire, analyze, embed shape as knowledge records.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .knowledge_record import generate_record_id, utcnow


class ChartType(str, Enum):
    BAR_CHART = "bar_chart"
    LINE_GRAPH = "line_graph"
    PIE_CHART = "pie_chart"
    INFOGRAPHIC = "infographic"
    DIAGRAM = "diagram"
    FRAMEWORK = "framework"
    MATRIX = "matrix"
    TABLE = "table"
    SCREENSHOT = "screenshot"
    OTHER = "other"


class VisualStyle(str, Enum):
    CORPORATE = "corporate"
    ACADEMIC = "academic"
    INFOGRAPHIC = "infographic"
    MINIMALIST = "minimalist"
    DETAILED = "detailed"
    COLORFUL = "colorful"
    TECHNICAL = "technical"


class ImageStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    ERROR = "error"


DEFAULT_CHART_TYPE = ChartType.OTHER
DEFAULT_VISUAL_STYLE = VisualStyle.CORPORATE


class ImageAnalysis(BaseModel):
    """Fields produced by the vision pass"""
    title: str = ""
    description: str = ""
    chart_type: ChartType = DEFAULT_CHART_TYPE
    key_insight: str = ""
    data_points: List[str] = Field(default_factory=list)
    trends_and_patterns: List[str] = Field(default_factory=list)
    topic_tags: List[str] = Field(default_factory=list)
    use_cases: List[str] = Field(default_factory=list)
    relevance_note: str = ""
    visual_style: VisualStyle = DEFAULT_VISUAL_STYLE
    degraded: bool = False

    @field_validator("data_points", "trends_and_patterns", "topic_tags", "use_cases", mode="before")
    @classmethod
    def _as_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if not isinstance(value, (list, tuple)):
            return []
        return [str(v) for v in value if v]


class ImageRecord(BaseModel):
    """An uploaded image and its analysis"""
    id: str
    owner_id: str
    image_url: str = Field(..., description="Object-storage or document-storage URL")
    title: str = ""
    source_reference: Optional[str] = None
    status: ImageStatus = ImageStatus.PENDING
    analysis: Optional[ImageAnalysis] = None
    embedding: Optional[List[float]] = None
    mime_type: Optional[str] = None
    processing_error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None


def generate_image_id(timestamp: Optional[datetime] = None) -> str:
    return generate_record_id(timestamp, prefix="img")
