"""
Sift Record Schemas

Knowledge records, image records, and their text renderings.
"""

from .knowledge_record import (
    KnowledgeRecord,
    StructuredFields,
    TagSet,
    DistributionFlags,
    ChannelFlag,
    CuratorAnnotations,
    RecordStatus,
    ContentType,
    Credibility,
    Actionability,
    Freshness,
    DEFAULT_CONTENT_TYPE,
    DEFAULT_CREDIBILITY,
    DEFAULT_ACTIONABILITY,
    DEFAULT_FRESHNESS,
    SERVICE_LINES,
    BUSINESS_FUNCTIONS,
    generate_record_id,
)
from .image_record import (
    ImageRecord,
    ImageAnalysis,
    ImageStatus,
    ChartType,
    VisualStyle,
    generate_image_id,
)
from .templates import render_embedding_text, render_image_embedding_text, render_display_text

__all__ = [
    "KnowledgeRecord",
    "StructuredFields",
    "TagSet",
    "DistributionFlags",
    "ChannelFlag",
    "CuratorAnnotations",
    "RecordStatus",
    "ContentType",
    "Credibility",
    "Actionability",
    "Freshness",
    "DEFAULT_CONTENT_TYPE",
    "DEFAULT_CREDIBILITY",
    "DEFAULT_ACTIONABILITY",
    "DEFAULT_FRESHNESS",
    "SERVICE_LINES",
    "BUSINESS_FUNCTIONS",
    "generate_record_id",
    "ImageRecord",
    "ImageAnalysis",
    "ImageStatus",
    "ChartType",
    "VisualStyle",
    "generate_image_id",
    "render_embedding_text",
    "render_image_embedding_text",
    "render_display_text",
]
