"""
Infographic Generator

Renders a record's findings into a 16:9 infographic through the image
provider and stores it in the media store. Quick and premium differ only
in how much the prompt asks for.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from ..common.errors import ImageGenerationError
from ..common.llm_client import LLMClient
from ..common.media_store import MediaStore
from ..common.schemas import KnowledgeRecord
from .renderer import strip_forbidden

logger = logging.getLogger("sift.distribution.infographic")

MAX_PROMPT_FINDINGS = 5
SUMMARY_FALLBACK_CHARS = 500


class InfographicKind(str, Enum):
    QUICK = "quick"
    PREMIUM = "premium"


def build_prompt(record: KnowledgeRecord, kind: InfographicKind) -> str:
    """Image prompt from the record's title, findings and relevance note."""
    fields = record.structured
    title = strip_forbidden(record.display_title)
    findings = [strip_forbidden(f) for f in (fields.findings if fields else [])][:MAX_PROMPT_FINDINGS]
    if not findings and fields and fields.summary:
        findings = [strip_forbidden(fields.summary)[:SUMMARY_FALLBACK_CHARS]]
    points = "\n".join(f"- {f}" for f in findings) or "- Key insights from this content"

    if InfographicKind(kind) == InfographicKind.PREMIUM:
        source = (fields.author or fields.author_organization) if fields else None
        relevance = strip_forbidden(fields.relevance_note) if fields else ""
        return (
            "Create a professional consulting-style infographic for this research.\n\n"
            f"Title: {title}\n"
            f"Source: {source or 'Unknown'}\n\n"
            f"Key findings:\n{points}\n\n"
            f"Why it matters: {relevance or 'Relevant for AI strategy work'}\n\n"
            "Design requirements:\n"
            "- Clean, modern consulting aesthetic\n"
            "- Dark blue (#1a365d), orange (#FFA92E) and white color scheme\n"
            "- Data visualizations, icons and a clear hierarchy\n"
            "- Title prominently at the top, 3-5 findings with visual elements\n"
            "- 16:9 aspect ratio, suitable for team chat and presentations\n"
        )
    return (
        "Create a simple infographic summarizing:\n\n"
        f"Title: {title}\n"
        f"Key points:\n{points}\n\n"
        "Design: clean, modern style with blue (#1a365d) and orange (#FFA92E) accents. "
        "Include the title and 3-5 points with icons, 16:9 aspect ratio."
    )


class InfographicGenerator:
    """
    Args:
        image_client: LLMClient with image generation (None disables generation)
        media: Where rendered images are written
    """

    def __init__(self, image_client: Optional[LLMClient] = None, media: Optional[MediaStore] = None):
        self.image_client = image_client
        self.media = media

    @property
    def is_available(self) -> bool:
        return (
            self.media is not None
            and self.image_client is not None
            and self.image_client.supports_image_generation
        )

    def generate(self, record: KnowledgeRecord, kind: InfographicKind) -> str:
        """
        Render and store an infographic for ``record``.

        Returns:
            Link to the stored image

        Raises:
            ValueError: no image provider or media store is configured
            ImageGenerationError: the provider failed
        """
        kind = InfographicKind(kind)
        if not self.is_available:
            raise ValueError("image generation is not configured")

        prompt = build_prompt(record, kind)
        logger.info("Generating %s infographic for %s (%d prompt chars)", kind.value, record.id, len(prompt))
        try:
            data, mime_type = self.image_client.generate_image(prompt)
        except Exception as e:
            raise ImageGenerationError(f"infographic generation failed: {e}") from e

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        owner = re.sub(r"[^\w.-]", "_", record.owner_id)
        name = f"infographics/{owner}/{record.id}_{kind.value}_{stamp}"
        return self.media.save(name, data, mime_type)


@dataclass
class InfographicResult:
    record_id: str
    image_url: str
    kind: Optional[str]
    cached: bool

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "image_url": self.image_url,
            "kind": self.kind,
            "cached": self.cached,
        }
