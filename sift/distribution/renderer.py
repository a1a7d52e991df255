"""
Template Renderer

Builds the outbound team message for a record. Rendering is a pure
function of (record, structured fields, option): no clock, no randomness,
no I/O, so the same inputs always give byte-identical blocks.

Message layout, in order:
    header   record title
    context  content type | credibility
    image    only if the record has an image and the option allows one
    section  Context / Key Findings (1.-5.) / Why It Matters
    actions  View Source / View PDF, when links exist
"""

import re
from enum import Enum
from typing import List, Optional, Tuple

from ..common.findings import normalize_findings
from ..common.llm_utils import truncate
from ..common.schemas import KnowledgeRecord, StructuredFields
from .handlers.base import Message

# Bullet glyphs, legacy rating stars and the old edition marker
FORBIDDEN_GLYPHS = "•◦▪‣●★☆⭐🎯"

# Header phrases from earlier message formats
RETIRED_PHRASES = ("DAIN Take", "THIS EDITION", "TL;DR", "Key Insights")

SECTION_HEADERS = ("Context", "Key Findings", "Why It Matters")

SUMMARY_LIMIT = 500
RELEVANCE_LIMIT = 300
FINDING_LIMIT = 280
HEADER_LIMIT = 150

_GLYPH_RE = re.compile("[" + re.escape(FORBIDDEN_GLYPHS) + "]")
_RETIRED_RE = re.compile(
    r"(?:" + "|".join(re.escape(p) for p in RETIRED_PHRASES) + r")\s*:?\s*",
    re.IGNORECASE,
)
_SPACES_RE = re.compile(r"[ \t]{2,}")


class DistributionOption(str, Enum):
    SUMMARY_ONLY = "summary_only"
    SUMMARY_QUICK = "summary_quick"
    SUMMARY_PREMIUM = "summary_premium"
    INFOGRAPHIC_QUICK = "infographic_quick"
    INFOGRAPHIC_PREMIUM = "infographic_premium"

    @property
    def allows_image(self) -> bool:
        return self != DistributionOption.SUMMARY_ONLY

    @property
    def infographic_kind(self) -> Optional[str]:
        """Which infographic the option asks for, if any"""
        if not self.allows_image:
            return None
        return "premium" if self.value.endswith("_premium") else "quick"


def strip_forbidden(text: str) -> str:
    """Remove forbidden glyphs and retired header phrases from free text."""
    if not text:
        return ""
    text = _GLYPH_RE.sub("", text)
    text = _RETIRED_RE.sub("", text)
    lines = [_SPACES_RE.sub(" ", line).strip() for line in text.splitlines()]
    return "\n".join(lines).strip()


def render_body(fields: StructuredFields) -> str:
    """The three labelled sections, in fixed order."""
    summary = truncate(strip_forbidden(fields.summary), SUMMARY_LIMIT) or "No summary available."
    relevance = truncate(strip_forbidden(fields.relevance_note), RELEVANCE_LIMIT) or "Relevance not yet assessed."

    # Strip before normalizing so findings left too short get placeholders
    cleaned = [strip_forbidden(f) for f in fields.findings if isinstance(f, str)]
    finding_lines = [
        f"{n}. {label}: {truncate(detail, FINDING_LIMIT)}"
        for n, (label, detail) in enumerate(normalize_findings(cleaned), 1)
    ]

    context, key_findings, why = SECTION_HEADERS
    return "\n".join([
        f"*{context}*",
        summary,
        "",
        f"*{key_findings}*",
        *finding_lines,
        "",
        f"*{why}*",
        relevance,
    ])


class TemplateRenderer:
    """Deterministic renderer for team distribution messages."""

    def render(
        self,
        record: KnowledgeRecord,
        content: Optional[StructuredFields] = None,
        option: DistributionOption = DistributionOption.SUMMARY_ONLY,
    ) -> Message:
        """
        Render a record into a Message.

        Args:
            record: Source record (title, links, image)
            content: Structured fields to render; defaults to the record's own
            option: Distribution option (controls the image block)

        Raises:
            ValueError: the record has no structured fields to render
        """
        option = DistributionOption(option)
        fields = content or record.structured
        if fields is None:
            raise ValueError(f"Record {record.id} has not been extracted yet")

        title = strip_forbidden(fields.title or record.display_title) or "Untitled"
        body = render_body(fields)

        blocks = [{
            "type": "header",
            "text": {"type": "plain_text", "text": truncate(title, HEADER_LIMIT - 3), "emoji": True},
        }]
        meta = f"{fields.content_type.value} | {fields.credibility.value}"
        blocks.append({
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": meta}],
        })
        if record.image_url and option.allows_image:
            blocks.append({
                "type": "image",
                "image_url": record.image_url,
                "alt_text": title,
            })
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": body},
        })

        links = self._links(record)
        if links:
            blocks.append({
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": label, "emoji": True},
                        "url": url,
                    }
                    for label, url in links
                ],
            })

        return Message(
            record_id=record.id,
            owner_id=record.owner_id,
            option=option.value,
            text=f"{title}\n{meta}\n\n{body}",
            blocks=blocks,
        )

    @staticmethod
    def _links(record: KnowledgeRecord) -> List[Tuple[str, str]]:
        links = []
        if record.reference.startswith(("http://", "https://")):
            links.append(("View Source", record.reference))
        if record.document_url and record.document_url != record.reference:
            links.append(("View PDF", record.document_url))
        return links
