"""
Text Templates

Renders records to the text that gets embedded and to a Markdown view for
CLI / MCP display. Embedding text concatenates only the semantically dense
fields; raw content never goes into the vector.
"""

from typing import TYPE_CHECKING, List

from ..findings import normalize_findings

if TYPE_CHECKING:
    from .knowledge_record import KnowledgeRecord
    from .image_record import ImageRecord


DISPLAY_TEMPLATE = """# {title}
ID: {id}
Status: {status} | Type: {content_type} | Credibility: {credibility}
Source: {link}

## Summary
{summary}

## Key Findings
{findings}

## Why It Matters
{relevance_note}

## Quotables
{quotables}

## Tags
{tags}
"""


def _join_tags(values: List[str]) -> str:
    return ", ".join(v for v in values if v)


def render_embedding_text(record: "KnowledgeRecord") -> str:
    """Text used to embed a full record: title, summary, note, type and tags."""
    parts = [record.display_title]
    fields = record.structured
    if fields:
        if fields.summary:
            parts.append(fields.summary)
        if fields.relevance_note:
            parts.append(fields.relevance_note)
        parts.append(f"Type: {fields.content_type.value}")
        tags = fields.tags
        if tags.industries:
            parts.append(f"Industries: {_join_tags(tags.industries)}")
        if tags.technologies:
            parts.append(f"Technologies: {_join_tags(tags.technologies)}")
        if tags.service_lines:
            parts.append(f"Service lines: {_join_tags(tags.service_lines)}")
        if tags.business_functions:
            parts.append(f"Functions: {_join_tags(tags.business_functions)}")
    elif record.user_notes:
        parts.append(record.user_notes)
    return "\n".join(p for p in parts if p).strip()


def render_image_embedding_text(image: "ImageRecord") -> str:
    """Text used to embed an analyzed image"""
    analysis = image.analysis
    if analysis is None:
        return image.title
    parts = [
        analysis.title or image.title,
        analysis.description,
        analysis.key_insight,
        " ".join(analysis.data_points),
        " ".join(analysis.trends_and_patterns),
        " ".join(analysis.topic_tags),
        " ".join(analysis.use_cases),
        analysis.relevance_note,
    ]
    return " ".join(p for p in parts if p).strip()


def render_display_text(record: "KnowledgeRecord") -> str:
    """Markdown view of a record"""
    fields = record.structured
    if fields is None:
        return f"# {record.display_title}\nID: {record.id}\nStatus: {record.status.value}\n\n(pending extraction)"

    findings = "\n".join(
        f"{i}. {label}: {detail}"
        for i, (label, detail) in enumerate(normalize_findings(fields.findings), 1)
    )
    quotables = "\n".join(f'> "{q}"' for q in fields.quotables) or "(none)"

    return DISPLAY_TEMPLATE.format(
        title=record.display_title,
        id=record.id,
        status=record.status.value,
        content_type=fields.content_type.value,
        credibility=fields.credibility.value,
        link=record.link or "(none)",
        summary=fields.summary or "(none)",
        findings=findings,
        relevance_note=fields.relevance_note or "(none)",
        quotables=quotables,
        tags=_join_tags(fields.tags.all_tags()) or "(none)",
    ).strip()
