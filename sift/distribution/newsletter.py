"""
Newsletter Drafter

Turns a set of curated records into a newsletter section: an intro that
names the connecting themes, one entry per record (context, up to three
findings, why it matters, link) and a closing question.

Same shape as extraction: a model strategy first, then a deterministic
fallback built from the records' own fields. All text passes through
``strip_forbidden`` so drafts follow the team message format rules.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..common.fallback import StrategyResult, run_chain
from ..common.findings import normalize_findings
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json, truncate
from ..common.schemas import KnowledgeRecord
from .renderer import strip_forbidden

logger = logging.getLogger("sift.distribution.newsletter")

MAX_ITEM_FINDINGS = 3
CONTEXT_LIMIT = 300
THEME_COUNT = 2

NEWSLETTER_SYSTEM = """You are the newsletter editor for a data and AI consultancy.
You synthesize curated knowledge items into a newsletter section that is
professional but engaging, direct, and focused on actionable insight.
You respond with a single JSON object and nothing else."""

NEWSLETTER_PROMPT = """Write a newsletter section for these {count} knowledge items:

{items}

Return a JSON object with exactly these keys:
{{
  "intro": "2-3 sentences naming 1-2 themes that connect the items",
  "items": [
    {{
      "id": "the item id, copied exactly",
      "context": "1-2 sentences on what this source is and why it matters",
      "key_findings": ["at most 3 short findings"],
      "why_it_matters": "1-2 sentences on the practical implication"
    }}
  ],
  "closing": "one engagement question or call to action"
}}

Plain text only inside the strings: no emoji, no bullet symbols, no star ratings."""

ITEM_TEMPLATE = """### {id}: {title}
- Source: {source}
- Type: {content_type}
- Summary: {summary}
- Why it matters: {relevance}
- Key findings: {findings}
- Quotables: {quotables}
- Curator note: {note}"""


@dataclass
class NewsletterItem:
    record_id: str
    title: str
    context: str
    key_findings: List[str]
    why_it_matters: str
    source_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "title": self.title,
            "context": self.context,
            "key_findings": list(self.key_findings),
            "why_it_matters": self.why_it_matters,
            "source_url": self.source_url,
        }


@dataclass
class NewsletterDraft:
    intro: str
    items: List[NewsletterItem] = field(default_factory=list)
    closing: str = ""
    degraded: bool = False

    @property
    def record_ids(self) -> List[str]:
        return [item.record_id for item in self.items]

    @property
    def markdown(self) -> str:
        return self._render(markdown=True)

    @property
    def plain_text(self) -> str:
        return self._render(markdown=False)

    def _render(self, markdown: bool) -> str:
        def label(text: str) -> str:
            return f"**{text}:**" if markdown else f"{text}:"

        parts = [self.intro, "---"]
        for item in self.items:
            lines = [f"## {item.title}" if markdown else item.title, "", f"{label('Context')} {item.context}"]
            if item.key_findings:
                lines += ["", label("Key Findings")]
                lines += [f"{n}. {finding}" for n, finding in enumerate(item.key_findings, 1)]
            lines += ["", f"{label('Why It Matters')} {item.why_it_matters}"]
            if item.source_url:
                link = f"[Read more]({item.source_url})" if markdown else f"Read more: {item.source_url}"
                lines += ["", link]
            parts += ["\n".join(lines), "---"]
        parts.append(self.closing)
        return "\n\n".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intro": self.intro,
            "items": [item.to_dict() for item in self.items],
            "closing": self.closing,
            "degraded": self.degraded,
            "markdown": self.markdown,
            "plain_text": self.plain_text,
        }


def _clean(text: Any) -> str:
    return strip_forbidden(text) if isinstance(text, str) else ""


def _record_findings(record: KnowledgeRecord) -> List[str]:
    fields = record.structured
    if not fields or not fields.findings:
        return []
    cleaned = [strip_forbidden(f) for f in fields.findings]
    return [f"{label}: {detail}" for label, detail in normalize_findings(cleaned)][:MAX_ITEM_FINDINGS]


def fallback_item(record: KnowledgeRecord) -> NewsletterItem:
    """Entry built only from the record's stored fields."""
    fields = record.structured
    summary = _clean(fields.summary) if fields else ""
    relevance = _clean(fields.relevance_note) if fields else ""
    return NewsletterItem(
        record_id=record.id,
        title=_clean(record.display_title) or "Untitled",
        context=truncate(summary, CONTEXT_LIMIT) or "No summary available.",
        key_findings=_record_findings(record),
        why_it_matters=relevance or "Relevance not yet assessed.",
        source_url=record.link,
    )


def common_themes(records: Sequence[KnowledgeRecord], count: int = THEME_COUNT) -> List[str]:
    """Most frequent tags across the records, ties broken alphabetically."""
    counts: Counter = Counter()
    for record in records:
        if record.structured:
            counts.update(set(record.structured.tags.all_tags()))
    ranked = sorted(counts.items(), key=lambda pair: (-pair[1], pair[0].lower()))
    return [tag for tag, _ in ranked[:count]]


class NewsletterDrafter:
    """
    Args:
        llm_client: Completion client (synthesis role); None means fallback only
        max_items: Most records one draft covers
    """

    def __init__(self, llm_client: Optional[LLMClient] = None, max_items: int = 10, max_tokens: int = 3000):
        self._llm = llm_client
        self.max_items = max_items
        self.max_tokens = max_tokens

    @property
    def is_available(self) -> bool:
        return self._llm is not None and self._llm.is_available

    @property
    def strategies(self):
        return [
            ("ai", self._draft_with_llm),
            ("fallback", self._fallback),
        ]

    def draft(self, records: Sequence[KnowledgeRecord]) -> NewsletterDraft:
        """
        Draft a newsletter section. Never raises for model failures.

        Raises:
            ValueError: no records given
        """
        if not records:
            raise ValueError("A newsletter needs at least one record")
        chain = run_chain(self.strategies, list(records))
        if chain.strategy != "ai":
            logger.warning("Newsletter draft fell back: %s", chain.diagnostics)
        logger.info("Drafted newsletter with %d items (%s)", len(chain.value.items), chain.strategy)
        return chain.value

    def _build_prompt(self, records: List[KnowledgeRecord]) -> str:
        blocks = []
        for record in records:
            fields = record.structured
            blocks.append(ITEM_TEMPLATE.format(
                id=record.id,
                title=record.display_title,
                source=((fields.author_organization or fields.author) if fields else None) or "Unknown",
                content_type=fields.content_type.value if fields else "Article",
                summary=fields.summary if fields else "No summary available",
                relevance=fields.relevance_note if fields else "None",
                findings="; ".join(fields.findings) if fields and fields.findings else "None extracted",
                quotables="; ".join(fields.quotables) if fields and fields.quotables else "None",
                note=record.annotations.note or record.user_notes or "None",
            ))
        return NEWSLETTER_PROMPT.format(count=len(records), items="\n\n".join(blocks))

    def _draft_with_llm(self, records: List[KnowledgeRecord]) -> StrategyResult:
        if not self.is_available:
            return StrategyResult.fail("LLM client not available")

        try:
            raw = self._llm.generate(
                self._build_prompt(records),
                system=NEWSLETTER_SYSTEM,
                max_tokens=self.max_tokens,
                temperature=0.5,
                json_mode=True,
            )
        except Exception as e:
            logger.warning("Newsletter call failed: %s", e)
            return StrategyResult.fail(f"call failed: {e}")

        data = parse_llm_json(raw)
        intro = _clean(data.get("intro"))
        if not intro or not isinstance(data.get("items"), list):
            return StrategyResult.fail("malformed JSON response")

        drafted = {}
        for entry in data["items"]:
            if isinstance(entry, dict) and entry.get("id"):
                drafted[str(entry["id"])] = entry

        items = []
        for record in records:
            entry = drafted.get(record.id)
            item = fallback_item(record)
            if entry:
                findings = [_clean(f) for f in entry.get("key_findings") or [] if _clean(f)]
                item.context = _clean(entry.get("context")) or item.context
                item.key_findings = findings[:MAX_ITEM_FINDINGS] or item.key_findings
                item.why_it_matters = _clean(entry.get("why_it_matters")) or item.why_it_matters
            items.append(item)

        closing = _clean(data.get("closing")) or self._closing()
        return StrategyResult.ok(
            NewsletterDraft(intro=intro, items=items, closing=closing),
            f"{len(drafted)} of {len(records)} items drafted by model",
        )

    def _fallback(self, records: List[KnowledgeRecord]) -> StrategyResult:
        themes = common_themes(records)
        count = len(records)
        noun = "item" if count == 1 else "items"
        intro = f"{count} {noun} worth your time"
        intro += f", with a focus on {' and '.join(themes)}." if themes else "."
        return StrategyResult.ok(
            NewsletterDraft(
                intro=intro,
                items=[fallback_item(r) for r in records],
                closing=self._closing(),
                degraded=True,
            ),
            "built from stored fields",
        )

    @staticmethod
    def _closing() -> str:
        return "Which of these matters most for the work on your desk right now?"
