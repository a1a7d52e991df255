"""
Structured Extractor

Turns fetched text into StructuredFields with a single JSON extraction call.

Every enumerated value is checked against its closed set and replaced by the
fixed default when out of range. On call failure, malformed JSON, or missing
required keys, a deterministic fallback is returned instead: extraction
never blocks a record from becoming visible.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from ..common.config import ExtractorConfig
from ..common.fallback import StrategyResult, run_chain
from ..common.findings import ensure_five_findings
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json, scrub_content
from ..common.schemas import (
    BUSINESS_FUNCTIONS,
    DEFAULT_ACTIONABILITY,
    DEFAULT_CONTENT_TYPE,
    DEFAULT_CREDIBILITY,
    DEFAULT_FRESHNESS,
    SERVICE_LINES,
    Actionability,
    ContentType,
    Credibility,
    Freshness,
    KnowledgeRecord,
    StructuredFields,
    TagSet,
)

logger = logging.getLogger("sift.ingest.llm_extractor")

REQUIRED_KEYS = ("summary", "key_findings")
MAX_QUOTABLES = 5

EXTRACTION_SYSTEM = """You are an expert content analyst for a data & AI consultancy.
You read articles, reports, videos and documents and turn them into structured
knowledge records. You respond with a single JSON object and nothing else."""

EXTRACTION_PROMPT = """Analyze the content below and return a JSON object with exactly these keys:

{{
  "title": "Clean title of the piece (no site name suffix)",
  "summary": "ONE sentence (not a paragraph) stating the main point, with a concrete metric if the content has one",
  "key_findings": [
    "**Label:** detail",
    "... exactly 5 items, each starting with a short bold label followed by a colon"
  ],
  "relevance_note": "1-2 sentences on why this matters for data strategy, AI implementation, analytics or digital transformation work",
  "quotables": ["2-3 verbatim quotes or statistics worth citing"],
  "content_type": "exactly one of: {content_types}",
  "industries": ["industries discussed, e.g. Healthcare, Finance, Retail"],
  "technologies": ["technologies discussed, e.g. GenAI, Machine Learning, Cloud"],
  "service_lines": ["any of: {service_lines}"],
  "business_functions": ["any of: {business_functions}"],
  "source_credibility": "one of: Tier 1 (peer-reviewed, major research firm, primary data), Tier 2 (established publication, credible practitioner), Tier 3 (opinion, vendor marketing, unverified)",
  "actionability": "one of: high, medium, low",
  "timeliness": "one of: current (last 6 months), recent (last 2 years), dated (older)",
  "author": "author name or null",
  "author_organization": "organization name or null",
  "methodology": "How the conclusions were reached. MUST begin with the author or organization name (e.g. 'McKinsey surveyed 1,200 executives...'), never with 'This study', 'The article' or similar",
  "publication_date": "YYYY-MM-DD, YYYY-MM or null"
}}

Rules:
- key_findings must contain exactly 5 items in the "**Label:** detail" shape
- Use only values from the listed sets for content_type, service_lines, business_functions, source_credibility, actionability, timeliness
- Do not invent numbers that are not in the content

Title: {title}
URL: {url}
Curator notes: {notes}

Content:
{content}"""

_GENERIC_OPENERS = (
    "this study", "this report", "this article", "this paper", "this piece",
    "this video", "the study", "the report", "the article", "the paper",
    "the authors", "the author", "researchers", "the research",
)

_CREDIBILITY_ALIASES = {
    "tier 1": Credibility.TIER_1, "tier1": Credibility.TIER_1, "1": Credibility.TIER_1, "high": Credibility.TIER_1,
    "tier 2": Credibility.TIER_2, "tier2": Credibility.TIER_2, "2": Credibility.TIER_2, "medium": Credibility.TIER_2,
    "tier 3": Credibility.TIER_3, "tier3": Credibility.TIER_3, "3": Credibility.TIER_3, "low": Credibility.TIER_3,
}


def _match_enum(value: Any, enum_cls, default, aliases: Optional[Dict[str, Any]] = None):
    """Case-insensitive lookup in a closed set; anything else becomes ``default``."""
    if not isinstance(value, str) or not value.strip():
        return default
    key = value.strip().lower()
    if aliases:
        # "Tier 1 (peer-reviewed...)" -> "tier 1"
        head = re.split(r"[\s(:-]+", key, maxsplit=2)
        for candidate in (key, " ".join(head[:2]), head[0]):
            if candidate in aliases:
                return aliases[candidate]
    for member in enum_cls:
        if member.value.lower() == key:
            return member
    return default


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]
    return []


def _closed_tags(values: List[str], vocabulary: List[str]) -> List[str]:
    lookup = {v.lower(): v for v in vocabulary}
    return [lookup[v.lower()] for v in values if v.lower() in lookup]


def _optional_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.lower() in ("null", "none", "n/a", "unknown"):
        return None
    return value


def repair_methodology(methodology: Optional[str], author: Optional[str], organization: Optional[str]) -> Optional[str]:
    """Methodology notes must open with who did the work."""
    if not methodology:
        return None
    name = organization or author
    if name and methodology.lower().startswith(_GENERIC_OPENERS):
        return f"{name}: {methodology}"
    return methodology


class LLMExtractor:
    """
    Extracts StructuredFields from record content.

    Args:
        llm_client: Completion client (extraction role)
        config: Input and output budgets
    """

    def __init__(self, llm_client: Optional[LLMClient] = None, config: Optional[ExtractorConfig] = None):
        self._llm = llm_client
        self.config = config or ExtractorConfig()

    @property
    def is_available(self) -> bool:
        return self._llm is not None and self._llm.is_available

    @property
    def strategies(self):
        return [
            ("ai", self._extract_with_llm),
            ("fallback", self._fallback),
        ]

    def extract(self, record: KnowledgeRecord, content: Optional[str]) -> StructuredFields:
        """Never raises; returns degraded fields when the model path fails."""
        chain = run_chain(self.strategies, record, content or "")
        if chain.strategy != "ai":
            logger.warning("Extraction fell back for %s: %s", record.id, chain.diagnostics)
        return chain.value

    def _build_prompt(self, record: KnowledgeRecord, content: str) -> str:
        scrubbed = scrub_content(
            content or record.title,
            max_chars=self.config.max_input_chars,
            max_url_length=self.config.max_url_length,
        )
        return EXTRACTION_PROMPT.format(
            content_types=", ".join(c.value for c in ContentType),
            service_lines=", ".join(SERVICE_LINES),
            business_functions=", ".join(BUSINESS_FUNCTIONS),
            title=record.title or "(untitled)",
            url=record.reference or "N/A",
            notes=record.user_notes or "none",
            content=scrubbed or "No content available",
        )

    def _extract_with_llm(self, record: KnowledgeRecord, content: str) -> StrategyResult:
        if not self.is_available:
            return StrategyResult.fail("LLM client not available")

        try:
            raw = self._llm.generate(
                self._build_prompt(record, content),
                system=EXTRACTION_SYSTEM,
                max_tokens=self.config.max_output_tokens,
                temperature=0.3,
                json_mode=True,
            )
        except Exception as e:
            logger.warning("Extraction call failed for %s: %s", record.id, e)
            return StrategyResult.fail(f"call failed: {e}")

        data = parse_llm_json(raw)
        if not data:
            return StrategyResult.fail("malformed JSON response")

        missing = [k for k in REQUIRED_KEYS if not data.get(k)]
        if missing:
            return StrategyResult.fail(f"missing required keys: {', '.join(missing)}")

        return StrategyResult.ok(self.validate(data, record), "model extraction")

    def validate(self, data: Dict[str, Any], record: KnowledgeRecord) -> StructuredFields:
        """Coerce a parsed model response into valid StructuredFields."""
        content_type = _match_enum(data.get("content_type"), ContentType, DEFAULT_CONTENT_TYPE)
        if content_type == DEFAULT_CONTENT_TYPE and data.get("content_type") not in (None, DEFAULT_CONTENT_TYPE.value):
            logger.info("Replaced invalid content_type %r for %s", data.get("content_type"), record.id)

        author = _optional_text(data.get("author"))
        organization = _optional_text(data.get("author_organization"))

        summary = data.get("summary")
        if not isinstance(summary, str):
            summary = str(summary)

        return StructuredFields(
            title=(_optional_text(data.get("title")) or record.title or "")[:300],
            summary=summary.strip(),
            findings=ensure_five_findings(_string_list(data.get("key_findings")), self.config.min_finding_length),
            relevance_note=_optional_text(data.get("relevance_note")) or "",
            quotables=_string_list(data.get("quotables"))[:MAX_QUOTABLES],
            content_type=content_type,
            tags=TagSet(
                industries=_string_list(data.get("industries")),
                technologies=_string_list(data.get("technologies")),
                service_lines=_closed_tags(_string_list(data.get("service_lines")), SERVICE_LINES),
                business_functions=_closed_tags(_string_list(data.get("business_functions")), BUSINESS_FUNCTIONS),
            ),
            credibility=_match_enum(data.get("source_credibility"), Credibility, DEFAULT_CREDIBILITY,
                                    aliases=_CREDIBILITY_ALIASES),
            actionability=_match_enum(data.get("actionability"), Actionability, DEFAULT_ACTIONABILITY),
            freshness=_match_enum(data.get("timeliness"), Freshness, DEFAULT_FRESHNESS),
            author=author,
            author_organization=organization,
            methodology=repair_methodology(_optional_text(data.get("methodology")), author, organization),
            publication_date=_optional_text(data.get("publication_date")),
        )

    def _fallback(self, record: KnowledgeRecord, content: str) -> StrategyResult:
        title = record.title or record.reference or "Untitled"
        fields = StructuredFields(
            title=record.title,
            summary=f"Content from: {title}",
            findings=ensure_five_findings([]),
            relevance_note="Pending detailed analysis.",
            content_type=DEFAULT_CONTENT_TYPE,
            credibility=DEFAULT_CREDIBILITY,
            actionability=DEFAULT_ACTIONABILITY,
            freshness=DEFAULT_FRESHNESS,
            degraded=True,
        )
        return StrategyResult.ok(fields, "deterministic fallback")
