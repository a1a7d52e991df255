"""
Query Processor

Normalizes a user question, detects its language (so the answer can match
it), and pulls out keywords for the lexical ranking.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..common.config import RetrieverConfig
from ..common.language import LanguageInfo, detect_language
from ..common.text import tokenize


class SearchMode(str, Enum):
    """Retrieval presets: precision vs recall"""
    STANDARD = "standard"  # few, highly relevant candidates
    DEEP = "deep"          # many candidates at a looser floor
    SEARCH = "search"      # free-text search listing


@dataclass(frozen=True)
class ModeSettings:
    count: int
    threshold: float


def mode_settings(mode: SearchMode, config: RetrieverConfig) -> ModeSettings:
    mode = SearchMode(mode)
    if mode == SearchMode.DEEP:
        return ModeSettings(config.deep_count, config.deep_threshold)
    if mode == SearchMode.SEARCH:
        return ModeSettings(config.search_count, config.search_threshold)
    return ModeSettings(config.standard_count, config.standard_threshold)


# Audience hints appended to quote searches
CONTEXT_HINTS = {
    "board": "executive leadership C-suite strategic business impact",
    "linkedin": "thought leadership professional insight industry trend",
    "pitch": "client value proposition solution benefit ROI",
    "workshop": "engaging interactive learning collaborative insight",
}


@dataclass
class ParsedQuery:
    """Parsed representation of a user question"""
    original: str
    cleaned: str
    keywords: List[str] = field(default_factory=list)
    language: Optional[LanguageInfo] = None

    @property
    def lexical_text(self) -> str:
        """Text handed to full-text ranking"""
        return " ".join(self.keywords) or self.cleaned


class QueryProcessor:
    """
    Processes user questions for knowledge search.

    Responsibilities:
    1. Clean and normalize query text
    2. Detect the question's language
    3. Extract keywords
    """

    def parse(self, query: str) -> ParsedQuery:
        if not query or not query.strip():
            raise ValueError("Query must not be empty")

        cleaned = self._clean_query(query)
        return ParsedQuery(
            original=query.strip(),
            cleaned=cleaned,
            keywords=self._extract_keywords(cleaned),
            language=detect_language(query),
        )

    def with_context(self, query: str, context: Optional[str]) -> str:
        """Append audience hint words for quote searches."""
        hint = CONTEXT_HINTS.get((context or "").lower())
        return f"{query} {hint}" if hint else query

    def _clean_query(self, query: str) -> str:
        """Clean and normalize query text"""
        cleaned = query.strip()
        cleaned = re.sub(r"\s+", " ", cleaned)
        # Trailing punctuation carries no meaning for search
        cleaned = re.sub(r"[?.!,;:]+$", "", cleaned)
        return cleaned

    def _extract_keywords(self, query: str) -> List[str]:
        """Important keywords, stop words removed, order preserved"""
        return list(dict.fromkeys(tokenize(query)))[:15]
