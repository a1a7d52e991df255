"""
Synthesizer

Grounded answer synthesis over retrieved records. Each candidate is given a
citation number equal to its 1-based retrieval rank; the model is told the
explicit ``[n] = "title"`` map and asked to cite with numeric markers.

The returned manifest is built from the candidate list, never parsed back
out of the model's text, so ``[n]`` in the answer always resolves to
``sources[n-1]``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..common.config import RetrieverConfig
from ..common.errors import SynthesisError
from ..common.language import LanguageInfo
from ..common.llm_client import LLMClient
from .query_processor import SearchMode
from .searcher import RetrievalCandidate

logger = logging.getLogger("sift.retriever.synthesizer")

NO_SOURCES_ANSWER = (
    "No relevant sources were found in your knowledge library for this question. "
    "Try rephrasing it, or use deep mode to search more broadly."
)

SYSTEM_PROMPT = """You are a knowledgeable assistant for a consulting team's curated knowledge library.

Answer questions based ONLY on the provided knowledge base context. Follow these rules:
1. Only use information from the provided context; do not make up information
2. If the context doesn't contain relevant information, say so honestly
3. Use numbered citations like [1], [2], [3] when referencing information from sources. Place the citation immediately after the relevant statement.
4. Be concise but thorough
5. Synthesize across multiple sources when relevant
6. Format with markdown: **bold** for emphasis, bullet points for lists

{language_instruction}

Source Number Mapping:
{source_map}"""

USER_PROMPT = """Based on the following knowledge base context, please answer this question:

**Question:** {question}

---

**Knowledge Base Context:**

{context}

---

Answer from the context above and cite sources using [1], [2], etc."""


@dataclass
class AnswerResult:
    """Answer text plus its ordered citation manifest"""
    answer: str
    sources: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)
    mode: str = SearchMode.STANDARD.value

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "sources": self.sources,
            "stats": self.stats,
            "mode": self.mode,
        }


class Synthesizer:
    """
    Builds the grounded prompt and calls the synthesis model.

    Args:
        llm_client: Completion client (``llm.synthesis_provider``)
        config: Excerpt length, relevance cutoff, quote count, max tokens
    """

    def __init__(self, llm_client: Optional[LLMClient], config: Optional[RetrieverConfig] = None):
        self._llm = llm_client
        self.config = config or RetrieverConfig()

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    def answer(
        self,
        question: str,
        candidates: List[RetrievalCandidate],
        mode: SearchMode = SearchMode.STANDARD,
        language: Optional[LanguageInfo] = None,
    ) -> AnswerResult:
        """
        Synthesize an answer with a citation manifest.

        Raises:
            SynthesisError: synthesis client missing or the call failed
        """
        mode = SearchMode(mode)
        sources = self.build_manifest(candidates)
        stats = {
            "total_searched": len(candidates),
            "with_full_content": sum(1 for c in candidates if c.has_full_content),
        }

        if not candidates:
            return AnswerResult(answer=NO_SOURCES_ANSWER, sources=[], stats=stats, mode=mode.value)

        if not self.has_llm:
            raise SynthesisError("No synthesis model configured")

        system = SYSTEM_PROMPT.format(
            language_instruction=self._language_instruction(language),
            source_map=self.source_map(candidates),
        )
        prompt = USER_PROMPT.format(
            question=question,
            context=self.build_context(candidates, mode),
        )

        try:
            answer = self._llm.generate(prompt, system=system, max_tokens=self.config.max_tokens)
        except Exception as e:
            logger.error("Answer synthesis failed: %s", e)
            raise SynthesisError(f"Answer synthesis failed: {e}") from e

        logger.info("Synthesized answer from %d sources (%s mode)", len(candidates), mode.value)
        return AnswerResult(
            answer=answer or "Unable to generate an answer.",
            sources=sources,
            stats=stats,
            mode=mode.value,
        )

    @staticmethod
    def build_manifest(candidates: List[RetrievalCandidate]) -> List[Dict[str, Any]]:
        return [
            {
                "citation": n,
                "id": c.record_id,
                "title": c.title,
                "url": c.url,
                "similarity": round(c.similarity, 4),
                "has_full_content": c.has_full_content,
            }
            for n, c in enumerate(candidates, 1)
        ]

    @staticmethod
    def source_map(candidates: List[RetrievalCandidate]) -> str:
        return "\n".join(f'[{n}] = "{c.title}"' for n, c in enumerate(candidates, 1))

    def include_excerpt(self, candidate: RetrievalCandidate, mode: SearchMode) -> bool:
        """Full-content excerpts go only to standard mode or high-relevance sources."""
        if not candidate.has_full_content:
            return False
        return mode == SearchMode.STANDARD or candidate.similarity > self.config.high_relevance_threshold

    def build_context(self, candidates: List[RetrievalCandidate], mode: SearchMode) -> str:
        blocks = []
        for n, candidate in enumerate(candidates, 1):
            blocks.append(self._source_block(n, candidate, mode))
        return "\n---\n\n".join(blocks)

    def _source_block(self, n: int, candidate: RetrievalCandidate, mode: SearchMode) -> str:
        record = candidate.record
        fields = record.structured
        lines = [
            f"### [{n}] {candidate.title}",
            f"Relevance: {round(candidate.similarity * 100)}%",
            "",
        ]
        if fields and fields.relevance_note:
            lines += [f"**Why It Matters:** {fields.relevance_note}", ""]
        if fields and fields.summary:
            lines += [f"**Summary:** {fields.summary}", ""]

        if self.include_excerpt(candidate, mode):
            limit = self.config.excerpt_chars
            excerpt = record.content[:limit]
            if len(record.content) > limit:
                excerpt += "..."
            lines += [f"**Full Content (excerpt):** {excerpt}", ""]

        quotes = fields.quotables[: self.config.max_quotes] if fields else []
        if quotes:
            lines.append("**Key Quotes:**")
            lines += [f'- "{q}"' for q in quotes]
            lines.append("")

        return "\n".join(lines)

    @staticmethod
    def _language_instruction(language: Optional[LanguageInfo]) -> str:
        if language and not language.is_english:
            return (
                f"IMPORTANT: The user asked in {language.name}. "
                f"Respond in the SAME language ({language.name}). "
                "The sources may be in English; translate the relevant parts."
            )
        return "Respond in English."
