"""
Searcher

Hybrid retrieval over one owner's knowledge records. Two independent
rankings, semantic (cosine over embeddings) and lexical (full-text
relevance), are fused with Reciprocal Rank Fusion.

Eligibility rule: a record whose similarity to the query is known and
below the floor is excluded even if it matched lexically. Records without
an embedding (e.g. awaiting reindex) can still surface lexically.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from ..common.config import RetrieverConfig
from ..common.embedding_service import EmbeddingService, cosine_similarity
from ..common.record_store import SEARCHABLE_STATUSES, RecordStore
from ..common.schemas import KnowledgeRecord, RecordStatus
from .fusion import reciprocal_rank_fusion
from .query_processor import ParsedQuery, SearchMode, mode_settings

logger = logging.getLogger("sift.retriever.searcher")

SEMANTIC = "semantic"
FULL_TEXT = "full_text"


@dataclass
class SearchFilters:
    """Optional narrowing of the candidate set"""
    statuses: Sequence[RecordStatus] = SEARCHABLE_STATUSES
    content_types: Optional[Sequence[str]] = None


@dataclass
class RetrievalCandidate:
    """A ranked record, transient and never persisted"""
    record_id: str
    title: str
    url: Optional[str]
    similarity: float
    score: float
    has_full_content: bool
    created_at: datetime
    record: KnowledgeRecord = field(repr=False)
    ranks: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        fields = self.record.structured
        return {
            "id": self.record_id,
            "title": self.title,
            "url": self.url,
            "similarity": round(self.similarity, 4),
            "score": round(self.score, 6),
            "has_full_content": self.has_full_content,
            "summary": fields.summary if fields else "",
            "relevance_note": fields.relevance_note if fields else "",
            "content_type": fields.content_type.value if fields else None,
            "status": self.record.status.value,
        }


class Searcher:
    """
    Hybrid searcher.

    Args:
        store: Owner-scoped record store
        embedding_service: Used to embed questions in ``retrieve``
        config: Fusion constant, weights, and mode presets
    """

    def __init__(
        self,
        store: RecordStore,
        embedding_service: EmbeddingService,
        config: Optional[RetrieverConfig] = None,
    ):
        self._store = store
        self._embedding = embedding_service
        self.config = config or RetrieverConfig()

    def search(
        self,
        owner_id: str,
        query_embedding: List[float],
        query_text: str,
        k: int,
        threshold: float,
        filters: Optional[SearchFilters] = None,
    ) -> List[RetrievalCandidate]:
        """
        Fuse semantic and lexical rankings and return the top ``k``.

        Args:
            owner_id: Only this owner's records are considered
            query_embedding: Embedded question
            query_text: Text for full-text ranking
            k: Number of candidates to return
            threshold: Similarity floor
            filters: Status / content type narrowing

        Returns:
            Candidates ordered by fused score, newest first on ties
        """
        if k <= 0:
            return []
        filters = filters or SearchFilters()
        pool = k * 2

        semantic = self._store.rank_semantic(
            owner_id, query_embedding, threshold, pool,
            statuses=filters.statuses, content_types=filters.content_types,
        )
        lexical = []
        if query_text and query_text.strip():
            lexical = self._store.rank_lexical(
                owner_id, query_text, pool,
                statuses=filters.statuses, content_types=filters.content_types,
            )

        records: Dict[str, KnowledgeRecord] = {}
        similarity: Dict[str, float] = {}
        for record, sim in semantic:
            records[record.id] = record
            similarity[record.id] = sim

        lexical_ids = []
        for record, _ in lexical:
            if record.id not in similarity and record.embedding:
                sim = cosine_similarity(query_embedding, record.embedding)
                if sim < threshold:
                    continue
                similarity[record.id] = sim
            records.setdefault(record.id, record)
            lexical_ids.append(record.id)

        fused = reciprocal_rank_fusion(
            {
                SEMANTIC: [r.id for r, _ in semantic],
                FULL_TEXT: lexical_ids,
            },
            k=self.config.rrf_k,
            weights={SEMANTIC: self.config.semantic_weight, FULL_TEXT: self.config.full_text_weight},
            created_at=lambda rid: records[rid].created_at,
        )

        candidates = []
        for item in fused[:k]:
            record = records[item.key]
            candidates.append(RetrievalCandidate(
                record_id=record.id,
                title=record.display_title,
                url=record.link,
                similarity=similarity.get(record.id, 0.0),
                score=item.score,
                has_full_content=record.has_full_content,
                created_at=record.created_at,
                record=record,
                ranks=item.ranks,
            ))

        logger.info(
            "Hybrid search for %s: %d semantic, %d lexical -> %d candidates",
            owner_id, len(semantic), len(lexical_ids), len(candidates),
        )
        return candidates

    def retrieve(
        self,
        owner_id: str,
        query: ParsedQuery,
        mode: SearchMode = SearchMode.STANDARD,
        filters: Optional[SearchFilters] = None,
        k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> List[RetrievalCandidate]:
        """Embed the question and search with the mode's count and floor.

        Raises:
            EmbeddingError: propagated; query-time failures are retryable
        """
        settings = mode_settings(mode, self.config)
        embedding = self._embedding.embed_query(query.original)
        return self.search(
            owner_id,
            embedding,
            query.lexical_text,
            k if k is not None else settings.count,
            threshold if threshold is not None else settings.threshold,
            filters,
        )
