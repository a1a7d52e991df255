"""
Record Builder

Drives one record through Fetch -> Extract -> Index and writes the result
back with a single store update.

Key Rules:
- Fetch and extraction never fail the record; they degrade
- Freshly fetched content is persisted (truncated); cached or fallback
  content is not rewritten
- Embedding failure is reported as a failure, but the extracted fields
  are still stored so the record is visible (lexically) until reindexed
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..common.embedding_service import EmbeddingService
from ..common.errors import EmbeddingError
from ..common.record_store import RecordStore
from ..common.schemas import KnowledgeRecord
from .llm_extractor import LLMExtractor
from .source_fetcher import SourceFetcher

logger = logging.getLogger("sift.ingest.record_builder")


@dataclass
class ProcessOutcome:
    """Result of processing one record"""
    record: KnowledgeRecord
    source_kind: str
    embedded: bool
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class RecordBuilder:
    """
    Builds extracted KnowledgeRecords from pending ones.

    Args:
        store: Record store to write results to
        fetcher: Source Fetcher
        extractor: Structured Extractor
        embedder: Embedding service
    """

    def __init__(
        self,
        store: RecordStore,
        fetcher: SourceFetcher,
        extractor: LLMExtractor,
        embedder: EmbeddingService,
    ):
        self._store = store
        self._fetcher = fetcher
        self._extractor = extractor
        self._embedder = embedder

    def process(self, record: KnowledgeRecord) -> ProcessOutcome:
        """Fetch, extract and embed one record, then store it in one update."""
        fetched = self._fetcher.fetch(record)
        if fetched.should_persist:
            record.content = self._fetcher.truncate_for_storage(fetched.content)
            record.source_kind = fetched.source_kind
        elif record.source_kind is None:
            record.source_kind = fetched.source_kind

        fields = self._extractor.extract(record, fetched.content)

        # Embedding text is built from the new fields
        candidate = record.model_copy(update={"structured": fields})
        embedding = None
        error = None
        try:
            embedding = self._embedder.embed_record(candidate)
        except EmbeddingError as e:
            error = f"embedding failed: {e}"
            logger.error("Embedding failed for %s: %s", record.id, e)

        record.apply_extraction(fields, embedding)
        self._store.update(record)

        logger.info(
            "Processed %s: source=%s degraded=%s embedded=%s",
            record.id, fetched.source_kind, fields.degraded, embedding is not None,
        )
        return ProcessOutcome(
            record=record,
            source_kind=fetched.source_kind,
            embedded=embedding is not None,
            error=error,
        )

    def reindex(self, record: KnowledgeRecord) -> KnowledgeRecord:
        """Recompute the embedding of an extracted record.

        Raises:
            EmbeddingError: propagated from the embedding service
        """
        record.embedding = self._embedder.embed_record(record)
        self._store.update(record)
        return record
