"""
Sift

Content ingestion and knowledge retrieval for a consulting team's library.

Philosophy:
- Every capture is kept; processing failures degrade, never drop a record
- Every record carries exactly five labelled findings
- Answers cite only what retrieval returned, numbered by rank
- Every read and write is scoped to one owner

Usage:
    from sift.common import load_config, EmbeddingService, InMemoryRecordStore
    from sift.ingest import SourceFetcher, LLMExtractor, RecordBuilder
    from sift.retriever import Searcher, Synthesizer
    from sift.distribution import TemplateRenderer, ComplianceValidator
    from sift.service import KnowledgePipeline
"""

__version__ = "0.1.0"
