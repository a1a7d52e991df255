"""
Ingest - Capture to Searchable Record

Turns a captured reference into an extracted, embedded knowledge record.

Key Components:
- SourceFetcher: Full text via a fallback chain (existing, video, document, URL, fallback)
- LLMExtractor: Structured fields with enum validation and a deterministic fallback
- RecordBuilder: Runs fetch, extract and embed for one record and saves it
- BatchProcessor / BatchJobRunner: Bounded batches and persisted background jobs
- ImageAnalyzer: Vision analysis for standalone images

Rules:
1. A capture is never lost; every stage degrades instead of failing the record
2. Stored findings are always exactly five
3. Out-of-vocabulary enum values fall back to defaults
4. Job progress only moves forward and never counts a record twice
"""

from .batch import BatchJobRunner, BatchProcessor, BatchResult
from .image_analyzer import ImageAnalyzer
from .llm_extractor import LLMExtractor
from .record_builder import ProcessOutcome, RecordBuilder
from .source_fetcher import FetchResult, SourceFetcher

__all__ = [
    "BatchJobRunner",
    "BatchProcessor",
    "BatchResult",
    "ImageAnalyzer",
    "LLMExtractor",
    "ProcessOutcome",
    "RecordBuilder",
    "FetchResult",
    "SourceFetcher",
]
