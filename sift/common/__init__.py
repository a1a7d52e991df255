"""
Sift Common Module

Shared infrastructure for ingestion, retrieval and distribution.
"""

from .config import SiftConfig, load_config, validate_config
from .embedding_service import EmbeddingService
from .errors import (
    ConfigurationError,
    DeliveryError,
    EmbeddingError,
    ImageGenerationError,
    OwnershipError,
    SiftError,
    SynthesisError,
    TransientExternalError,
)
from .job_store import JobStatus, JobStore, ProcessingJob
from .llm_client import LLMClient
from .media_store import MediaStore
from .record_store import FileRecordStore, InMemoryRecordStore, RecordStore

__all__ = [
    "SiftConfig",
    "load_config",
    "validate_config",
    "EmbeddingService",
    "ConfigurationError",
    "DeliveryError",
    "EmbeddingError",
    "ImageGenerationError",
    "OwnershipError",
    "SiftError",
    "SynthesisError",
    "TransientExternalError",
    "JobStatus",
    "JobStore",
    "ProcessingJob",
    "LLMClient",
    "MediaStore",
    "FileRecordStore",
    "InMemoryRecordStore",
    "RecordStore",
]
