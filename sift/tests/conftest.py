"""Shared fixtures: in-memory store, keyword embedder, wired pipeline."""

import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import httpx
import pytest
from unittest.mock import MagicMock

from sift.common.errors import EmbeddingError

# Each axis of the fake embedding space counts one topic's words
TOPICS = [
    ("ai", "genai", "model", "models", "llm", "machine"),
    ("cloud", "infrastructure", "migration", "kubernetes"),
    ("retail", "shopper", "store", "ecommerce"),
]


class KeywordEmbedder:
    """Deterministic stand-in for EmbeddingService: one dimension per topic."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[str] = []

    @property
    def is_available(self) -> bool:
        return True

    def _vector(self, text: str) -> List[float]:
        if self.fail:
            raise EmbeddingError("embedding provider unavailable")
        self.calls.append(text)
        words = re.findall(r"[a-z]+", text.lower())
        vec = [float(sum(words.count(w) for w in topic)) for topic in TOPICS]
        # Small constant keeps unrelated text from being a zero vector
        return [v + 0.05 for v in vec]

    def embed_query(self, question: str) -> List[float]:
        return self._vector(question)

    def embed_record(self, record) -> List[float]:
        s = record.structured
        return self._vector(" ".join([record.display_title, s.summary if s else "", record.user_notes]))

    def embed_image(self, image) -> List[float]:
        a = image.analysis
        return self._vector(" ".join([image.title, a.description if a else "", a.key_insight if a else ""]))


def make_record(
    record_id: str = "kr_20250101_000001",
    owner_id: str = "owner-1",
    title: str = "Untitled",
    summary: str = "",
    embedding: Optional[List[float]] = None,
    status: str = "extracted",
    content: str = "",
    quotables: Optional[List[str]] = None,
    age_days: int = 0,
    **kwargs,
):
    from sift.common.findings import ensure_five_findings
    from sift.common.schemas import KnowledgeRecord, RecordStatus, StructuredFields

    structured = None
    if status != "pending":
        structured = StructuredFields(
            title=title,
            summary=summary or f"Summary of {title}",
            findings=ensure_five_findings([]),
            relevance_note=f"Why {title} matters",
            quotables=quotables or [],
        )
    return KnowledgeRecord(
        id=record_id,
        owner_id=owner_id,
        reference=kwargs.pop("reference", f"https://example.com/{record_id}"),
        title=title,
        content=content,
        status=RecordStatus(status),
        structured=structured,
        embedding=embedding,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(days=age_days),
        **kwargs,
    )


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def store():
    from sift.common.record_store import InMemoryRecordStore
    return InMemoryRecordStore()


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def synthesis_llm():
    llm = MagicMock()
    llm.is_available = True
    llm.generate.return_value = "Adoption is accelerating [1]."
    return llm


@pytest.fixture
def team_handler():
    from sift.distribution.handlers import SlackHandler
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, text="ok")

    slack = SlackHandler("https://hooks.slack.test/T000/B000", http_client=httpx.Client(
        transport=httpx.MockTransport(handler)))
    slack.requests = calls
    return slack


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


@pytest.fixture
def image_llm():
    llm = MagicMock()
    llm.supports_image_generation = True
    llm.generate_image.return_value = (PNG_BYTES, "image/png")
    return llm


@pytest.fixture
def media_store(tmp_path):
    from sift.common.media_store import MediaStore
    return MediaStore(tmp_path / "media", "https://sift.test")


PAGE_TEXT = (
    "Generative AI models are moving from pilots into production across financial services. "
    "Banks that invested in data governance early report faster deployment and fewer incidents. "
) * 5


def page_handler(request):
    if request.url.host == "broken.example.com":
        return httpx.Response(503)
    return httpx.Response(200, html=f"<html><body><article><h1>AI report</h1><p>{PAGE_TEXT}</p>"
                                    f"<p>{PAGE_TEXT}</p></article></body></html>")


@pytest.fixture
def fetcher():
    from sift.common.config import FetcherConfig
    from sift.ingest import SourceFetcher
    return SourceFetcher(FetcherConfig(), http_client=httpx.Client(transport=httpx.MockTransport(page_handler)))


@pytest.fixture
def pipeline(store, fetcher, embedder, synthesis_llm, team_handler, image_llm, media_store):
    """Pipeline with mocked network, an unavailable extractor model and a keyword embedder"""
    from sift.common.job_store import JobStore
    from sift.distribution import InfographicGenerator
    from sift.ingest import LLMExtractor
    from sift.retriever import Synthesizer
    from sift.service import KnowledgePipeline

    return KnowledgePipeline(
        store=store,
        fetcher=fetcher,
        extractor=LLMExtractor(None),
        embedder=embedder,
        synthesizer=Synthesizer(synthesis_llm),
        job_store=JobStore(),
        handlers={"team": team_handler},
        infographics=InfographicGenerator(image_llm, media_store),
    )
