"""
Knowledge Pipeline

The operations the outer application calls: capture, ingest, ask, search,
distribute, curate, and the image analog of ingestion. Every operation takes
the caller's owner id and never touches another owner's records.

Usage:
    from sift.common.config import load_config
    from sift.service import KnowledgePipeline

    pipeline = KnowledgePipeline.from_config(load_config())
    record_id = pipeline.capture_reference("user-1", "https://example.com/report")
    pipeline.process_pending_batch("user-1")
    result = pipeline.ask_question("user-1", "What drives AI adoption?")
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .common.config import SiftConfig
from .common.embedding_service import EmbeddingService
from .common.errors import ConfigurationError, EmbeddingError, ImageGenerationError
from .common.findings import FINDINGS_COUNT
from .common.job_store import JobStore, ProcessingJob
from .common.llm_client import LLMClient
from .common.media_store import MediaStore
from .common.record_store import SEARCHABLE_STATUSES, FileRecordStore, InMemoryRecordStore, RecordStore
from .common.schemas import (
    ChartType,
    ImageRecord,
    ImageStatus,
    KnowledgeRecord,
    RecordStatus,
    generate_image_id,
    generate_record_id,
)
from .common.schemas.knowledge_record import utcnow
from .distribution import (
    ComplianceValidator,
    DeliveryResult,
    DistributionOption,
    InfographicGenerator,
    InfographicKind,
    InfographicResult,
    Message,
    NewsletterDraft,
    NewsletterDrafter,
    TemplateRenderer,
)
from .distribution.handlers import BaseHandler, SlackHandler
from .ingest.batch import DEFAULT_BATCH_SIZE, BatchJobRunner, BatchProcessor, BatchResult
from .ingest.image_analyzer import ImageAnalyzer
from .ingest.llm_extractor import LLMExtractor
from .ingest.record_builder import ProcessOutcome, RecordBuilder
from .ingest.source_fetcher import SourceFetcher
from .retriever import AnswerResult, QueryProcessor, RetrievalCandidate, Searcher, SearchFilters, SearchMode, Synthesizer

logger = logging.getLogger("sift.service")

# Quote search: records matched, and their floor
QUOTE_RECORD_COUNT = 10
QUOTE_THRESHOLD = 0.3

IMAGE_THRESHOLD = 0.35
DEFAULT_IMAGE_COUNT = 12


class KnowledgePipeline:
    """
    Facade over ingestion, retrieval and distribution.

    Args:
        store: Owner-scoped record store
        fetcher: Source Fetcher
        extractor: Structured Extractor
        embedder: Embedding service
        synthesizer: Answer Synthesizer
        job_store: Background job progress
        handlers: Delivery channel name -> handler
        image_analyzer: Vision analysis for images
        infographics: Infographic rendering for image distribution options
        newsletter: Newsletter drafting over queued records
    """

    def __init__(
        self,
        store: RecordStore,
        fetcher: SourceFetcher,
        extractor: LLMExtractor,
        embedder: EmbeddingService,
        synthesizer: Synthesizer,
        job_store: Optional[JobStore] = None,
        handlers: Optional[Dict[str, BaseHandler]] = None,
        image_analyzer: Optional[ImageAnalyzer] = None,
        infographics: Optional[InfographicGenerator] = None,
        newsletter: Optional[NewsletterDrafter] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.synthesizer = synthesizer
        self.builder = RecordBuilder(store, fetcher, extractor, embedder)
        self.processor = BatchProcessor(store, self.builder)
        self.jobs = BatchJobRunner(self.processor, job_store or JobStore())
        self.searcher = Searcher(store, embedder, synthesizer.config)
        self.query_processor = QueryProcessor()
        self.renderer = TemplateRenderer()
        self.validator = ComplianceValidator()
        self.handlers = handlers or {}
        self.image_analyzer = image_analyzer or ImageAnalyzer()
        self.infographics = infographics or InfographicGenerator()
        self.newsletter = newsletter or NewsletterDrafter()

    @classmethod
    def from_config(cls, config: SiftConfig) -> "KnowledgePipeline":
        """Wire every component from configuration."""
        backend = config.store.backend
        if backend == "file":
            store = FileRecordStore(Path(config.store.records_path), Path(config.store.images_path))
            job_store = JobStore(Path(config.store.jobs_path))
        elif backend == "memory":
            store = InMemoryRecordStore()
            job_store = JobStore()
        else:
            raise ConfigurationError(f"Unsupported store backend: {backend}")

        vision = LLMClient.from_config(config.llm, "vision")
        synthesis_llm = LLMClient.from_config(config.llm, "synthesis")
        media = MediaStore(Path(config.store.media_path), config.server.public_base_url)
        embedder = EmbeddingService(
            config.embedding,
            google_api_key=config.llm.google_api_key,
            openai_api_key=config.llm.openai_api_key,
        )
        return cls(
            store=store,
            fetcher=SourceFetcher(config.fetcher, media_client=vision),
            extractor=LLMExtractor(LLMClient.from_config(config.llm, "extraction"), config.extractor),
            embedder=embedder,
            synthesizer=Synthesizer(synthesis_llm, config.retriever),
            job_store=job_store,
            handlers={
                "team": SlackHandler(
                    config.distribution.slack_webhook_url,
                    timeout=config.distribution.timeout,
                ),
            },
            image_analyzer=ImageAnalyzer(vision),
            infographics=InfographicGenerator(LLMClient.from_config(config.llm, "image"), media),
            newsletter=NewsletterDrafter(synthesis_llm, max_items=config.distribution.newsletter_max_items),
        )

    # ------------------------------------------------------------------
    # Capture and ingestion
    # ------------------------------------------------------------------

    def capture_reference(
        self,
        owner_id: str,
        ref: str,
        notes: str = "",
        title: Optional[str] = None,
        document_url: Optional[str] = None,
        content: str = "",
    ) -> str:
        """Create a pending record and return its id."""
        ref = (ref or "").strip()
        if not ref and not document_url:
            raise ValueError("A reference URL or document pointer is required")

        record = KnowledgeRecord(
            id=generate_record_id(),
            owner_id=owner_id,
            reference=ref,
            document_url=document_url or None,
            title=(title or "").strip(),
            user_notes=notes or "",
            content=content or "",
        )
        self.store.add(record)
        logger.info("Captured %s for %s: %s", record.id, owner_id, ref or document_url)
        return record.id

    def process_pending_batch(self, owner_id: str, limit: int = DEFAULT_BATCH_SIZE) -> BatchResult:
        return self.processor.process_pending_batch(owner_id, limit=limit)

    def process_record(self, owner_id: str, record_id: str) -> ProcessOutcome:
        """Run one record through the pipeline now."""
        record = self.store.get(owner_id, record_id)
        if record.status == RecordStatus.DISCARDED:
            raise ValueError(f"Record {record_id} is discarded")
        return self.builder.process(record)

    async def start_processing_job(self, owner_id: str) -> ProcessingJob:
        return await self.jobs.start(owner_id)

    def get_job(self, owner_id: str, job_id: str) -> ProcessingJob:
        return self.jobs.get(owner_id, job_id)

    async def cancel_job(self, owner_id: str, job_id: str) -> ProcessingJob:
        return await self.jobs.cancel(owner_id, job_id)

    def reindex_embeddings(self, owner_id: Optional[str] = None, missing_only: bool = True) -> BatchResult:
        """Recompute embeddings for extracted records (all owners when owner_id is None)."""
        result = BatchResult()
        for record in self.store.list_records(owner_id, statuses=SEARCHABLE_STATUSES):
            if missing_only and record.embedding:
                continue
            try:
                self.builder.reindex(record)
                result.processed += 1
            except EmbeddingError as e:
                result.failed += 1
                result.errors.append(f"{record.id}: {e}")
                logger.error("Reindex failed for %s: %s", record.id, e)
        logger.info("Reindex complete: %d succeeded, %d failed", result.processed, result.failed)
        return result

    # ------------------------------------------------------------------
    # Records and curation
    # ------------------------------------------------------------------

    def get_record(self, owner_id: str, record_id: str) -> KnowledgeRecord:
        return self.store.get(owner_id, record_id)

    def list_records(
        self,
        owner_id: str,
        status: Optional[RecordStatus] = None,
        limit: Optional[int] = None,
    ) -> List[KnowledgeRecord]:
        statuses = [RecordStatus(status)] if status else None
        return self.store.list_records(owner_id, statuses=statuses, limit=limit)

    def curate_record(
        self,
        owner_id: str,
        record_id: str,
        keep: bool = True,
        team: bool = False,
        newsletter: bool = False,
        linkedin: bool = False,
    ) -> KnowledgeRecord:
        """
        Keep (archive) or discard an extracted record.

        Discarding overrides every queue selection. Kept records get the
        selected distribution queues flagged.

        Raises:
            ValueError: the record is still pending or already discarded
        """
        record = self.store.get(owner_id, record_id)
        if not keep:
            record.transition(RecordStatus.DISCARDED)
            for name in ("team", "newsletter", "linkedin"):
                record.distribution.channel(name).queued = False
        else:
            record.transition(RecordStatus.ARCHIVED)
            record.distribution.team.queued = team
            record.distribution.newsletter.queued = newsletter
            record.distribution.linkedin.queued = linkedin
        record.curated_at = utcnow()
        self.store.update(record)
        logger.info("Curated %s: %s", record_id, record.status.value)
        return record

    def annotate_record(
        self,
        owner_id: str,
        record_id: str,
        note: Optional[str] = None,
        highlighted_findings: Optional[List[int]] = None,
        highlighted_quotes: Optional[List[int]] = None,
    ) -> KnowledgeRecord:
        """Update the curator note and highlighted finding / quote indices."""
        record = self.store.get(owner_id, record_id)
        annotations = record.annotations

        if note is not None:
            annotations.note = note
        if highlighted_findings is not None:
            bad = [i for i in highlighted_findings if not 0 <= i < FINDINGS_COUNT]
            if bad:
                raise ValueError(f"Finding indices out of range: {bad}")
            annotations.highlighted_findings = sorted(set(highlighted_findings))
        if highlighted_quotes is not None:
            quote_count = len(record.structured.quotables) if record.structured else 0
            bad = [i for i in highlighted_quotes if not 0 <= i < quote_count]
            if bad:
                raise ValueError(f"Quote indices out of range: {bad}")
            annotations.highlighted_quotes = sorted(set(highlighted_quotes))

        self.store.update(record)
        return record

    def get_stats(self, owner_id: str) -> Dict[str, Any]:
        records = self.store.list_records(owner_id)
        by_status = {status.value: 0 for status in RecordStatus}
        queued = {"team": 0, "newsletter": 0, "linkedin": 0}
        shared = dict(queued)
        for record in records:
            by_status[record.status.value] += 1
            for name in queued:
                flag = record.distribution.channel(name)
                queued[name] += int(flag.queued)
                shared[name] += int(flag.shared)
        return {
            "total": len(records),
            "by_status": by_status,
            "with_embedding": sum(1 for r in records if r.embedding),
            "queued": queued,
            "shared": shared,
            "images": len(self.store.list_images(owner_id)),
        }

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def ask_question(
        self,
        owner_id: str,
        question: str,
        mode: SearchMode = SearchMode.STANDARD,
    ) -> AnswerResult:
        """
        Answer a question from the owner's records with citations.

        Raises:
            ValueError: empty question or unknown mode
            EmbeddingError: the question could not be embedded
            SynthesisError: the answer could not be generated
        """
        mode = SearchMode(mode)
        parsed = self.query_processor.parse(question)
        candidates = self.searcher.retrieve(owner_id, parsed, mode)
        return self.synthesizer.answer(parsed.original, candidates, mode, parsed.language)

    def search_semantic(
        self,
        owner_id: str,
        query: str,
        limit: Optional[int] = None,
        content_types: Optional[List[str]] = None,
    ) -> List[RetrievalCandidate]:
        """Free-text hybrid search, no synthesis."""
        parsed = self.query_processor.parse(query)
        return self.searcher.retrieve(
            owner_id,
            parsed,
            SearchMode.SEARCH,
            filters=SearchFilters(content_types=content_types),
            k=limit,
        )

    def find_quotes(
        self,
        owner_id: str,
        query: str,
        context: Optional[str] = None,
        limit: int = 5,
    ) -> List[Dict[str, Any]]:
        """Quotable excerpts for a topic, optionally tuned to an audience."""
        parsed = self.query_processor.parse(self.query_processor.with_context(query, context))
        candidates = self.searcher.retrieve(
            owner_id, parsed, k=QUOTE_RECORD_COUNT, threshold=QUOTE_THRESHOLD,
        )

        quotes = []
        for candidate in candidates:
            fields = candidate.record.structured
            if not fields:
                continue
            for n, quote in enumerate(fields.quotables):
                quotes.append({
                    "id": f"{candidate.record_id}-quote-{n}",
                    "quote_text": quote,
                    "record_id": candidate.record_id,
                    "source_title": candidate.title,
                    "source_author": fields.author,
                    "source_url": candidate.url,
                    "topic_tags": list(fields.tags.industries),
                    "similarity": round(candidate.similarity, 4),
                })

        # Stable sort keeps retrieval order among equal similarities
        quotes.sort(key=lambda q: -q["similarity"])
        return quotes[:limit]

    # ------------------------------------------------------------------
    # Distribution
    # ------------------------------------------------------------------

    def generate_distribution_message(
        self,
        owner_id: str,
        record_id: str,
        option: DistributionOption = DistributionOption.SUMMARY_ONLY,
    ) -> Message:
        """Render and compliance-check the team message for a record."""
        record = self.store.get(owner_id, record_id)
        if record.status not in SEARCHABLE_STATUSES:
            raise ValueError(f"Record {record_id} is {record.status.value}; only extracted records can be distributed")
        message = self.renderer.render(record, option=DistributionOption(option))
        self.validator.check(message)
        return message

    def deliver(self, owner_id: str, message: Message) -> DeliveryResult:
        """
        Send a rendered message. On success the record's channel flag is set;
        its status is never changed. Failures are reported, not raised.
        """
        record = self.store.get(owner_id, message.record_id)
        handler = self.handlers.get(message.channel)
        if handler is None:
            raise ValueError(f"No delivery handler for channel: {message.channel}")

        result = handler.deliver(message)
        if result.ok:
            record.distribution.channel(message.channel).mark(result.delivered_at)
            self.store.update(record)
        return result

    def generate_infographic(
        self,
        owner_id: str,
        record_id: str,
        kind: InfographicKind = InfographicKind.QUICK,
        force: bool = False,
    ) -> InfographicResult:
        """
        Render an infographic for an extracted record and store its link as
        the record's image. An existing image is reused unless ``force``.

        Raises:
            ValueError: record not extracted, or image generation not configured
            ImageGenerationError: the image provider failed
        """
        kind = InfographicKind(kind)
        record = self.store.get(owner_id, record_id)
        if record.status not in SEARCHABLE_STATUSES:
            raise ValueError(f"Record {record_id} is {record.status.value}; only extracted records get infographics")
        if record.image_url and not force:
            return InfographicResult(record_id, record.image_url, record.infographic_kind, cached=True)

        url = self.infographics.generate(record, kind)
        record.image_url = url
        record.infographic_kind = kind.value
        record.infographic_generated_at = utcnow()
        self.store.update(record)
        logger.info("Stored %s infographic for %s", kind.value, record_id)
        return InfographicResult(record_id, url, kind.value, cached=False)

    def share_record(
        self,
        owner_id: str,
        record_id: str,
        option: DistributionOption = DistributionOption.SUMMARY_ONLY,
    ) -> Tuple[Message, DeliveryResult]:
        """
        Render and deliver a record to the team channel. Options with an
        image get their infographic generated first when the record has
        none; if generation fails the summary is posted without it.
        """
        option = DistributionOption(option)
        kind = option.infographic_kind
        if kind and self.infographics.is_available:
            try:
                self.generate_infographic(owner_id, record_id, InfographicKind(kind))
            except ImageGenerationError as e:
                logger.warning("Sharing %s without an infographic: %s", record_id, e)

        message = self.generate_distribution_message(owner_id, record_id, option)
        return message, self.deliver(owner_id, message)

    def draft_newsletter(
        self,
        owner_id: str,
        record_ids: Optional[Sequence[str]] = None,
        mark_shared: bool = False,
    ) -> NewsletterDraft:
        """
        Draft a newsletter section from the given records, or from the
        oldest records queued for the newsletter and not yet shared.

        Args:
            record_ids: Explicit selection; None drafts from the queue
            mark_shared: Flag the included records' newsletter channel as shared

        Raises:
            ValueError: nothing to draft, too many records, or a record not extracted
        """
        max_items = self.newsletter.max_items
        if record_ids:
            unique = list(dict.fromkeys(record_ids))
            if len(unique) > max_items:
                raise ValueError(f"A newsletter takes at most {max_items} records, got {len(unique)}")
            records = [self.store.get(owner_id, rid) for rid in unique]
            unready = [r.id for r in records if r.status not in SEARCHABLE_STATUSES]
            if unready:
                raise ValueError(f"Records not extracted: {unready}")
        else:
            records = [
                r for r in self.store.list_records(owner_id, statuses=SEARCHABLE_STATUSES)
                if r.distribution.newsletter.queued and not r.distribution.newsletter.shared
            ][:max_items]
            if not records:
                raise ValueError("No records are queued for the newsletter")

        draft = self.newsletter.draft(records)
        if mark_shared:
            now = utcnow()
            for record in records:
                record.distribution.newsletter.mark(now)
                self.store.update(record)
        return draft

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def register_image(
        self,
        owner_id: str,
        image_url: str,
        title: str = "",
        source_reference: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> str:
        if not image_url or not image_url.strip():
            raise ValueError("image_url is required")
        image = ImageRecord(
            id=generate_image_id(),
            owner_id=owner_id,
            image_url=image_url.strip(),
            title=title,
            source_reference=source_reference,
            mime_type=mime_type,
        )
        self.store.add_image(image)
        logger.info("Registered image %s for %s", image.id, owner_id)
        return image.id

    def generate_image_summary(self, owner_id: str, image_id: str) -> ImageRecord:
        """
        Analyze and embed an image.

        Analysis degrades instead of failing. An embedding failure marks the
        image ``error`` and is re-raised.
        """
        image = self.store.get_image(owner_id, image_id)
        image.analysis = self.image_analyzer.analyze(image)
        if not image.title and image.analysis.title:
            image.title = image.analysis.title

        try:
            image.embedding = self.embedder.embed_image(image)
        except EmbeddingError as e:
            image.status = ImageStatus.ERROR
            image.processing_error = str(e)
            self.store.update_image(image)
            raise

        image.status = ImageStatus.PROCESSED
        image.processing_error = None
        image.processed_at = utcnow()
        self.store.update_image(image)
        logger.info("Processed image %s (degraded=%s)", image_id, image.analysis.degraded)
        return image

    def find_images(
        self,
        owner_id: str,
        query: str,
        chart_type: Optional[str] = None,
        limit: int = DEFAULT_IMAGE_COUNT,
    ) -> List[Dict[str, Any]]:
        """Processed images matching a description, optionally of one chart type."""
        if not query or not query.strip():
            raise ValueError("Query must not be empty")
        if chart_type in (None, "", "any"):
            chart_type = None
        else:
            chart_type = ChartType(chart_type).value

        search_text = query.strip()
        if chart_type:
            search_text = f"{search_text} {chart_type.replace('_', ' ')} chart visualization"

        embedding = self.embedder.embed_query(search_text)
        ranked = self.store.rank_images(owner_id, embedding, IMAGE_THRESHOLD, limit, chart_type=chart_type)
        return [
            {
                "id": image.id,
                "image_url": image.image_url,
                "title": image.title,
                "chart_type": image.analysis.chart_type.value if image.analysis else None,
                "description": image.analysis.description if image.analysis else "",
                "key_insight": image.analysis.key_insight if image.analysis else "",
                "similarity": round(sim, 4),
            }
            for image, sim in ranked
        ]
