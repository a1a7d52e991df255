"""End-to-end tests through KnowledgePipeline with mocked network and models."""

import json

import httpx
import pytest
from unittest.mock import MagicMock

from sift.common.errors import EmbeddingError, OwnershipError


def build_pipeline(store, fetcher, embedder, synthesis_llm, extraction_llm):
    from sift.ingest import LLMExtractor
    from sift.retriever import Synthesizer
    from sift.service import KnowledgePipeline

    return KnowledgePipeline(
        store=store,
        fetcher=fetcher,
        extractor=LLMExtractor(extraction_llm),
        embedder=embedder,
        synthesizer=Synthesizer(synthesis_llm),
    )


def seed(pipeline, embedder, record_factory, record_id, title, **kwargs):
    record = record_factory(record_id, title=title, **kwargs)
    record.embedding = embedder.embed_record(record)
    pipeline.store.add(record)
    return record


class TestIngestion:
    def test_url_capture_with_failing_model_still_extracted(self, store, fetcher, embedder, synthesis_llm):
        llm = MagicMock()
        llm.is_available = True
        llm.generate.side_effect = Exception("model unavailable")
        pipeline = build_pipeline(store, fetcher, embedder, synthesis_llm, llm)

        record_id = pipeline.capture_reference("owner-1", "https://example.com/ai-report")
        outcome = pipeline.process_record("owner-1", record_id)

        assert outcome.source_kind == "url"
        assert outcome.succeeded
        record = pipeline.get_record("owner-1", record_id)
        assert record.status.value == "extracted"
        assert len(record.structured.findings) == 5
        assert record.structured.degraded
        assert "Generative AI models" in record.content
        assert record.source_kind == "url"
        llm.generate.assert_called_once()

    def test_invalid_content_type_replaced_before_storage(self, store, fetcher, embedder, synthesis_llm):
        llm = MagicMock()
        llm.is_available = True
        llm.generate.return_value = json.dumps({
            "title": "Bank AI report",
            "summary": "Banks deploy generative AI models.",
            "key_findings": ["**Adoption:** Most banks now run at least one model"],
            "content_type": "Bogus",
        })
        pipeline = build_pipeline(store, fetcher, embedder, synthesis_llm, llm)

        record_id = pipeline.capture_reference("owner-1", "https://example.com/bank-ai")
        pipeline.process_record("owner-1", record_id)

        record = pipeline.get_record("owner-1", record_id)
        assert record.structured.content_type.value == "Thought Piece"
        assert not record.structured.degraded
        assert len(record.structured.findings) == 5
        assert record.title == "Bank AI report"

    def test_unreachable_page_falls_back_to_title(self, pipeline):
        record_id = pipeline.capture_reference("owner-1", "https://broken.example.com/x", title="AI outlook")

        outcome = pipeline.process_record("owner-1", record_id)

        assert outcome.source_kind == "fallback"
        record = pipeline.get_record("owner-1", record_id)
        assert record.status.value == "extracted"
        assert record.content == ""
        assert record.embedding is not None

    def test_capture_requires_reference(self, pipeline):
        with pytest.raises(ValueError):
            pipeline.capture_reference("owner-1", "   ")

    def test_capture_with_document_only(self, pipeline):
        record_id = pipeline.capture_reference(
            "owner-1", "", document_url="https://drive.google.com/file/d/abc123/view",
        )
        assert pipeline.get_record("owner-1", record_id).document_url.endswith("abc123/view")

    def test_discarded_record_not_processed(self, pipeline):
        record_id = pipeline.capture_reference("owner-1", "https://example.com/a")
        pipeline.curate_record("owner-1", record_id, keep=False)

        with pytest.raises(ValueError):
            pipeline.process_record("owner-1", record_id)

    def test_embedding_failure_then_reindex(self, pipeline, embedder):
        record_id = pipeline.capture_reference("owner-1", "https://example.com/a", title="AI models")
        embedder.fail = True
        outcome = pipeline.process_record("owner-1", record_id)
        assert not outcome.succeeded
        assert not outcome.embedded

        failed = pipeline.reindex_embeddings("owner-1")
        assert failed.failed == 1

        embedder.fail = False
        result = pipeline.reindex_embeddings("owner-1")

        assert result.processed == 1
        assert pipeline.get_record("owner-1", record_id).embedding is not None
        # Already embedded records are skipped unless asked
        assert pipeline.reindex_embeddings("owner-1").processed == 0
        assert pipeline.reindex_embeddings("owner-1", missing_only=False).processed == 1


class TestOwnership:
    def test_other_owner_cannot_read_or_change(self, pipeline):
        record_id = pipeline.capture_reference("owner-1", "https://example.com/a")

        with pytest.raises(OwnershipError) as exc:
            pipeline.get_record("owner-2", record_id)
        assert str(exc.value) == f"record not found: {record_id}"
        with pytest.raises(OwnershipError):
            pipeline.curate_record("owner-2", record_id)
        with pytest.raises(OwnershipError):
            pipeline.process_record("owner-2", record_id)

    def test_other_owner_batch_untouched(self, pipeline):
        theirs = pipeline.capture_reference("owner-2", "https://example.com/b")
        pipeline.process_pending_batch("owner-1")
        assert pipeline.get_record("owner-2", theirs).status.value == "pending"


class TestRetrieval:
    @pytest.fixture
    def library(self, pipeline, embedder, record_factory):
        seed(pipeline, embedder, record_factory, "kr_genai", "GenAI models in banking",
             quotables=["Banks that govern their models ship faster.", "GenAI budgets doubled."])
        seed(pipeline, embedder, record_factory, "kr_cloud", "Cloud migration costs",
             quotables=["Migration costs are front-loaded."])
        return pipeline

    def test_answer_cites_top_source_first(self, library, synthesis_llm):
        result = library.ask_question("owner-1", "How are GenAI models used in banking?")

        assert result.answer == "Adoption is accelerating [1]."
        assert result.sources[0]["citation"] == 1
        assert result.sources[0]["id"] == "kr_genai"
        assert "kr_cloud" not in [s["id"] for s in result.sources]
        assert '[1] = "GenAI models in banking"' in synthesis_llm.generate.call_args.kwargs["system"]

    def test_invalid_mode_rejected(self, library):
        with pytest.raises(ValueError):
            library.ask_question("owner-1", "AI?", mode="fastest")

    def test_empty_question_rejected(self, library):
        with pytest.raises(ValueError):
            library.ask_question("owner-1", "   ")

    def test_no_matches_answer_without_model(self, pipeline, synthesis_llm):
        from sift.retriever.synthesizer import NO_SOURCES_ANSWER
        result = pipeline.ask_question("owner-1", "What about retail?")

        assert result.answer == NO_SOURCES_ANSWER
        synthesis_llm.generate.assert_not_called()

    def test_search_returns_candidates(self, library):
        results = library.search_semantic("owner-1", "cloud migration", limit=5)

        assert results[0].record_id == "kr_cloud"
        assert results[0].to_dict()["title"] == "Cloud migration costs"

    def test_find_quotes(self, library):
        quotes = library.find_quotes("owner-1", "GenAI models", limit=5)

        assert [q["record_id"] for q in quotes] == ["kr_genai", "kr_genai"]
        first = quotes[0]
        assert first["id"] == "kr_genai-quote-0"
        assert first["quote_text"] == "Banks that govern their models ship faster."
        assert first["source_url"] == "https://example.com/kr_genai"
        assert 0 < first["similarity"] <= 1

    def test_find_quotes_limit(self, library):
        assert len(library.find_quotes("owner-1", "GenAI models", limit=1)) == 1

    def test_embedding_outage_surfaces(self, library, embedder):
        embedder.fail = True
        with pytest.raises(EmbeddingError):
            library.ask_question("owner-1", "GenAI models?")


class TestCuration:
    @pytest.fixture
    def extracted_id(self, pipeline):
        record_id = pipeline.capture_reference("owner-1", "https://example.com/a", title="AI models")
        pipeline.process_record("owner-1", record_id)
        return record_id

    def test_keep_sets_queues(self, pipeline, extracted_id):
        record = pipeline.curate_record("owner-1", extracted_id, keep=True, team=True, linkedin=True)

        assert record.status.value == "archived"
        assert record.distribution.team.queued
        assert record.distribution.linkedin.queued
        assert not record.distribution.newsletter.queued
        assert record.curated_at is not None

    def test_discard_clears_queues(self, pipeline, extracted_id):
        pipeline.curate_record("owner-1", extracted_id, keep=True, team=True)
        record = pipeline.curate_record("owner-1", extracted_id, keep=False, team=True)

        assert record.status.value == "discarded"
        assert not record.distribution.team.queued

    def test_discarded_is_final(self, pipeline, extracted_id):
        pipeline.curate_record("owner-1", extracted_id, keep=False)
        with pytest.raises(ValueError):
            pipeline.curate_record("owner-1", extracted_id, keep=True)

    def test_pending_cannot_be_kept(self, pipeline):
        record_id = pipeline.capture_reference("owner-1", "https://example.com/b")
        with pytest.raises(ValueError):
            pipeline.curate_record("owner-1", record_id, keep=True)

    def test_annotate(self, pipeline, extracted_id):
        record = pipeline.annotate_record("owner-1", extracted_id, note="Use in Q3 deck",
                                          highlighted_findings=[4, 0, 4])

        assert record.annotations.note == "Use in Q3 deck"
        assert record.annotations.highlighted_findings == [0, 4]
        assert pipeline.get_record("owner-1", extracted_id).annotations.note == "Use in Q3 deck"

    @pytest.mark.parametrize("findings,quotes", [([5], None), ([-1], None), (None, [0])])
    def test_annotate_rejects_bad_indices(self, pipeline, extracted_id, findings, quotes):
        with pytest.raises(ValueError):
            pipeline.annotate_record("owner-1", extracted_id, highlighted_findings=findings,
                                     highlighted_quotes=quotes)

    def test_stats(self, pipeline, extracted_id):
        pipeline.capture_reference("owner-1", "https://example.com/b")
        pipeline.curate_record("owner-1", extracted_id, keep=True, team=True)

        stats = pipeline.get_stats("owner-1")

        assert stats["total"] == 2
        assert stats["by_status"]["pending"] == 1
        assert stats["by_status"]["archived"] == 1
        assert stats["with_embedding"] == 1
        assert stats["queued"]["team"] == 1
        assert stats["shared"]["team"] == 0
        assert stats["images"] == 0


class TestDistribution:
    def test_message_then_deliver_marks_shared(self, pipeline, team_handler):
        record_id = pipeline.capture_reference("owner-1", "https://example.com/a", title="AI models")
        pipeline.process_record("owner-1", record_id)

        message = pipeline.generate_distribution_message("owner-1", record_id)
        assert message.is_compliant, message.violations
        result = pipeline.deliver("owner-1", message)

        assert result.ok
        assert len(team_handler.requests) == 1
        record = pipeline.get_record("owner-1", record_id)
        assert record.distribution.team.shared
        assert record.distribution.team.at is not None
        assert record.status.value == "extracted"

    def test_pending_record_not_distributable(self, pipeline):
        record_id = pipeline.capture_reference("owner-1", "https://example.com/a")
        with pytest.raises(ValueError):
            pipeline.generate_distribution_message("owner-1", record_id)

    def test_failed_delivery_leaves_flag(self, pipeline, record_factory):
        from sift.distribution.handlers import SlackHandler
        pipeline.store.add(record_factory("kr_a", title="AI models"))
        pipeline.handlers["team"] = SlackHandler(
            "https://hooks.slack.test/x",
            http_client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500))),
        )

        message = pipeline.generate_distribution_message("owner-1", "kr_a")
        result = pipeline.deliver("owner-1", message)

        assert not result.ok
        assert not pipeline.get_record("owner-1", "kr_a").distribution.team.shared

    def test_unknown_channel(self, pipeline, record_factory):
        pipeline.store.add(record_factory("kr_a", title="AI models"))
        message = pipeline.generate_distribution_message("owner-1", "kr_a")
        message.channel = "fax"

        with pytest.raises(ValueError):
            pipeline.deliver("owner-1", message)


class TestInfographics:
    def test_generated_once_then_reused(self, pipeline, record_factory, image_llm):
        pipeline.store.add(record_factory("kr_a", title="AI models"))

        first = pipeline.generate_infographic("owner-1", "kr_a", "premium")
        second = pipeline.generate_infographic("owner-1", "kr_a", "quick")

        assert not first.cached
        assert first.image_url.startswith("https://sift.test/media/infographics/owner-1/kr_a_premium_")
        assert second.cached
        assert second.image_url == first.image_url
        assert second.kind == "premium"
        assert image_llm.generate_image.call_count == 1
        record = pipeline.get_record("owner-1", "kr_a")
        assert record.image_url == first.image_url
        assert record.infographic_kind == "premium"
        assert record.infographic_generated_at is not None

    def test_force_regenerates(self, pipeline, record_factory, image_llm):
        pipeline.store.add(record_factory("kr_a", title="AI models", image_url="https://example.com/old.png"))

        result = pipeline.generate_infographic("owner-1", "kr_a", "quick", force=True)

        assert not result.cached
        assert result.image_url != "https://example.com/old.png"
        assert image_llm.generate_image.call_count == 1

    def test_pending_record_rejected(self, pipeline, image_llm):
        record_id = pipeline.capture_reference("owner-1", "https://example.com/a")

        with pytest.raises(ValueError):
            pipeline.generate_infographic("owner-1", record_id)
        image_llm.generate_image.assert_not_called()

    def test_other_owner_cannot_generate(self, pipeline, record_factory):
        pipeline.store.add(record_factory("kr_a", title="AI models"))
        with pytest.raises(OwnershipError):
            pipeline.generate_infographic("owner-2", "kr_a")

    def test_share_with_image_option_posts_infographic(self, pipeline, record_factory, team_handler):
        pipeline.store.add(record_factory("kr_a", title="AI models"))

        message, result = pipeline.share_record("owner-1", "kr_a", "summary_quick")

        assert result.ok
        images = [b for b in message.blocks if b["type"] == "image"]
        assert len(images) == 1
        assert images[0]["image_url"].startswith("https://sift.test/media/")
        assert message.is_compliant, message.violations
        assert json.loads(team_handler.requests[0].content)["blocks"] == message.blocks

    def test_share_posts_without_image_when_generation_fails(self, pipeline, record_factory, image_llm):
        pipeline.store.add(record_factory("kr_a", title="AI models"))
        image_llm.generate_image.side_effect = RuntimeError("quota exceeded")

        message, result = pipeline.share_record("owner-1", "kr_a", "infographic_premium")

        assert result.ok
        assert not any(b["type"] == "image" for b in message.blocks)
        record = pipeline.get_record("owner-1", "kr_a")
        assert record.image_url is None
        assert record.distribution.team.shared

    def test_summary_only_share_skips_generation(self, pipeline, record_factory, image_llm):
        pipeline.store.add(record_factory("kr_a", title="AI models"))

        pipeline.share_record("owner-1", "kr_a")

        image_llm.generate_image.assert_not_called()


class TestNewsletter:
    @pytest.fixture
    def queued(self, pipeline, record_factory):
        for n, title in enumerate(["AI models", "Cloud migration", "Retail stores"]):
            pipeline.store.add(record_factory(f"kr_{n}", title=title, age_days=n))
        pipeline.curate_record("owner-1", "kr_0", keep=True, newsletter=True)
        pipeline.curate_record("owner-1", "kr_2", keep=True, newsletter=True)
        pipeline.curate_record("owner-1", "kr_1", keep=True, team=True)
        return ["kr_0", "kr_2"]

    def test_drafts_from_queue_oldest_first(self, pipeline, queued):
        draft = pipeline.draft_newsletter("owner-1")

        assert draft.record_ids == queued
        assert "## AI models" in draft.markdown
        assert pipeline.get_stats("owner-1")["shared"]["newsletter"] == 0

    def test_mark_shared_empties_queue(self, pipeline, queued):
        pipeline.draft_newsletter("owner-1", mark_shared=True)

        stats = pipeline.get_stats("owner-1")
        assert stats["shared"]["newsletter"] == 2
        assert pipeline.get_record("owner-1", "kr_0").distribution.newsletter.at is not None
        with pytest.raises(ValueError):
            pipeline.draft_newsletter("owner-1")

    def test_explicit_selection(self, pipeline, queued):
        draft = pipeline.draft_newsletter("owner-1", ["kr_1", "kr_0", "kr_1"])
        assert draft.record_ids == ["kr_1", "kr_0"]

    def test_nothing_queued(self, pipeline, record_factory):
        pipeline.store.add(record_factory("kr_a", title="AI models"))
        with pytest.raises(ValueError):
            pipeline.draft_newsletter("owner-1")

    def test_pending_selection_rejected(self, pipeline, queued):
        record_id = pipeline.capture_reference("owner-1", "https://example.com/a")
        with pytest.raises(ValueError):
            pipeline.draft_newsletter("owner-1", ["kr_0", record_id])

    def test_selection_over_limit_rejected(self, pipeline, record_factory):
        pipeline.newsletter.max_items = 2
        for n in range(3):
            pipeline.store.add(record_factory(f"kr_{n}", title="AI models"))
        with pytest.raises(ValueError):
            pipeline.draft_newsletter("owner-1", ["kr_0", "kr_1", "kr_2"])

    def test_queue_capped_at_limit(self, pipeline, queued):
        pipeline.newsletter.max_items = 1
        assert pipeline.draft_newsletter("owner-1").record_ids == ["kr_0"]

    def test_other_owner_records_not_drafted(self, pipeline, queued):
        with pytest.raises(OwnershipError):
            pipeline.draft_newsletter("owner-2", ["kr_0"])


class TestImages:
    def test_register_summarize_find(self, pipeline):
        image_id = pipeline.register_image("owner-1", "https://images.example.com/a.png",
                                           title="AI model adoption by industry")

        image = pipeline.generate_image_summary("owner-1", image_id)

        assert image.status.value == "processed"
        assert image.analysis.degraded
        assert image.analysis.chart_type.value == "other"
        assert image.embedding is not None

        found = pipeline.find_images("owner-1", "AI model adoption")
        assert [f["id"] for f in found] == [image_id]
        assert found[0]["chart_type"] == "other"
        assert pipeline.find_images("owner-1", "AI model adoption", chart_type="any")[0]["id"] == image_id
        assert pipeline.find_images("owner-1", "AI model adoption", chart_type="bar_chart") == []

    def test_unknown_chart_type_rejected(self, pipeline):
        with pytest.raises(ValueError):
            pipeline.find_images("owner-1", "AI", chart_type="sparkline")

    def test_unprocessed_images_not_found(self, pipeline):
        pipeline.register_image("owner-1", "https://images.example.com/a.png", title="AI model chart")
        assert pipeline.find_images("owner-1", "AI model chart") == []

    def test_embedding_failure_marks_error(self, pipeline, embedder):
        image_id = pipeline.register_image("owner-1", "https://images.example.com/a.png", title="AI chart")
        embedder.fail = True

        with pytest.raises(EmbeddingError):
            pipeline.generate_image_summary("owner-1", image_id)

        image = pipeline.store.get_image("owner-1", image_id)
        assert image.status.value == "error"
        assert "unavailable" in image.processing_error

    def test_images_owner_scoped(self, pipeline):
        image_id = pipeline.register_image("owner-1", "https://images.example.com/a.png")
        with pytest.raises(OwnershipError):
            pipeline.generate_image_summary("owner-2", image_id)

    def test_register_requires_url(self, pipeline):
        with pytest.raises(ValueError):
            pipeline.register_image("owner-1", " ")
