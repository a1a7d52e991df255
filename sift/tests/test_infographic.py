"""Tests for infographic prompts, generation and the media store."""

import base64

import pytest
from unittest.mock import MagicMock

from sift.common.errors import ImageGenerationError
from sift.common.llm_client import LLMClient
from sift.common.media_store import MediaStore
from sift.distribution import DistributionOption, InfographicGenerator, InfographicKind
from sift.distribution.infographic import build_prompt


@pytest.fixture
def record(record_factory):
    r = record_factory("kr_info", title="GenAI in banking ★")
    r.structured.author_organization = "Acme Research"
    r.structured.findings = [
        "**Adoption:** 40% of banks run GenAI in production",
        "**Cost:** Inference spend doubled in a year",
        "**Talent:** ML engineers remain scarce across regions",
        "**Risk:** Model governance lags deployment",
        "**Outlook:** Spend grows through 2026 in every segment",
    ]
    r.structured.relevance_note = "Benchmarks for client readiness work."
    return r


class TestPrompt:
    def test_quick_lists_findings(self, record):
        prompt = build_prompt(record, InfographicKind.QUICK)

        assert "Create a simple infographic" in prompt
        assert "- **Adoption:** 40% of banks run GenAI in production" in prompt
        assert "Acme Research" not in prompt
        assert "★" not in prompt

    def test_premium_adds_source_and_relevance(self, record):
        prompt = build_prompt(record, InfographicKind.PREMIUM)

        assert "Source: Acme Research" in prompt
        assert "Why it matters: Benchmarks for client readiness work." in prompt
        assert "16:9" in prompt

    def test_summary_used_without_findings(self, record):
        record.structured.findings = []
        assert "- Summary of GenAI in banking" in build_prompt(record, InfographicKind.QUICK)


@pytest.mark.parametrize("option,kind", [
    (DistributionOption.SUMMARY_ONLY, None),
    (DistributionOption.SUMMARY_QUICK, "quick"),
    (DistributionOption.INFOGRAPHIC_QUICK, "quick"),
    (DistributionOption.SUMMARY_PREMIUM, "premium"),
    (DistributionOption.INFOGRAPHIC_PREMIUM, "premium"),
])
def test_option_infographic_kind(option, kind):
    assert option.infographic_kind == kind


class TestGenerator:
    def test_generated_image_stored_and_linked(self, record, image_llm, media_store):
        url = InfographicGenerator(image_llm, media_store).generate(record, InfographicKind.PREMIUM)

        assert url.startswith("https://sift.test/media/infographics/owner-1/kr_info_premium_")
        assert url.endswith(".png")
        relative = url.split("/media/", 1)[1]
        assert media_store.resolve(relative).read_bytes() == image_llm.generate_image.return_value[0]

    def test_provider_failure_raises(self, record, image_llm, media_store):
        image_llm.generate_image.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(ImageGenerationError, match="quota exceeded"):
            InfographicGenerator(image_llm, media_store).generate(record, InfographicKind.QUICK)

    def test_unconfigured_generator(self, record, media_store):
        no_images = MagicMock()
        no_images.supports_image_generation = False

        assert not InfographicGenerator().is_available
        with pytest.raises(ValueError):
            InfographicGenerator(no_images, media_store).generate(record, InfographicKind.QUICK)


class TestMediaStore:
    def test_file_links_without_public_url(self, tmp_path):
        store = MediaStore(tmp_path)
        url = store.save("a/b", b"data", "image/jpeg")

        assert url == (tmp_path / "a" / "b.jpg").resolve().as_uri()

    def test_paths_outside_root_rejected(self, tmp_path):
        store = MediaStore(tmp_path / "media")

        assert store.resolve("../secret.txt") is None
        assert store.resolve("") is None
        with pytest.raises(ValueError):
            store.save("../escape", b"data", "image/png")

    def test_unsupported_type_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            MediaStore(tmp_path).save("x", b"data", "text/html")


class TestImageClient:
    def test_openai_image_generation(self):
        client = LLMClient(provider="openai", model="gpt-image-1")
        client._client = MagicMock()
        client._client.images.generate.return_value.data = [
            MagicMock(b64_json=base64.b64encode(b"\x89PNG").decode())
        ]

        data, mime_type = client.generate_image("a chart")

        assert (data, mime_type) == (b"\x89PNG", "image/png")
        kwargs = client._client.images.generate.call_args.kwargs
        assert kwargs["model"] == "gpt-image-1"
        assert kwargs["size"] == "1536x1024"

    def test_other_providers_cannot_generate_images(self):
        client = LLMClient(provider="anthropic", model="claude")
        client._client = MagicMock()

        assert not client.supports_image_generation
        with pytest.raises(RuntimeError):
            client.generate_image("a chart")
