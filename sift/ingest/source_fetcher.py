"""
Source Fetcher

Acquires raw text for a captured reference by trying content channels in
strict priority order:

1. existing  - stored content already long enough (no network)
2. video     - content-understanding pass over a recognized video URL
3. document  - document-storage file downloaded via its direct URL and
               passed to the content-understanding model
4. url       - generic web page, main text extracted with trafilatura
5. fallback  - any short stored content, else the record title

Every channel failure is logged and recorded as a diagnostic; the fetcher
never raises.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import httpx
import trafilatura
from bs4 import BeautifulSoup

from ..common.config import FetcherConfig
from ..common.fallback import StrategyResult, run_chain
from ..common.llm_client import LLMClient
from ..common.schemas import KnowledgeRecord
from .channels import (
    document_pointer,
    drive_download_url,
    extract_drive_file_id,
    is_http_url,
    is_video_url,
)

logger = logging.getLogger("sift.ingest.source_fetcher")

SOURCE_EXISTING = "existing"
SOURCE_VIDEO = "video"
SOURCE_DOCUMENT = "document"
SOURCE_URL = "url"
SOURCE_FALLBACK = "fallback"

VIDEO_PROMPT = """Watch this video and produce a complete written account of it.

Include:
- The speaker(s) and their organization, if stated
- Every main argument, in the order presented
- All numbers, statistics, and named examples
- Direct quotes worth citing, verbatim where possible

Write plain prose paragraphs. Do not add commentary of your own."""

DOCUMENT_PROMPT = """Extract the full text content of this document.

Preserve headings, the order of sections, figures, tables (as plain text rows),
and the author / organization if stated. Return only the document text."""

_TEXT_MIME_PREFIXES = ("text/plain", "text/markdown", "text/csv")


@dataclass
class FetchResult:
    """Outcome of a fetch: the content, the channel that produced it, and why others failed"""
    content: Optional[str]
    source_kind: str
    diagnostics: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def should_persist(self) -> bool:
        """Only freshly fetched content is worth writing back"""
        return bool(self.content) and self.source_kind not in (SOURCE_EXISTING, SOURCE_FALLBACK)


class SourceFetcher:
    """
    Runs the channel chain for one record.

    Args:
        config: Thresholds and timeouts
        media_client: Vision-capable LLM client for video and document passes
        http_client: httpx client (injectable for tests)
    """

    def __init__(
        self,
        config: Optional[FetcherConfig] = None,
        media_client: Optional[LLMClient] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.config = config or FetcherConfig()
        self._media = media_client
        self._http = http_client or httpx.Client(
            timeout=self.config.timeout,
            follow_redirects=True,
            headers={"User-Agent": self.config.user_agent},
        )

    @property
    def strategies(self):
        return [
            (SOURCE_EXISTING, self._try_existing),
            (SOURCE_VIDEO, self._try_video),
            (SOURCE_DOCUMENT, self._try_document),
            (SOURCE_URL, self._try_url),
            (SOURCE_FALLBACK, self._fallback),
        ]

    def fetch(self, record: KnowledgeRecord) -> FetchResult:
        chain = run_chain(self.strategies, record)
        result = FetchResult(
            content=chain.value,
            source_kind=chain.strategy or SOURCE_FALLBACK,
            diagnostics=chain.diagnostics,
        )
        logger.info(
            "Fetched %s via %s (%d chars)",
            record.id, result.source_kind, len(result.content or ""),
        )
        return result

    def truncate_for_storage(self, content: str) -> str:
        return content[: self.config.max_stored_length]

    def _long_enough(self, text: Optional[str]) -> bool:
        return bool(text) and len(text.strip()) > self.config.min_content_length

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def _try_existing(self, record: KnowledgeRecord) -> StrategyResult:
        if self._long_enough(record.content):
            return StrategyResult.ok(record.content, f"{len(record.content)} chars already stored")
        return StrategyResult.fail("no stored content above minimum length")

    def _try_video(self, record: KnowledgeRecord) -> StrategyResult:
        if not is_video_url(record.reference):
            return StrategyResult.fail("not a video URL")
        if not self._media or not self._media.supports_media:
            return StrategyResult.fail("no media-capable model configured")

        try:
            text = self._media.generate_with_media(
                VIDEO_PROMPT,
                mime_type="video/mp4",
                file_uri=record.reference,
            )
        except Exception as e:
            logger.warning("Video understanding failed for %s: %s", record.id, e)
            return StrategyResult.fail(f"video pass failed: {e}")

        if self._long_enough(text):
            return StrategyResult.ok(text, f"video pass returned {len(text)} chars")
        return StrategyResult.fail(f"video pass too short ({len(text or '')} chars)")

    def _try_document(self, record: KnowledgeRecord) -> StrategyResult:
        pointer = document_pointer(record.reference, record.document_url)
        if not pointer:
            return StrategyResult.fail("no document pointer")

        file_id = extract_drive_file_id(pointer)
        url = drive_download_url(file_id) if file_id else pointer
        if not is_http_url(url):
            return StrategyResult.fail(f"document pointer is not fetchable: {pointer}")

        try:
            response = self._http.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Document download failed for %s: %s", record.id, e)
            return StrategyResult.fail(f"download failed: {e}")

        mime_type = response.headers.get("content-type", "application/pdf").split(";")[0].strip()
        if mime_type.startswith("text/html"):
            # Drive serves an HTML interstitial for large or private files
            return StrategyResult.fail("download returned an HTML page, not the file")

        if mime_type.startswith(_TEXT_MIME_PREFIXES):
            text = response.text
        else:
            if not self._media or not self._media.supports_media:
                return StrategyResult.fail("no media-capable model configured")
            try:
                text = self._media.generate_with_media(
                    DOCUMENT_PROMPT,
                    mime_type=mime_type,
                    data=response.content,
                )
            except Exception as e:
                logger.warning("Document understanding failed for %s: %s", record.id, e)
                return StrategyResult.fail(f"document pass failed: {e}")

        if self._long_enough(text):
            return StrategyResult.ok(text, f"document returned {len(text)} chars ({mime_type})")
        return StrategyResult.fail(f"document text too short ({len(text or '')} chars)")

    def _try_url(self, record: KnowledgeRecord) -> StrategyResult:
        if not is_http_url(record.reference):
            return StrategyResult.fail("not an http(s) URL")

        try:
            response = self._http.get(record.reference)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Page fetch failed for %s: %s", record.id, e)
            return StrategyResult.fail(f"page fetch failed: {e}")

        html = response.text
        text = trafilatura.extract(
            html,
            include_comments=False,
            include_tables=True,
            no_fallback=False,
        )
        if not self._long_enough(text):
            soup = BeautifulSoup(html, "html.parser")
            for tag in soup(["script", "style", "nav", "header", "footer", "aside"]):
                tag.decompose()
            text = soup.get_text(separator="\n", strip=True)

        if self._long_enough(text):
            return StrategyResult.ok(text, f"page extraction returned {len(text)} chars")
        return StrategyResult.fail(f"page text too short ({len(text or '')} chars)")

    def _fallback(self, record: KnowledgeRecord) -> StrategyResult:
        if record.content and record.content.strip():
            return StrategyResult.ok(record.content, "using short stored content")
        return StrategyResult.ok(record.title or record.reference or "", "using record title")
