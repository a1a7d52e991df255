"""
Record Store

Per-record CRUD plus the two ranking primitives hybrid retrieval depends
on: nearest-neighbor ranking over embeddings and full-text relevance
ranking. Every read and ranking is parameterized by owner id; records of
different owners are never compared.

Two implementations:
- InMemoryRecordStore: dict-backed, used in tests and ephemeral servers
- FileRecordStore: same, persisted to ~/.sift/data/*.json after each write
"""

import json
import logging
import math
import threading
from abc import ABC, abstractmethod
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .embedding_service import batch_cosine_similarity
from .errors import ConfigurationError, OwnershipError
from .schemas import ImageRecord, ImageStatus, KnowledgeRecord, RecordStatus
from .text import tokenize

logger = logging.getLogger("sift.common.record_store")

SEARCHABLE_STATUSES = (RecordStatus.EXTRACTED, RecordStatus.ARCHIVED)

# Field weights for lexical relevance, in the spirit of setweight(A..D)
_LEXICAL_WEIGHTS = {
    "title": 4.0,
    "summary": 2.0,
    "findings": 2.0,
    "tags": 2.0,
    "relevance_note": 1.0,
    "quotables": 1.0,
    "user_notes": 1.0,
    "content": 0.5,
}


def _lexical_fields(record: KnowledgeRecord) -> Dict[str, str]:
    fields = {
        "title": record.display_title,
        "user_notes": record.user_notes,
        "content": record.content,
    }
    s = record.structured
    if s:
        fields.update({
            "summary": s.summary,
            "findings": " ".join(s.findings),
            "tags": " ".join(s.tags.all_tags() + [s.content_type.value]),
            "relevance_note": s.relevance_note,
            "quotables": " ".join(s.quotables),
        })
    return fields


def lexical_score(record: KnowledgeRecord, terms: Sequence[str]) -> float:
    """Weighted, length-normalized term frequency. 0.0 means no term matched."""
    if not terms:
        return 0.0
    wanted = set(terms)
    score = 0.0
    for name, text in _lexical_fields(record).items():
        if not text:
            continue
        tokens = tokenize(text)
        if not tokens:
            continue
        counts = Counter(t for t in tokens if t in wanted)
        if not counts:
            continue
        tf = sum(1.0 + math.log(c) for c in counts.values())
        score += _LEXICAL_WEIGHTS[name] * tf / math.log(2 + len(tokens))
    return score


class RecordStore(ABC):
    """Owner-scoped storage for knowledge and image records"""

    # ------------------------------------------------------------------
    # Knowledge records
    # ------------------------------------------------------------------

    @abstractmethod
    def add(self, record: KnowledgeRecord) -> None:
        ...

    @abstractmethod
    def update(self, record: KnowledgeRecord) -> None:
        """Replace the stored record in a single write."""

    @abstractmethod
    def get(self, owner_id: str, record_id: str) -> KnowledgeRecord:
        """
        Raises:
            OwnershipError: if the record does not exist for this owner
        """

    @abstractmethod
    def list_records(
        self,
        owner_id: Optional[str] = None,
        statuses: Optional[Iterable[RecordStatus]] = None,
        limit: Optional[int] = None,
    ) -> List[KnowledgeRecord]:
        """Records oldest first. ``owner_id=None`` lists across owners (batch workers only)."""

    @abstractmethod
    def rank_semantic(
        self,
        owner_id: str,
        embedding: List[float],
        threshold: float,
        count: int,
        statuses: Sequence[RecordStatus] = SEARCHABLE_STATUSES,
        content_types: Optional[Sequence[str]] = None,
    ) -> List[Tuple[KnowledgeRecord, float]]:
        """Records with cosine similarity >= threshold, best first."""

    @abstractmethod
    def rank_lexical(
        self,
        owner_id: str,
        query_text: str,
        count: int,
        statuses: Sequence[RecordStatus] = SEARCHABLE_STATUSES,
        content_types: Optional[Sequence[str]] = None,
    ) -> List[Tuple[KnowledgeRecord, float]]:
        """Records matching at least one query term, most relevant first."""

    # ------------------------------------------------------------------
    # Image records
    # ------------------------------------------------------------------

    @abstractmethod
    def add_image(self, image: ImageRecord) -> None:
        ...

    @abstractmethod
    def update_image(self, image: ImageRecord) -> None:
        ...

    @abstractmethod
    def get_image(self, owner_id: str, image_id: str) -> ImageRecord:
        ...

    @abstractmethod
    def list_images(self, owner_id: str, status: Optional[ImageStatus] = None) -> List[ImageRecord]:
        """Images oldest first."""

    @abstractmethod
    def rank_images(
        self,
        owner_id: str,
        embedding: List[float],
        threshold: float,
        count: int,
        chart_type: Optional[str] = None,
    ) -> List[Tuple[ImageRecord, float]]:
        ...


class InMemoryRecordStore(RecordStore):
    """Dict-backed store. Ranking is exact (brute-force cosine via numpy)."""

    def __init__(self):
        self._records: Dict[str, KnowledgeRecord] = {}
        self._images: Dict[str, ImageRecord] = {}

    def add(self, record: KnowledgeRecord) -> None:
        if record.id in self._records:
            raise ValueError(f"Record already exists: {record.id}")
        self._records[record.id] = record.model_copy(deep=True)
        self._persist()

    def update(self, record: KnowledgeRecord) -> None:
        existing = self._records.get(record.id)
        if existing is None or existing.owner_id != record.owner_id:
            raise OwnershipError("record", record.id)
        self._records[record.id] = record.model_copy(deep=True)
        self._persist()

    def get(self, owner_id: str, record_id: str) -> KnowledgeRecord:
        record = self._records.get(record_id)
        if record is None or record.owner_id != owner_id:
            raise OwnershipError("record", record_id)
        return record.model_copy(deep=True)

    def list_records(self, owner_id=None, statuses=None, limit=None) -> List[KnowledgeRecord]:
        wanted = {RecordStatus(s) for s in statuses} if statuses else None
        records = [
            r for r in self._records.values()
            if (owner_id is None or r.owner_id == owner_id)
            and (wanted is None or r.status in wanted)
        ]
        records.sort(key=lambda r: (r.created_at, r.id))
        if limit is not None:
            records = records[:limit]
        return [r.model_copy(deep=True) for r in records]

    def _candidates(self, owner_id, statuses, content_types) -> List[KnowledgeRecord]:
        wanted = {RecordStatus(s) for s in statuses}
        types = set(content_types) if content_types else None
        result = []
        for r in self._records.values():
            if r.owner_id != owner_id or r.status not in wanted:
                continue
            if types is not None:
                if r.structured is None or r.structured.content_type.value not in types:
                    continue
            result.append(r)
        return result

    def rank_semantic(self, owner_id, embedding, threshold, count,
                      statuses=SEARCHABLE_STATUSES, content_types=None):
        candidates = [r for r in self._candidates(owner_id, statuses, content_types) if r.embedding]
        if not candidates or count <= 0:
            return []
        similarities = batch_cosine_similarity(embedding, [r.embedding for r in candidates])
        ranked = [
            (r, sim) for r, sim in zip(candidates, similarities)
            if sim >= threshold
        ]
        ranked.sort(key=lambda pair: (-pair[1], -pair[0].created_at.timestamp(), pair[0].id))
        return [(r.model_copy(deep=True), sim) for r, sim in ranked[:count]]

    def rank_lexical(self, owner_id, query_text, count,
                     statuses=SEARCHABLE_STATUSES, content_types=None):
        terms = tokenize(query_text)
        if not terms or count <= 0:
            return []
        ranked = []
        for r in self._candidates(owner_id, statuses, content_types):
            score = lexical_score(r, terms)
            if score > 0:
                ranked.append((r, score))
        ranked.sort(key=lambda pair: (-pair[1], -pair[0].created_at.timestamp(), pair[0].id))
        return [(r.model_copy(deep=True), score) for r, score in ranked[:count]]

    def add_image(self, image: ImageRecord) -> None:
        if image.id in self._images:
            raise ValueError(f"Image already exists: {image.id}")
        self._images[image.id] = image.model_copy(deep=True)
        self._persist()

    def update_image(self, image: ImageRecord) -> None:
        existing = self._images.get(image.id)
        if existing is None or existing.owner_id != image.owner_id:
            raise OwnershipError("image", image.id)
        self._images[image.id] = image.model_copy(deep=True)
        self._persist()

    def get_image(self, owner_id: str, image_id: str) -> ImageRecord:
        image = self._images.get(image_id)
        if image is None or image.owner_id != owner_id:
            raise OwnershipError("image", image_id)
        return image.model_copy(deep=True)

    def list_images(self, owner_id, status=None) -> List[ImageRecord]:
        images = [
            i for i in self._images.values()
            if i.owner_id == owner_id and (status is None or i.status == ImageStatus(status))
        ]
        images.sort(key=lambda i: (i.created_at, i.id))
        return [i.model_copy(deep=True) for i in images]

    def rank_images(self, owner_id, embedding, threshold, count, chart_type=None):
        candidates = [
            i for i in self._images.values()
            if i.owner_id == owner_id and i.status == ImageStatus.PROCESSED and i.embedding
            and (chart_type is None or (i.analysis and i.analysis.chart_type.value == chart_type))
        ]
        if not candidates or count <= 0:
            return []
        similarities = batch_cosine_similarity(embedding, [i.embedding for i in candidates])
        ranked = [(i, sim) for i, sim in zip(candidates, similarities) if sim >= threshold]
        ranked.sort(key=lambda pair: (-pair[1], pair[0].id))
        return [(i.model_copy(deep=True), sim) for i, sim in ranked[:count]]

    def _persist(self) -> None:
        """Hook for persistent subclasses"""


class FileRecordStore(InMemoryRecordStore):
    """
    JSON-file persistence on top of the in-memory store.

    The whole collection is rewritten on every change; a write lock keeps
    concurrent request threads from interleaving file writes. Rows that no
    longer validate are kept as raw JSON and written back untouched, so a
    schema mismatch never drops stored records.

    Raises:
        ConfigurationError: if a data file exists but cannot be parsed
    """

    def __init__(self, records_path: Path, images_path: Path):
        super().__init__()
        self._records_path = Path(records_path)
        self._images_path = Path(images_path)
        self._lock = threading.Lock()
        self._rejected_records: List[dict] = []
        self._rejected_images: List[dict] = []
        self._load()

    def _load(self) -> None:
        """Load records and images from disk"""
        records, self._rejected_records = read_collection(self._records_path, KnowledgeRecord)
        images, self._rejected_images = read_collection(self._images_path, ImageRecord)
        self._records = {r.id: r for r in records}
        self._images = {i.id: i for i in images}
        logger.info(
            "Loaded %d records and %d images (%d unreadable rows kept)",
            len(self._records), len(self._images),
            len(self._rejected_records) + len(self._rejected_images),
        )

    def _persist(self) -> None:
        with self._lock:
            write_collection(self._records_path, self._records.values(), self._rejected_records)
            write_collection(self._images_path, self._images.values(), self._rejected_images)


def read_collection(path: Path, model) -> Tuple[list, List[dict]]:
    """
    Read a JSON array of ``model`` rows.

    Returns:
        (valid models, raw rows that failed validation)

    Raises:
        ConfigurationError: if the file is unreadable or not a JSON array
    """
    if not path.exists():
        return [], []
    try:
        with open(path) as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"cannot read {path}: {e}") from e
    if not isinstance(data, list):
        raise ConfigurationError(f"cannot read {path}: expected a JSON array")

    valid, rejected = [], []
    for index, row in enumerate(data):
        try:
            valid.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning("Keeping unreadable row %d of %s as-is: %s", index, path, e.errors()[:1])
            rejected.append(row)
    return valid, rejected


def write_collection(path: Path, items: Iterable, rejected: Sequence[dict] = ()) -> None:
    """Atomically rewrite ``path`` with ``items`` followed by raw ``rejected`` rows."""
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = [item.model_dump(mode="json") for item in list(items)]
    rows.extend(rejected)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w") as f:
        json.dump(rows, f, indent=2)
    tmp.replace(path)
