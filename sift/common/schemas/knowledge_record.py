"""
Knowledge Record Schema

The unit of captured knowledge. A record is created ``pending`` on capture,
filled in by structured extraction, and curated into ``archived`` or
``discarded``. Records are never hard-deleted; ``discarded`` is terminal.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..findings import FINDINGS_COUNT


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================

class RecordStatus(str, Enum):
    """Record lifecycle status"""
    PENDING = "pending"
    EXTRACTED = "extracted"
    ARCHIVED = "archived"
    DISCARDED = "discarded"


class ContentType(str, Enum):
    """Kind of source material"""
    RESEARCH_REPORT = "Research Report"
    INDUSTRY_ANALYSIS = "Industry Analysis"
    THOUGHT_PIECE = "Thought Piece"
    NEWS = "News"
    CASE_STUDY = "Case Study"
    HOW_TO = "How-To / Guide"
    TOOL_PRODUCT = "Tool/Product"
    FIELD_GUIDE = "Field Guide"
    VIDEO = "Video"


class Credibility(str, Enum):
    """Source credibility tier"""
    TIER_1 = "Tier 1"
    TIER_2 = "Tier 2"
    TIER_3 = "Tier 3"


class Actionability(str, Enum):
    """How directly the content can be applied"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Freshness(str, Enum):
    """How current the content is"""
    CURRENT = "current"
    RECENT = "recent"
    DATED = "dated"


DEFAULT_CONTENT_TYPE = ContentType.THOUGHT_PIECE
DEFAULT_CREDIBILITY = Credibility.TIER_2
DEFAULT_ACTIONABILITY = Actionability.MEDIUM
DEFAULT_FRESHNESS = Freshness.RECENT

# Closed tag vocabularies. Industries and technologies are open.
SERVICE_LINES = [
    "Data Strategy",
    "AI Implementation",
    "Analytics",
    "Digital Transformation",
    "Data Governance",
]

BUSINESS_FUNCTIONS = [
    "Strategy",
    "Operations",
    "Marketing",
    "Sales",
    "Finance",
    "HR",
    "IT",
    "Product",
    "Customer Service",
    "Supply Chain",
]

STATUS_TRANSITIONS = {
    RecordStatus.PENDING: {RecordStatus.EXTRACTED, RecordStatus.DISCARDED},
    RecordStatus.EXTRACTED: {RecordStatus.EXTRACTED, RecordStatus.ARCHIVED, RecordStatus.DISCARDED},
    RecordStatus.ARCHIVED: {RecordStatus.ARCHIVED, RecordStatus.DISCARDED},
    RecordStatus.DISCARDED: set(),
}


# ============================================================================
# Sub-models
# ============================================================================

def _dedupe(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if not isinstance(value, str):
            continue
        value = value.strip()
        if value and value.lower() not in seen:
            seen.add(value.lower())
            result.append(value)
    return result


class TagSet(BaseModel):
    """Four independent taxonomies; each is a set with no forced cardinality"""
    industries: List[str] = Field(default_factory=list)
    technologies: List[str] = Field(default_factory=list)
    service_lines: List[str] = Field(default_factory=list)
    business_functions: List[str] = Field(default_factory=list)

    @field_validator("industries", "technologies", "service_lines", "business_functions", mode="before")
    @classmethod
    def _normalize(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return _dedupe(list(value))

    def all_tags(self) -> List[str]:
        return self.industries + self.technologies + self.service_lines + self.business_functions


class StructuredFields(BaseModel):
    """Fields produced by structured extraction"""
    title: str = ""
    summary: str = ""
    findings: List[str] = Field(default_factory=list, description="Exactly 5 '**label:** detail' items, or none")
    relevance_note: str = Field(default="", description="Why this matters to the team")
    quotables: List[str] = Field(default_factory=list)
    content_type: ContentType = DEFAULT_CONTENT_TYPE
    tags: TagSet = Field(default_factory=TagSet)
    credibility: Credibility = DEFAULT_CREDIBILITY
    actionability: Actionability = DEFAULT_ACTIONABILITY
    freshness: Freshness = DEFAULT_FRESHNESS
    author: Optional[str] = None
    author_organization: Optional[str] = None
    methodology: Optional[str] = None
    publication_date: Optional[str] = None
    degraded: bool = Field(default=False, description="Produced by the deterministic fallback")

    @field_validator("findings")
    @classmethod
    def _five_or_none(cls, value: List[str]) -> List[str]:
        if value and len(value) != FINDINGS_COUNT:
            raise ValueError(f"findings must contain exactly {FINDINGS_COUNT} items or none, got {len(value)}")
        return value


class ChannelFlag(BaseModel):
    """Queue and shared state for one distribution channel"""
    queued: bool = False
    shared: bool = False
    at: Optional[datetime] = None

    def mark(self, when: Optional[datetime] = None) -> None:
        self.shared = True
        self.at = when or utcnow()


class DistributionFlags(BaseModel):
    """Three independent distribution channels"""
    team: ChannelFlag = Field(default_factory=ChannelFlag)
    newsletter: ChannelFlag = Field(default_factory=ChannelFlag)
    linkedin: ChannelFlag = Field(default_factory=ChannelFlag)

    def channel(self, name: str) -> ChannelFlag:
        if name not in ("team", "newsletter", "linkedin"):
            raise ValueError(f"Unknown distribution channel: {name}")
        return getattr(self, name)


class CuratorAnnotations(BaseModel):
    """Curator-owned notes and highlights"""
    note: str = ""
    highlighted_findings: List[int] = Field(default_factory=list)
    highlighted_quotes: List[int] = Field(default_factory=list)

    @field_validator("highlighted_findings", "highlighted_quotes")
    @classmethod
    def _as_sorted_set(cls, value: List[int]) -> List[int]:
        return sorted({int(v) for v in value if int(v) >= 0})


# ============================================================================
# Main Schema
# ============================================================================

class KnowledgeRecord(BaseModel):
    """A captured reference and everything derived from it."""
    id: str = Field(..., description="Unique ID: kr_YYYYMMDD_hex")
    owner_id: str
    reference: str = Field(default="", description="URL or document pointer")
    document_url: Optional[str] = Field(default=None, description="Document-storage pointer")
    title: str = ""
    user_notes: str = ""
    content: str = ""
    status: RecordStatus = RecordStatus.PENDING
    structured: Optional[StructuredFields] = None
    embedding: Optional[List[float]] = None
    distribution: DistributionFlags = Field(default_factory=DistributionFlags)
    annotations: CuratorAnnotations = Field(default_factory=CuratorAnnotations)
    image_url: Optional[str] = None
    infographic_kind: Optional[str] = None
    infographic_generated_at: Optional[datetime] = None
    source_kind: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None
    curated_at: Optional[datetime] = None

    @property
    def display_title(self) -> str:
        if self.structured and self.structured.title:
            return self.structured.title
        return self.title or self.reference or self.id

    @property
    def link(self) -> Optional[str]:
        return self.reference or self.document_url

    @property
    def has_full_content(self) -> bool:
        return bool(self.content and self.content.strip())

    def can_transition(self, status: RecordStatus) -> bool:
        return status in STATUS_TRANSITIONS[self.status]

    def transition(self, status: RecordStatus) -> None:
        """Move to a new lifecycle status.

        Raises:
            ValueError: if the move is not allowed (e.g. back to pending,
                or out of discarded)
        """
        status = RecordStatus(status)
        if not self.can_transition(status):
            raise ValueError(f"Cannot move record {self.id} from {self.status.value} to {status.value}")
        self.status = status

    def apply_extraction(self, fields: StructuredFields, embedding: Optional[List[float]]) -> None:
        """Store extraction output and mark the record extracted."""
        if self.status == RecordStatus.DISCARDED:
            raise ValueError(f"Record {self.id} is discarded")
        self.structured = fields
        self.embedding = embedding
        if fields.title and not self.title:
            self.title = fields.title
        if self.status == RecordStatus.PENDING:
            self.transition(RecordStatus.EXTRACTED)
        self.processed_at = utcnow()


def generate_record_id(timestamp: Optional[datetime] = None, prefix: str = "kr") -> str:
    """Generate a unique record ID"""
    timestamp = timestamp or utcnow()
    return f"{prefix}_{timestamp.strftime('%Y%m%d')}_{uuid.uuid4().hex[:12]}"
