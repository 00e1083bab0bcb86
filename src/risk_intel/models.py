"""Data models for the adverse media scan pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model serialized with camelCase keys for the HTTP and JSON surfaces."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SourceType(str, Enum):
    NEWS = "News"
    LEGAL = "Legal"
    REGULATORY = "Regulatory"
    BLOG = "Blog"


class Severity(str, Enum):
    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class AuditAction(str, Enum):
    CONFIRM = "Confirm"
    DISMISS = "Dismiss"


# Scores above this on an adverse verdict always read as Critical.
CRITICAL_SCORE_FLOOR = 90


class Document(ApiModel):
    """A fetched article. Identity is the canonical url."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    url: str
    title: str
    body: str = ""
    source_name: str
    source_domain: str
    source_type: SourceType = SourceType.NEWS
    published_at: Optional[datetime] = Field(
        None, description="Publication timestamp; optional if unknown."
    )
    origin_language: Optional[str] = None

    @property
    def id(self) -> str:
        return self.url


class Verdict(ApiModel):
    """Structured judgment for one document."""

    is_relevant: bool
    is_adverse: bool
    risk_types: List[str] = Field(default_factory=list)
    severity: Severity = Severity.NONE
    risk_score: int = Field(0, ge=0, le=100)
    summary: str = ""
    cluster_tag: str = ""
    requires_review: bool = False

    @field_validator("risk_types")
    @classmethod
    def _unique_types(cls, value: List[str]) -> List[str]:
        seen: list[str] = []
        for item in value:
            label = str(item).strip()
            if label and label not in seen:
                seen.append(label)
        return seen

    @model_validator(mode="after")
    def _critical_by_score(self) -> "Verdict":
        if self.is_adverse and self.risk_score > CRITICAL_SCORE_FLOOR:
            self.severity = Severity.CRITICAL
        return self


class ClassifiedDocument(ApiModel):
    document: Document
    verdict: Verdict

    @property
    def url(self) -> str:
        return self.document.url

    @property
    def is_adverse(self) -> bool:
        return self.verdict.is_adverse


class SecondarySource(ApiModel):
    source_name: str
    domain: str
    url: str
    title: str

    @classmethod
    def from_document(cls, document: Document) -> "SecondarySource":
        return cls(
            source_name=document.source_name,
            domain=document.source_domain,
            url=document.url,
            title=document.title,
        )


class Cluster(ApiModel):
    """Coverage of one underlying risk event: a representative plus its echoes."""

    representative: ClassifiedDocument
    secondary_sources: List[SecondarySource] = Field(default_factory=list)

    @property
    def is_adverse(self) -> bool:
        return self.representative.is_adverse


class RelatedEntity(ApiModel):
    name: str
    relationship: str = ""


class SocialSignal(ApiModel):
    name: str
    handle: str
    content: str
    date: str = ""
    sentiment: str = "neutral"

    @field_validator("sentiment")
    @classmethod
    def _normalize_sentiment(cls, value: str) -> str:
        lowered = (value or "").strip().lower()
        return lowered if lowered in {"positive", "neutral", "negative"} else "neutral"


class ScanResult(ApiModel):
    """Unit returned per scan; recomputed on every request."""

    query: str
    clusters: List[Cluster] = Field(default_factory=list)
    related_entities: List[RelatedEntity] = Field(default_factory=list)
    brief: str = ""
    social_signals: List[SocialSignal] = Field(default_factory=list)
    advisory: Optional[str] = None

    @property
    def adverse_clusters(self) -> List[Cluster]:
        return [cluster for cluster in self.clusters if cluster.is_adverse]


class ActionRequest(ApiModel):
    """Analyst decision on a single finding."""

    article_url: str = Field(..., min_length=1)
    action: AuditAction
    reason: str = ""
    user: str = Field(..., min_length=1)
    query: str = ""


class AuditRecord(ActionRequest):
    id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime
