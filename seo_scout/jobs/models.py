# File: seo_scout/jobs/models.py
"""
Job records as a tagged union.

Each job kind carries its own params and result schema; the ``type`` field
is the discriminator used when a record is read back from the store and when
the worker dispatches it.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from seo_scout.analyzer.base import AnalysisResult
from seo_scout.config import AuditOptions
from seo_scout.crawler.models import CrawlStats, PageRecord, SiteStructure

__all__ = [
    "JobType",
    "JobStatus",
    "PageAuditParams",
    "SiteAuditParams",
    "AuditParams",
    "PageAuditResult",
    "CommonIssue",
    "SiteAuditResult",
    "PageAuditJob",
    "SiteAuditJob",
    "AnyJob",
    "JOB_ADAPTER",
    "utcnow",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobType(str, Enum):
    PAGE_AUDIT = "page_audit"
    SITE_AUDIT = "site_audit"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class _Params(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    target_url: str
    options: AuditOptions = Field(default_factory=AuditOptions)


class PageAuditParams(_Params):
    type: Literal["page_audit"] = "page_audit"


class SiteAuditParams(_Params):
    type: Literal["site_audit"] = "site_audit"


AuditParams = Annotated[Union[PageAuditParams, SiteAuditParams], Field(discriminator="type")]


class PageAuditResult(AnalysisResult):
    """Single page audit artifact."""

    http_status: Optional[int] = None
    size: Optional[int] = None
    elapsed: Optional[float] = None
    analyzed_at: datetime = Field(default_factory=utcnow)


class CommonIssue(BaseModel):
    type: str
    frequency: int
    severity: str


class SiteAuditResult(BaseModel):
    """Whole-site audit artifact aggregated from the crawl's page records."""

    url: str
    pages: List[PageRecord] = Field(default_factory=list)
    crawl_stats: CrawlStats = Field(default_factory=CrawlStats)
    site_structure: SiteStructure = Field(default_factory=SiteStructure)
    failed_urls: List[str] = Field(default_factory=list)
    overall_score: int = 0
    overall_status: str = "poor"
    common_issues: List[CommonIssue] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=utcnow)


class _JobBase(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    id: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(0, ge=0, le=100)
    message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        """Status view of the job without the (possibly large) results."""
        data = self.model_dump(mode="json", exclude={"results"})
        data["has_results"] = getattr(self, "results", None) is not None
        return data


class PageAuditJob(_JobBase):
    type: Literal["page_audit"] = "page_audit"
    params: PageAuditParams
    results: Optional[PageAuditResult] = None


class SiteAuditJob(_JobBase):
    type: Literal["site_audit"] = "site_audit"
    params: SiteAuditParams
    results: Optional[SiteAuditResult] = None


AnyJob = Annotated[Union[PageAuditJob, SiteAuditJob], Field(discriminator="type")]

JOB_ADAPTER: TypeAdapter[Union[PageAuditJob, SiteAuditJob]] = TypeAdapter(AnyJob)
