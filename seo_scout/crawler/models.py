# seo_scout/crawler/models.py
"""
Data models for the SeoScout crawler.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from seo_scout.analyzer.base import AnalysisResult


@dataclass(slots=True)
class FetchResult:
    """Raw content of a fetched resource plus minimal transport metadata."""

    url: str
    final_url: str
    status: int
    content: str
    content_type: str
    size: int
    elapsed: float
    user_agent: str


@dataclass(slots=True)
class QueuedUrl:
    url: str
    depth: int


class UrlState(str, Enum):
    """Lifecycle of a URL inside one crawl frontier."""

    DISCOVERED = "discovered"
    PENDING = "pending"
    CRAWLING = "crawling"
    CRAWLED = "crawled"
    FAILED = "failed"


class PageRecord(BaseModel):
    """Crawl output unit; one per dispatched URL."""

    url: str
    status: Literal["crawled", "failed"]
    depth: int
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    http_status: Optional[int] = None
    size: Optional[int] = None
    elapsed: Optional[float] = None


class CrawlStats(BaseModel):
    pages_discovered: int = 0
    pages_crawled: int = 0
    pages_failed: int = 0
    pages_skipped: int = 0
    pages_disallowed: int = 0
    max_depth_reached: int = 0
    urls_by_depth: Dict[int, List[str]] = Field(default_factory=dict)
    duration: float = 0.0
    stopped_early: bool = False


class SiteStructure(BaseModel):
    nodes: List[str] = Field(default_factory=list)
    edges: List[List[str]] = Field(default_factory=list)


class CrawlOutcome(BaseModel):
    """Everything a finished crawl hands back to the site audit handler."""

    start_url: str
    pages: List[PageRecord] = Field(default_factory=list)
    stats: CrawlStats = Field(default_factory=CrawlStats)
    structure: SiteStructure = Field(default_factory=SiteStructure)
    failed_urls: List[str] = Field(default_factory=list)
