# File: seo_scout/errors.py
"""Exception hierarchy for the audit pipeline.

Errors scoped to one URL (:class:`FetchError`, :class:`AnalyzerError`) are
recorded on the page and never abort a crawl. :class:`CacheError` never leaves
the cache layer. Everything else is surfaced to the caller of
:class:`seo_scout.engine.AuditService`.
"""
from __future__ import annotations

from typing import Optional

__all__ = [
    "SeoScoutError",
    "AuditValidationError",
    "FetchError",
    "DisallowedContentError",
    "AnalyzerError",
    "CacheError",
    "StoreUnavailableError",
    "ServiceUnavailableError",
    "ServiceBusyError",
    "JobNotFoundError",
    "JobNotCompletedError",
    "FrontierError",
]


class SeoScoutError(Exception):
    """Base class for all project errors."""


class AuditValidationError(SeoScoutError, ValueError):
    """Missing or malformed audit target; raised before a job exists."""


class FetchError(SeoScoutError):
    """Retrieval of a single URL failed (timeout, DNS, non-2xx, content type)."""

    def __init__(self, url: str, reason: str, status: Optional[int] = None) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.status = status


class DisallowedContentError(FetchError):
    """Response content type is not eligible for analysis."""


class AnalyzerError(SeoScoutError):
    """The page analyzer could not produce a result for a URL."""


class CacheError(SeoScoutError):
    """Cache read/write failure. Handled inside the cache layer."""


class StoreUnavailableError(SeoScoutError):
    """The shared key/value store cannot be reached."""


class ServiceUnavailableError(SeoScoutError):
    """Queue/cache unavailable mode: new audits cannot be accepted."""


class ServiceBusyError(SeoScoutError):
    """Admission backlog is full."""


class JobNotFoundError(SeoScoutError, LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobNotCompletedError(SeoScoutError):
    def __init__(self, job_id: str, status: str) -> None:
        super().__init__(f"Job {job_id} is not completed (status: {status})")
        self.job_id = job_id
        self.status = status


class FrontierError(SeoScoutError, RuntimeError):
    """Illegal URL state transition inside a crawl frontier."""
