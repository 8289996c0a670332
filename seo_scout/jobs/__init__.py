"""seo_scout.jobs: модели задач, хранилище с очередью и воркер (``seo_scout.jobs.worker``)."""

from seo_scout.jobs.models import JOB_ADAPTER, JobStatus, JobType, PageAuditJob, SiteAuditJob
from seo_scout.jobs.store import JobStore, MemoryStore, RedisStore, Store, build_store

__all__ = [
    "JOB_ADAPTER",
    "JobStatus",
    "JobType",
    "PageAuditJob",
    "SiteAuditJob",
    "JobStore",
    "MemoryStore",
    "RedisStore",
    "Store",
    "build_store",
]
