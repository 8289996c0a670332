# File: seo_scout/jobs/worker.py
"""
seo_scout.jobs.worker: Воркер очереди аудитов.

Забирает id задач из очереди, атомарно переводит задачу из ``queued`` в
``processing``, выполняет обработчик по её типу и записывает результат в
задачу и в кэш. Любая ошибка внутри обработчика (или нечитаемая запись
задачи) делает ``failed`` только эту задачу.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from seo_scout.aggregator import aggregate_site
from seo_scout.analyzer.base import PageAnalyzer, error_result
from seo_scout.analyzer.basic import BasicPageAnalyzer
from seo_scout.cache import AuditCache
from seo_scout.config import ServiceConfig
from seo_scout.crawler.crawler import SiteCrawler
from seo_scout.crawler.fetcher import Fetcher
from seo_scout.crawler.robots import RobotsPolicy
from seo_scout.errors import SeoScoutError, StoreUnavailableError
from seo_scout.jobs.models import (
    JobStatus,
    JobType,
    PageAuditJob,
    PageAuditResult,
    SiteAuditJob,
    SiteAuditResult,
    utcnow,
)
from seo_scout.jobs.store import JobStore
from seo_scout.logger import get_logger

__all__ = ["AuditWorker", "AnalyzerFactory", "run_page_audit"]

log = get_logger("worker")

AnalyzerFactory = Callable[[Fetcher], PageAnalyzer]

# диапазон прогресса, который занимает обход сайта
_CRAWL_PROGRESS_START = 10
_CRAWL_PROGRESS_END = 90


async def run_page_audit(
    config: ServiceConfig, fetcher: Fetcher, analyzer: PageAnalyzer, url: str
) -> PageAuditResult:
    """Fetch and analyze one page.

    A FetchError propagates. An analyzer failure yields a zero-score result
    with status ``error``.
    """
    fetched = await fetcher.fetch(url)
    try:
        result = await asyncio.wait_for(analyzer.analyze(url, fetched.content), timeout=config.analysis_timeout)
    except Exception as exc:
        log.warning("Analysis of %s failed: %s", url, exc)
        result = error_result(url, f"Analysis failed: {str(exc) or type(exc).__name__}")
    return PageAuditResult(
        **result.model_dump(),
        http_status=fetched.status,
        size=fetched.size,
        elapsed=round(fetched.elapsed, 3),
    )


class AuditWorker:
    """Polling consumer of the pending-job queue."""

    def __init__(
        self,
        jobs: JobStore,
        cache: AuditCache,
        config: ServiceConfig,
        *,
        analyzer_factory: AnalyzerFactory = BasicPageAnalyzer,
    ) -> None:
        self.jobs = jobs
        self.cache = cache
        self.config = config
        self.analyzer_factory = analyzer_factory
        self._stop_event: Optional[asyncio.Event] = None
        self._handlers: Dict[str, Callable[[Any, Fetcher, PageAnalyzer], Awaitable[Any]]] = {
            JobType.PAGE_AUDIT.value: self._handle_page,
            JobType.SITE_AUDIT.value: self._handle_site,
        }

    async def run(self, stop_event: asyncio.Event) -> int:
        """Process batches until *stop_event* is set. Returns the number of jobs handled."""
        self._stop_event = stop_event
        total = 0
        log.info("Worker started (batch_size=%d, poll_interval=%.1fs)", self.config.batch_size, self.config.poll_interval)
        while not stop_event.is_set():
            try:
                handled = await self.process_batch()
            except StoreUnavailableError as exc:
                log.error("Queue unavailable: %s", exc)
                handled = 0
            except Exception:
                log.exception("Batch failed, worker keeps polling")
                handled = 0
            total += handled
            if handled == 0:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.config.poll_interval)
                except asyncio.TimeoutError:
                    pass
        log.info("Worker stopped after %d job(s)", total)
        return total

    async def process_batch(self, limit: Optional[int] = None) -> int:
        """Dequeue and process up to *limit* jobs; ``worker_concurrency`` of them at a time.

        A lane that breaks does not cancel the others. A queue outage is
        re-raised only when nothing was handled in the batch.
        """
        remaining = limit if limit is not None else self.config.batch_size
        handled = 0

        async def lane() -> None:
            nonlocal remaining, handled
            while remaining > 0:
                remaining -= 1
                job_id = await self.jobs.dequeue_next()
                if job_id is None:
                    remaining = 0
                    return
                if await self.process_job(job_id) is not None:
                    handled += 1

        lanes = max(1, min(self.config.worker_concurrency, remaining))
        outcomes = await asyncio.gather(*(lane() for _ in range(lanes)), return_exceptions=True)
        outage: Optional[StoreUnavailableError] = None
        for outcome in outcomes:
            if isinstance(outcome, StoreUnavailableError):
                outage = outcome
            elif isinstance(outcome, Exception):
                log.error("Worker lane crashed", exc_info=outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
        if outage is not None and handled == 0:
            raise outage
        if handled:
            log.debug("Batch finished: %d job(s)", handled)
        return handled

    async def process_job(self, job_id: str) -> Optional[JobStatus]:
        """Claim and run one job with fault isolation.

        Returns its final status, or None when the job is missing or was
        already claimed by someone else.
        """
        try:
            job = await self.jobs.claim_job(job_id)
        except StoreUnavailableError:
            raise
        except Exception as exc:
            log.error("Job %s has an unreadable record: %s", job_id, exc)
            try:
                await self.jobs.mark_failed(job_id, f"Invalid job record: {type(exc).__name__}")
            except StoreUnavailableError as store_exc:
                log.error("Could not mark job %s failed: %s", job_id, store_exc)
            return JobStatus.FAILED
        if job is None:
            log.warning("Job %s is missing or already claimed, skipping", job_id)
            return None

        log.info("Processing job %s (%s) for %s", job_id, job.type, job.params.target_url)
        try:
            results = await self._dispatch(job)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            if isinstance(exc, SeoScoutError):
                log.error("Job %s failed: %s", job_id, message)
            else:
                log.exception("Job %s failed with an unexpected error", job_id)
            await self._safe_update(
                job_id, status=JobStatus.FAILED, error=message, message="Failed", completed_at=utcnow()
            )
            return JobStatus.FAILED

        completed_at = utcnow()
        await self._safe_update(
            job_id,
            status=JobStatus.COMPLETED,
            results=results,
            progress=100,
            message="Completed",
            completed_at=completed_at,
        )
        key = self.cache.key_for(job.type, job.params.target_url, job.params.options)
        await self.cache.write(key, results, self.cache.ttl_for(job.type), cached_at=completed_at)
        log.info("Job %s completed", job_id)
        return JobStatus.COMPLETED

    async def _dispatch(self, job: Union[PageAuditJob, SiteAuditJob]) -> Any:
        handler = self._handlers[job.type]
        async with Fetcher(self.config) as fetcher:
            analyzer = self.analyzer_factory(fetcher)
            return await handler(job, fetcher, analyzer)

    async def _handle_page(self, job: PageAuditJob, fetcher: Fetcher, analyzer: PageAnalyzer) -> PageAuditResult:
        return await run_page_audit(self.config, fetcher, analyzer, job.params.target_url)

    async def _handle_site(self, job: SiteAuditJob, fetcher: Fetcher, analyzer: PageAnalyzer) -> SiteAuditResult:
        options = job.params.options
        robots = None
        if options.respect_robots:
            assert fetcher.session is not None
            robots = RobotsPolicy(fetcher.session, self.config.user_agents[0])

        crawler: Optional[SiteCrawler] = None

        async def on_progress(crawled: int, total: int) -> None:
            span = _CRAWL_PROGRESS_END - _CRAWL_PROGRESS_START
            progress = _CRAWL_PROGRESS_START + int(span * crawled / max(total, 1))
            await self._safe_update(job.id, progress=progress, message=f"Crawled {crawled}/{total} pages")
            if crawler is not None and self._stop_event is not None and self._stop_event.is_set():
                crawler.stop()

        crawler = SiteCrawler(self.config, options, fetcher, analyzer, robots=robots, on_progress=on_progress)
        await self._safe_update(job.id, progress=_CRAWL_PROGRESS_START, message="Crawling")
        outcome = await crawler.crawl(job.params.target_url)
        if outcome.stats.pages_crawled == 0:
            raise SeoScoutError("no pages were successfully crawled")
        return aggregate_site(job.params.target_url, outcome)

    async def _safe_update(self, job_id: str, **changes: Any) -> bool:
        """Best-effort job update; a store failure or a broken record is logged, not raised."""
        try:
            ok = await self.jobs.update_job(job_id, **changes)
        except StoreUnavailableError as exc:
            log.error("Could not update job %s: %s", job_id, exc)
            return False
        except Exception:
            log.exception("Could not update job %s", job_id)
            return False
        if not ok:
            log.warning("Job %s not found while updating", job_id)
        return ok
