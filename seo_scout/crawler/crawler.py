from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, List, Optional, Tuple

from seo_scout.analyzer.base import PageAnalyzer, error_result
from seo_scout.config import AuditOptions, ServiceConfig
from seo_scout.crawler.fetcher import Fetcher
from seo_scout.crawler.frontier import CrawlFrontier
from seo_scout.crawler.link_extractor import extract_links
from seo_scout.crawler.models import CrawlOutcome, FetchResult, PageRecord, QueuedUrl
from seo_scout.crawler.robots import RobotsPolicy
from seo_scout.crawler.throttle import DomainThrottle
from seo_scout.errors import FetchError
from seo_scout.logger import get_logger
from seo_scout.utils import extract_domain, normalize_url, remove_duplicates

__all__ = ("SiteCrawler", "ProgressCallback")

ProgressCallback = Callable[[int, int], Awaitable[None]]

_TIME_LIMIT_ERROR = "crawl time limit reached"


class SiteCrawler:
    """Batch-wise BFS crawler that analyzes every page it visits.

    One instance serves one crawl. :meth:`stop` is cooperative and takes
    effect between batches; fetches already in flight finish.
    """

    def __init__(
        self,
        config: ServiceConfig,
        options: AuditOptions,
        fetcher: Fetcher,
        analyzer: PageAnalyzer,
        *,
        robots: Optional[RobotsPolicy] = None,
        throttle: Optional[DomainThrottle] = None,
        on_progress: Optional[ProgressCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.options = options
        self.fetcher = fetcher
        self.analyzer = analyzer
        self.robots = robots
        self.throttle = throttle or DomainThrottle(config.throttle_interval)
        self.on_progress = on_progress
        self._clock = clock
        self.frontier = CrawlFrontier(options.max_pages, options.max_depth)
        self.logger = get_logger("crawler")
        self._stopped = False

    def stop(self) -> None:
        self._stopped = True
        self.logger.info("Crawl stop requested")

    @property
    def stopped(self) -> bool:
        return self._stopped

    def _norm(self, url: str) -> str:
        return normalize_url(url, ignore_query=self.options.ignore_query)

    async def crawl(self, start_url: str) -> CrawlOutcome:
        start = self._norm(start_url)
        base_host = extract_domain(start)
        discovery = not (self.options.skip_crawl and self.options.custom_pages)
        if discovery:
            self.frontier.seed(start)
        else:
            for url in remove_duplicates([self._norm(u) for u in self.options.custom_pages]):
                self.frontier.seed(url)

        if self.robots is not None and self.options.respect_robots:
            await self.robots.prepare(start)
            self.throttle.set_delay(base_host, self.robots.crawl_delay(start, self.config.agent_name))

        self.logger.info(
            "Старт обхода: %s (max_pages=%d, max_depth=%d, concurrency=%d)",
            start, self.options.max_pages, self.options.max_depth, self.options.concurrency,
        )
        began = self._clock()
        deadline = began + self.config.crawl_time_limit if self.config.crawl_time_limit else None
        records: List[PageRecord] = []
        timed_out = False

        while self.frontier.has_work() and not self._stopped:
            if deadline is not None and self._clock() >= deadline:
                timed_out = True
                break
            batch = self.frontier.next_batch(self.options.concurrency)
            if not batch:
                break
            await self.throttle.wait(extract_domain(item.url) for item in batch)
            outcomes = await self._run_batch(batch, deadline)
            for item, (record, fetched) in zip(batch, outcomes):
                records.append(record)
                if record.status == "crawled":
                    self.frontier.mark_crawled(item.url)
                    if discovery and fetched is not None:
                        await self._expand(item, fetched, base_host)
                else:
                    self.frontier.mark_failed(item.url)
                    if record.error == _TIME_LIMIT_ERROR:
                        timed_out = True
            self.logger.debug(
                "Batch of %d done; crawled=%d failed=%d pending=%d",
                len(batch), len(self.frontier.crawled), len(self.frontier.failed), len(self.frontier.pending),
            )
            if self.on_progress is not None:
                await self.on_progress(len(self.frontier.crawled), self.options.max_pages)

        duration = self._clock() - began
        stopped_early = timed_out or (self._stopped and bool(self.frontier.pending))
        if timed_out:
            self.logger.warning("Crawl of %s hit the %.1f s time limit", start, self.config.crawl_time_limit)
        self.logger.info(
            "Завершено: %d страниц, %d ошибок за %.2f с",
            len(self.frontier.crawled), len(self.frontier.failed), duration,
        )
        if self.frontier.disallowed:
            self.logger.info("Заблокировано robots.txt: %d", len(self.frontier.disallowed))
        return CrawlOutcome(
            start_url=start,
            pages=records,
            stats=self.frontier.stats(duration, stopped_early),
            structure=self.frontier.structure(),
            failed_urls=[r.url for r in records if r.status == "failed"],
        )

    async def _run_batch(
        self, batch: List[QueuedUrl], deadline: Optional[float]
    ) -> List[Tuple[PageRecord, Optional[FetchResult]]]:
        if deadline is None:
            return list(await asyncio.gather(*(self._visit(item) for item in batch)))
        tasks = [asyncio.create_task(self._visit(item)) for item in batch]
        _, pending = await asyncio.wait(tasks, timeout=max(0.0, deadline - self._clock()))
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        results: List[Tuple[PageRecord, Optional[FetchResult]]] = []
        for item, task in zip(batch, tasks):
            if task in pending:
                results.append((PageRecord(url=item.url, status="failed", depth=item.depth, error=_TIME_LIMIT_ERROR), None))
            else:
                results.append(task.result())
        return results

    async def _visit(self, item: QueuedUrl) -> Tuple[PageRecord, Optional[FetchResult]]:
        try:
            fetched = await self.fetcher.fetch(item.url)
        except FetchError as exc:
            return PageRecord(url=item.url, status="failed", depth=item.depth, error=exc.reason, http_status=exc.status), None
        except Exception as exc:
            self.logger.exception("Unexpected error fetching %s", item.url)
            return PageRecord(url=item.url, status="failed", depth=item.depth, error=str(exc) or type(exc).__name__), None

        try:
            result = await asyncio.wait_for(
                self.analyzer.analyze(item.url, fetched.content), timeout=self.config.analysis_timeout
            )
        except Exception as exc:
            self.logger.warning("Analysis of %s failed: %s", item.url, exc)
            result = error_result(item.url, f"Analysis failed: {str(exc) or type(exc).__name__}")
        record = PageRecord(
            url=item.url,
            status="crawled",
            depth=item.depth,
            result=result,
            http_status=fetched.status,
            size=fetched.size,
            elapsed=round(fetched.elapsed, 3),
        )
        return record, fetched

    async def _expand(self, item: QueuedUrl, fetched: FetchResult, base_host: str) -> None:
        if item.depth + 1 > self.options.max_depth:
            return
        links = extract_links(
            fetched.final_url or item.url,
            fetched.content,
            base_host,
            include_subdomains=self.options.include_subdomains,
            include_media=self.options.include_media,
            ignore_query=self.options.ignore_query,
        )
        for link in links:
            if link in self.frontier:
                self.frontier.add_edge(item.url, link)
                continue
            allowed = True
            if self.robots is not None and self.options.respect_robots:
                await self.robots.prepare(link)
                allowed = self.robots.is_allowed(link, self.config.agent_name)
            if not self.frontier.discover(link, item.depth + 1, source=item.url):
                continue
            if allowed:
                self.frontier.enqueue(link)
            else:
                self.frontier.mark_disallowed(link)
                self.logger.debug("Disallowed by robots.txt: %s", link)
