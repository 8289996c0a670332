# seo_scout/crawler/frontier.py
"""
Breadth-first crawl frontier: the working set of one site-audit job.

URLs move ``discovered → pending → crawling → crawled | failed`` and never
go back. A URL refused by robots.txt stays ``discovered``. Callers pass
normalized URLs; membership tests are plain set lookups.
"""
from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List, Optional, Set, Tuple

from seo_scout.crawler.models import CrawlStats, QueuedUrl, SiteStructure, UrlState
from seo_scout.errors import FrontierError

__all__ = ["CrawlFrontier"]

_TRANSITIONS = {
    UrlState.DISCOVERED: {UrlState.PENDING},
    UrlState.PENDING: {UrlState.CRAWLING},
    UrlState.CRAWLING: {UrlState.CRAWLED, UrlState.FAILED},
    UrlState.CRAWLED: set(),
    UrlState.FAILED: set(),
}


class CrawlFrontier:
    """Discovery, dedup and budget bookkeeping for one crawl."""

    def __init__(self, max_pages: int, max_depth: int) -> None:
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.discovered: Set[str] = set()
        self.pending: Deque[QueuedUrl] = deque()
        self.crawled: Set[str] = set()
        self.failed: Set[str] = set()
        self.disallowed: Set[str] = set()
        self.depths: Dict[str, int] = {}
        self.states: Dict[str, UrlState] = {}
        self._order: List[str] = []
        self._edges: Dict[Tuple[str, str], None] = {}

    # ------------------------------------------------------------------ #
    # discovery                                                           #
    # ------------------------------------------------------------------ #

    def __contains__(self, url: str) -> bool:
        return url in self.discovered

    def seed(self, url: str) -> bool:
        """Discover *url* at depth 0 and queue it."""
        if not self.discover(url, 0):
            return False
        self.enqueue(url)
        return True

    def discover(self, url: str, depth: int, source: Optional[str] = None) -> bool:
        """Record *url* the first time it is seen. Depth is fixed from then on.

        Returns False for already known URLs and for URLs beyond max_depth,
        which are not recorded at all.
        """
        if source is not None:
            self.add_edge(source, url)
        if url in self.discovered or depth > self.max_depth:
            return False
        self.discovered.add(url)
        self.depths[url] = depth
        self.states[url] = UrlState.DISCOVERED
        self._order.append(url)
        return True

    def add_edge(self, source: str, target: str) -> None:
        if source != target:
            self._edges.setdefault((source, target), None)

    def enqueue(self, url: str) -> None:
        self._move(url, UrlState.PENDING)
        self.pending.append(QueuedUrl(url, self.depths[url]))

    def mark_disallowed(self, url: str) -> None:
        if self.states.get(url) is not UrlState.DISCOVERED:
            raise FrontierError(f"{url} cannot be disallowed from state {self.states.get(url)}")
        self.disallowed.add(url)

    # ------------------------------------------------------------------ #
    # crawling                                                            #
    # ------------------------------------------------------------------ #

    @property
    def remaining_budget(self) -> int:
        return max(0, self.max_pages - len(self.crawled))

    def has_work(self) -> bool:
        return bool(self.pending) and len(self.crawled) < self.max_pages

    def next_batch(self, concurrency: int) -> List[QueuedUrl]:
        """Take up to ``min(concurrency, remaining budget)`` URLs from the front."""
        size = min(concurrency, self.remaining_budget)
        batch: List[QueuedUrl] = []
        while self.pending and len(batch) < size:
            item = self.pending.popleft()
            if item.depth > self.max_depth:
                continue
            self._move(item.url, UrlState.CRAWLING)
            batch.append(item)
        return batch

    def mark_crawled(self, url: str) -> None:
        self._move(url, UrlState.CRAWLED)
        self.crawled.add(url)

    def mark_failed(self, url: str) -> None:
        self._move(url, UrlState.FAILED)
        self.failed.add(url)

    def _move(self, url: str, new: UrlState) -> None:
        current = self.states.get(url)
        if current is None:
            raise FrontierError(f"{url} was never discovered")
        if new not in _TRANSITIONS[current]:
            raise FrontierError(f"{url}: illegal transition {current.value} -> {new.value}")
        self.states[url] = new

    # ------------------------------------------------------------------ #
    # reporting                                                           #
    # ------------------------------------------------------------------ #

    def stats(self, duration: float, stopped_early: bool) -> CrawlStats:
        by_depth: Dict[int, List[str]] = {}
        for url in self._order:
            if url in self.crawled:
                by_depth.setdefault(self.depths[url], []).append(url)
        return CrawlStats(
            pages_discovered=len(self.discovered),
            pages_crawled=len(self.crawled),
            pages_failed=len(self.failed),
            pages_skipped=len(self.discovered) - len(self.crawled) - len(self.failed) - len(self.disallowed),
            pages_disallowed=len(self.disallowed),
            max_depth_reached=max((self.depths[u] for u in self.crawled), default=0),
            urls_by_depth=by_depth,
            duration=round(duration, 3),
            stopped_early=stopped_early,
        )

    def structure(self) -> SiteStructure:
        nodes = [u for u in self._order if u not in self.disallowed]
        known = set(nodes)
        edges = [[s, t] for (s, t) in self._edges if s in known and t in known]
        return SiteStructure(nodes=nodes, edges=edges)
