# seo_scout/crawler/throttle.py
"""Per-domain spacing of requests within one crawl."""
from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Iterable, Optional

__all__ = ["DomainThrottle"]


class DomainThrottle:
    """Keeps at least ``interval`` seconds between request waves to a domain.

    State is private to one crawl, so no locking is needed.
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = interval
        self._clock = clock
        self.last_access: Dict[str, float] = {}
        self._delays: Dict[str, float] = {}

    def set_delay(self, domain: str, delay: Optional[float]) -> None:
        """Widen the window for *domain*, e.g. from a robots.txt Crawl-delay."""
        if delay is not None and delay > self.interval:
            self._delays[domain] = delay

    def window(self, domain: str) -> float:
        return self._delays.get(domain, self.interval)

    def remaining(self, domain: str) -> float:
        last = self.last_access.get(domain)
        if last is None:
            return 0.0
        return max(0.0, self.window(domain) - (self._clock() - last))

    async def wait(self, domains: Iterable[str]) -> float:
        """Sleep until every domain's window elapsed, then stamp them. Returns the wait."""
        unique = set(domains)
        delay = max((self.remaining(d) for d in unique), default=0.0)
        if delay > 0:
            await asyncio.sleep(delay)
        now = self._clock()
        for domain in unique:
            self.last_access[domain] = now
        return delay
