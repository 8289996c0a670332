# seo_scout/crawler/fetcher.py
"""
Fetcher module: bounded-time, size-capped retrieval of a single resource.

Identification strings from ``ServiceConfig.user_agents`` are tried in order;
the first successful response wins and the last failure is propagated.
"""
from __future__ import annotations

import asyncio
import time
from typing import Dict, List, Optional, Sequence

from aiohttp import ClientError, ClientSession, ClientTimeout

from seo_scout.config import ServiceConfig
from seo_scout.crawler.models import FetchResult
from seo_scout.errors import DisallowedContentError, FetchError
from seo_scout.logger import get_logger

__all__ = ["Fetcher"]

log = get_logger("fetcher")

_CHUNK = 64 * 1024
# a different client identity will not change these answers
_DEFINITIVE_STATUS: Sequence[int] = (404, 410)


class Fetcher:
    """Retrieves pages with a total timeout, payload cap and user-agent fallback."""

    def __init__(self, config: ServiceConfig, session: Optional[ClientSession] = None) -> None:
        self.config = config
        self.session = session
        self._owns_session = session is None
        self._allowed = frozenset(config.allowed_content_types)
        # per request, so an injected session without its own timeout is bounded too
        self._timeout = ClientTimeout(total=config.timeout)

    async def __aenter__(self) -> Fetcher:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        if self.session is None or self.session.closed:
            self.session = ClientSession(
                timeout=self._timeout,
                raise_for_status=False,
            )
            self._owns_session = True

    async def close(self) -> None:
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()

    @property
    def strategies(self) -> List[Dict[str, str]]:
        """Request headers per identification string, in the order they are tried."""
        return [
            {
                "User-Agent": agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.5",
            }
            for agent in self.config.user_agents
        ]

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch *url*, trying each identification strategy in turn.

        Raises FetchError when every strategy failed, or immediately for a
        definitive answer (disallowed content type, 404/410).
        """
        if self.session is None:
            await self.open()
        last_error: Optional[FetchError] = None
        for headers in self.strategies:
            try:
                return await self._fetch_once(url, headers)
            except DisallowedContentError:
                raise
            except FetchError as exc:
                last_error = exc
                if exc.status in _DEFINITIVE_STATUS:
                    break
                log.debug("Fetch of %s as %r failed: %s", url, headers["User-Agent"], exc.reason)
        assert last_error is not None
        log.warning("Failed %s: %s", url, last_error.reason)
        raise last_error

    async def _fetch_once(self, url: str, headers: Dict[str, str]) -> FetchResult:
        assert self.session is not None
        start = time.monotonic()
        limit = self.config.max_content_bytes
        try:
            async with self.session.get(url, headers=headers, allow_redirects=True, timeout=self._timeout) as resp:
                if resp.status >= 400:
                    raise FetchError(url, f"HTTP {resp.status}", resp.status)
                mime = resp.headers.get("Content-Type", "").split(";", 1)[0].strip().lower()
                if mime not in self._allowed:
                    raise DisallowedContentError(
                        url, f"content type {mime or 'unknown'!r} is not eligible", resp.status
                    )
                if resp.content_length is not None and resp.content_length > limit:
                    raise FetchError(url, f"payload of {resp.content_length} bytes exceeds {limit}", resp.status)
                body = bytearray()
                async for chunk in resp.content.iter_chunked(_CHUNK):
                    body.extend(chunk)
                    if len(body) > limit:
                        raise FetchError(url, f"payload exceeds {limit} bytes", resp.status)
                text = _decode(bytes(body), resp.charset)
                return FetchResult(
                    url=url,
                    final_url=str(resp.url),
                    status=resp.status,
                    content=text,
                    content_type=mime,
                    size=len(body),
                    elapsed=time.monotonic() - start,
                    user_agent=headers["User-Agent"],
                )
        except (ClientError, asyncio.TimeoutError) as exc:
            reason = str(exc) or type(exc).__name__
            raise FetchError(url, reason) from exc


def _decode(body: bytes, charset: Optional[str]) -> str:
    try:
        return body.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")
