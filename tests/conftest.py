# File: tests/conftest.py
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Dict, List, Optional, Union

import pytest
import pytest_asyncio
from aiohttp import web

from seo_scout.analyzer.base import AnalysisResult, Issue, PageAnalyzer
from seo_scout.config import ServiceConfig
from seo_scout.engine import AuditService
from seo_scout.jobs.store import MemoryStore

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]
PageSpec = Union[str, Handler]


class StubAnalyzer(PageAnalyzer):
    """Deterministic analyzer: 90 points for pages with a <title>, 40 otherwise."""

    def __init__(self, fail_on: Optional[str] = None) -> None:
        self.calls: List[str] = []
        self.fail_on = fail_on

    async def analyze(self, url: str, content: Optional[str] = None) -> AnalysisResult:
        self.calls.append(url)
        if self.fail_on and self.fail_on in url:
            raise RuntimeError("analyzer exploded")
        if content and "<title>" in content:
            return AnalysisResult(url=url, score=90, status="good")
        return AnalysisResult(
            url=url,
            score=40,
            status="poor",
            issues=[Issue(type="missing_title", severity="critical")],
        )


def build_site(pages: Dict[str, PageSpec], robots: Optional[str] = None) -> web.Application:
    """aiohttp app serving *pages* (path → HTML or handler) and an optional robots.txt."""
    app = web.Application()

    def html_handler(body: str) -> Handler:
        async def handle(_):
            return web.Response(text=body, content_type="text/html")

        return handle

    for path, spec in pages.items():
        app.router.add_get(path, spec if callable(spec) else html_handler(spec))

    if robots is not None:
        async def handle_robots(_):
            return web.Response(text=robots, content_type="text/plain")

        app.router.add_get("/robots.txt", handle_robots)
    return app


@pytest_asyncio.fixture
async def serve(unused_tcp_port_factory) -> AsyncIterator[Callable[[web.Application], Awaitable[str]]]:
    """Start aiohttp apps on free ports; returns their base URLs; cleans up afterwards."""
    runners: List[web.AppRunner] = []

    async def _start(app: web.Application) -> str:
        port = unused_tcp_port_factory()
        runner = web.AppRunner(app)
        await runner.setup()
        await web.TCPSite(runner, "127.0.0.1", port).start()
        runners.append(runner)
        return f"http://127.0.0.1:{port}"

    yield _start
    for runner in runners:
        await runner.cleanup()


@pytest.fixture()
def service_config() -> ServiceConfig:
    """Fast configuration for tests: one user agent, no throttling."""
    return ServiceConfig(
        namespace="test-audit",
        agent_name="TestAgent",
        user_agents=["TestAgent/1.0"],
        timeout=2.0,
        throttle_interval=0.0,
        poll_interval=0.05,
        analysis_timeout=2.0,
    )


@pytest.fixture()
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def stub_analyzer() -> StubAnalyzer:
    return StubAnalyzer()


@pytest.fixture()
def audit_service(service_config, memory_store, stub_analyzer) -> AuditService:
    """Service over an in-memory store whose workers all share *stub_analyzer*."""
    return AuditService(service_config, memory_store, analyzer_factory=lambda fetcher: stub_analyzer)


async def wait_for_status(service: AuditService, job_id: str, wanted: str, timeout: float = 5.0) -> dict:
    """Poll the job until it reaches *wanted* status."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        status = await service.get_status(job_id)
        if status["status"] == wanted or loop.time() > deadline:
            return status
        await asyncio.sleep(0.02)
