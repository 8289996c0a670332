# File: tests/test_analyzer.py
from __future__ import annotations

import asyncio
import time

import pytest

import seo_scout.analyzer.basic as basic_module
from conftest import build_site
from seo_scout.aggregator import aggregate_site, common_issues, overall_status
from seo_scout.analyzer import AnalysisResult, BasicPageAnalyzer, Issue
from seo_scout.analyzer.basic import extract_signals, score_issues
from seo_scout.crawler.fetcher import Fetcher
from seo_scout.crawler.models import CrawlOutcome, CrawlStats, PageRecord
from seo_scout.errors import AnalyzerError

GOOD_PAGE = """
<html lang="en">
<head>
  <title>A perfectly reasonable page title for tests</title>
  <meta name="description" content="{desc}">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <link rel="canonical" href="https://example.com/">
  <script type="application/ld+json">{{"@type": "Organization"}}</script>
</head>
<body>
  <h1>Welcome</h1><h2>Section</h2>
  <p>{body}</p>
  <img src="/a.png" alt="A"><img src="/b.png">
  <a href="/about">About</a><a href="https://other.com">Other</a>
</body>
</html>
""".format(desc="d" * 100, body="word " * 320)


def test_extract_signals():
    data = extract_signals("https://example.com/", GOOD_PAGE)
    assert data["title"].startswith("A perfectly")
    assert data["h1"] == ["Welcome"]
    assert data["h2_count"] == 1
    assert data["images"] == {"total": 2, "without_alt": 1}
    assert data["links"] == {"internal": 1, "external": 1}
    assert data["has_viewport"] is True
    assert data["lang"] == "en"
    assert data["structured_data_types"] == ["Organization"]
    assert data["word_count"] >= 320


@pytest.mark.asyncio()
async def test_analyze_with_content():
    result = await BasicPageAnalyzer().analyze("https://example.com/", GOOD_PAGE)
    assert [i.type for i in result.issues] == ["missing_alt_text"]
    assert result.score == 90
    assert result.status == "good"


@pytest.mark.asyncio()
async def test_analyze_empty_page_is_poor():
    result = await BasicPageAnalyzer().analyze("https://example.com/", "<html><body></body></html>")
    types = {i.type for i in result.issues}
    assert {"missing_title", "missing_meta_description", "missing_h1", "thin_content"} <= types
    assert result.status == "poor"
    assert 0 <= result.score < 50


@pytest.mark.asyncio()
async def test_analyze_without_content_needs_fetcher():
    with pytest.raises(AnalyzerError):
        await BasicPageAnalyzer().analyze("https://example.com/")


@pytest.mark.asyncio()
async def test_analyze_fetches_on_its_own(serve, service_config):
    base = await serve(build_site({"/": GOOD_PAGE}))
    async with Fetcher(service_config) as fetcher:
        result = await BasicPageAnalyzer(fetcher).analyze(base)
    assert result.url == base
    assert result.page_data["h1"] == ["Welcome"]


@pytest.mark.asyncio()
async def test_parse_runs_off_the_event_loop(monkeypatch):
    def slow_extract(url, content):
        time.sleep(0.3)
        return extract_signals(url, content)

    monkeypatch.setattr(basic_module, "extract_signals", slow_extract)
    ticks = 0

    async def ticker():
        nonlocal ticks
        while True:
            await asyncio.sleep(0.01)
            ticks += 1

    task = asyncio.create_task(ticker())
    result = await BasicPageAnalyzer().analyze("https://example.com/", GOOD_PAGE)
    task.cancel()
    assert result.score == 90
    assert ticks >= 5

    # таймаут вокруг анализа срабатывает, не дожидаясь конца разбора
    started = time.monotonic()
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(BasicPageAnalyzer().analyze("https://example.com/", GOOD_PAGE), timeout=0.05)
    assert time.monotonic() - started < 0.25


def test_score_issues_floor_at_zero():
    issues = [Issue(type=f"x{i}", severity="critical") for i in range(10)]
    assert score_issues(issues) == 0
    assert score_issues([]) == 100


# --------------------------------------------------------------------------- #
#                                 Aggregation                                 #
# --------------------------------------------------------------------------- #


def _record(url, score=None, status="crawled", issues=(), result_status="ok"):
    result = None
    if score is not None:
        result = AnalysisResult(url=url, score=score, status=result_status, issues=list(issues))
    return PageRecord(url=url, status=status, depth=0, result=result)


def test_overall_status_thresholds():
    assert overall_status(80) == "good"
    assert overall_status(79) == "needs_improvement"
    assert overall_status(50) == "needs_improvement"
    assert overall_status(49) == "poor"


def test_aggregate_site_averages_successful_analyses():
    missing_title = Issue(type="missing_title", severity="critical")
    no_alt = Issue(type="missing_alt_text")
    pages = [
        _record("https://a.com", 90, issues=[no_alt]),
        _record("https://a.com/b", 70, issues=[missing_title, no_alt, no_alt]),
        _record("https://a.com/c", 0, result_status="error"),
        _record("https://a.com/d", status="failed"),
    ]
    outcome = CrawlOutcome(
        start_url="https://a.com",
        pages=pages,
        stats=CrawlStats(pages_crawled=3, pages_failed=1),
        failed_urls=["https://a.com/d"],
    )
    result = aggregate_site("https://a.com", outcome)

    assert result.overall_score == 80
    assert result.overall_status == "good"
    assert result.failed_urls == ["https://a.com/d"]
    assert [(c.type, c.frequency, c.severity) for c in result.common_issues] == [
        ("missing_alt_text", 2, "warning"),
        ("missing_title", 1, "critical"),
    ]
    assert result.crawl_stats.pages_crawled == 3


def test_common_issues_limit_and_empty():
    assert common_issues([]) == []
    pages = [_record(f"https://a.com/{i}", 50, issues=[Issue(type=f"t{i}")]) for i in range(12)]
    assert len(common_issues(pages)) == 10
    assert len(common_issues(pages, limit=None)) == 12


def test_aggregate_without_successful_pages_scores_zero():
    outcome = CrawlOutcome(start_url="https://a.com", pages=[_record("https://a.com", status="failed")])
    result = aggregate_site("https://a.com", outcome)
    assert result.overall_score == 0
    assert result.overall_status == "poor"
