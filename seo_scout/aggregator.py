# File: seo_scout/aggregator.py
"""seo_scout.aggregator: Сводка записей обхода в итоговый результат аудита сайта."""

from __future__ import annotations

from collections import Counter
from typing import Dict, List, Optional

from seo_scout.crawler.models import CrawlOutcome, PageRecord
from seo_scout.jobs.models import CommonIssue, SiteAuditResult

__all__ = ["aggregate_site", "overall_status", "common_issues"]

_SEVERITY_RANK = {"critical": 0, "warning": 1, "info": 2}


def overall_status(score: int) -> str:
    """good ≥ 80, needs_improvement ≥ 50, иначе poor."""
    if score >= 80:
        return "good"
    if score >= 50:
        return "needs_improvement"
    return "poor"


def _scored(pages: List[PageRecord]) -> List[int]:
    """Оценки страниц, анализ которых завершился успешно."""
    return [
        p.result.score
        for p in pages
        if p.status == "crawled" and p.result is not None and p.result.status != "error"
    ]


def common_issues(pages: List[PageRecord], limit: Optional[int] = 10) -> List[CommonIssue]:
    """Типы проблем по числу страниц, где они встречаются (сначала самые частые)."""
    frequency: Counter[str] = Counter()
    severity: Dict[str, str] = {}
    for page in pages:
        if page.result is None:
            continue
        for issue_type in {i.type for i in page.result.issues}:
            frequency[issue_type] += 1
        for issue in page.result.issues:
            known = severity.get(issue.type)
            if known is None or _SEVERITY_RANK[issue.severity] < _SEVERITY_RANK[known]:
                severity[issue.type] = issue.severity
    ranked = sorted(frequency.items(), key=lambda kv: (-kv[1], _SEVERITY_RANK[severity[kv[0]]], kv[0]))
    if limit is not None:
        ranked = ranked[:limit]
    return [CommonIssue(type=t, frequency=n, severity=severity[t]) for t, n in ranked]


def aggregate_site(url: str, outcome: CrawlOutcome) -> SiteAuditResult:
    """Собирает все части отчёта в SiteAuditResult."""
    scores = _scored(outcome.pages)
    score = round(sum(scores) / len(scores)) if scores else 0
    return SiteAuditResult(
        url=url,
        pages=outcome.pages,
        crawl_stats=outcome.stats,
        site_structure=outcome.structure,
        failed_urls=outcome.failed_urls,
        overall_score=score,
        overall_status=overall_status(score),
        common_issues=common_issues(outcome.pages),
    )
