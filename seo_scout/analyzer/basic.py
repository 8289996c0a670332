# === FILE: seo_scout/analyzer/basic.py ===
"""Default on-page analyzer.

Extracts a small set of on-page signals with BeautifulSoup and turns them into
an issue list and a 0–100 score:

* title: presence and length of ``<title>``.
* meta description: presence and length.
* headings: number of ``<h1>``, count of ``<h2>``.
* images: ``<img>`` tags without ``alt``.
* technical: canonical link, mobile viewport, ``lang``, JSON-LD types.
* content: visible word count.

The weights are deliberately simple; any :class:`PageAnalyzer` can replace
this one without touching the pipeline.
"""
from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from seo_scout.analyzer.base import AnalysisResult, Issue, PageAnalyzer
from seo_scout.errors import AnalyzerError

if TYPE_CHECKING:
    from seo_scout.crawler.fetcher import Fetcher

__all__: Sequence[str] = ("BasicPageAnalyzer", "extract_signals", "score_issues")

_PENALTY = {"critical": 20, "warning": 10, "info": 3}


def _text(tag: Any) -> str:
    return tag.get_text(" ", strip=True) if tag is not None else ""


def extract_signals(url: str, html: str) -> Dict[str, Any]:
    """Collect the raw on-page signals used for scoring."""
    soup = BeautifulSoup(html, "html.parser")
    host = urlsplit(url).hostname or ""

    desc_tag = soup.find("meta", attrs={"name": "description"})
    viewport_tag = soup.find("meta", attrs={"name": "viewport"})
    canonical_tag = soup.find("link", rel="canonical")
    html_tag = soup.find("html")

    images = soup.find_all("img")
    without_alt = [img.get("src", "") for img in images if not (img.get("alt") or "").strip()]

    internal = external = 0
    for tag in soup.find_all("a", href=True):
        href = tag["href"].strip()
        if not href or href.startswith(("#", "mailto:", "javascript:", "tel:")):
            continue
        if (urlsplit(urljoin(url, href)).hostname or "") == host:
            internal += 1
        else:
            external += 1

    structured: List[str] = []
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except ValueError:
            continue
        if isinstance(data, dict):
            structured.append(str(data.get("@type", "Unknown")))

    for element in soup(["script", "style", "noscript", "template"]):
        element.decompose()
    words = " ".join(soup.stripped_strings).split()

    return {
        "title": _text(soup.find("title")),
        "meta_description": (desc_tag.get("content") or "").strip() if desc_tag else "",
        "h1": [_text(h) for h in soup.find_all("h1")],
        "h2_count": len(soup.find_all("h2")),
        "word_count": len(words),
        "images": {"total": len(images), "without_alt": len(without_alt)},
        "links": {"internal": internal, "external": external},
        "canonical": (canonical_tag.get("href") or "") if canonical_tag else "",
        "has_viewport": bool(viewport_tag and "width=device-width" in (viewport_tag.get("content") or "")),
        "lang": (html_tag.get("lang") or "") if html_tag else "",
        "structured_data_types": structured,
    }


def _issues_for(data: Dict[str, Any]) -> List[Issue]:
    issues: List[Issue] = []
    title = data["title"]
    if not title:
        issues.append(Issue(type="missing_title", severity="critical", recommendation="Add a title tag to your page"))
    elif len(title) < 30:
        issues.append(Issue(type="title_too_short", recommendation="Make your title 30-60 characters long"))
    elif len(title) > 60:
        issues.append(Issue(type="title_too_long", severity="info", recommendation="Shorten your title to 60 characters"))

    desc = data["meta_description"]
    if not desc:
        issues.append(Issue(type="missing_meta_description", severity="critical", recommendation="Add a meta description"))
    elif not 70 <= len(desc) <= 160:
        issues.append(Issue(type="meta_description_length", severity="info", recommendation="Keep the description within 70-160 characters"))

    if not data["h1"]:
        issues.append(Issue(type="missing_h1", severity="critical", recommendation="Add an H1 heading to your page"))
    elif len(data["h1"]) > 1:
        issues.append(Issue(type="multiple_h1", recommendation="Use a single H1 heading"))

    if data["images"]["without_alt"]:
        issues.append(Issue(type="missing_alt_text", recommendation="Add alt text to every image"))
    if not data["has_viewport"]:
        issues.append(Issue(type="missing_viewport", recommendation="Add a responsive viewport meta tag"))
    if not data["canonical"]:
        issues.append(Issue(type="missing_canonical", severity="info", recommendation="Declare a canonical URL"))
    if not data["lang"]:
        issues.append(Issue(type="missing_lang", severity="info", recommendation="Set the lang attribute on <html>"))
    if data["word_count"] < 300:
        issues.append(Issue(type="thin_content", recommendation="Add more body content (300+ words)"))
    return issues


def score_issues(issues: List[Issue]) -> int:
    return max(0, 100 - sum(_PENALTY[i.severity] for i in issues))


class BasicPageAnalyzer(PageAnalyzer):
    """BeautifulSoup analyzer. Fetches through *fetcher* when given only a URL."""

    def __init__(self, fetcher: Optional[Fetcher] = None) -> None:
        self.fetcher = fetcher

    async def analyze(self, url: str, content: Optional[str] = None) -> AnalysisResult:
        if content is None:
            if self.fetcher is None:
                raise AnalyzerError(f"No content for {url} and no fetcher to retrieve it")
            content = (await self.fetcher.fetch(url)).content
        # the parse runs in a thread so the event loop (and a wait_for timeout
        # around this call) is not held up by a large document
        try:
            data = await asyncio.to_thread(extract_signals, url, content)
        except Exception as exc:
            raise AnalyzerError(f"Could not parse {url}: {exc}") from exc
        issues = _issues_for(data)
        score = score_issues(issues)
        status = "good" if score >= 80 else "needs_improvement" if score >= 50 else "poor"
        return AnalysisResult(url=url, score=score, status=status, issues=issues, page_data=data)
