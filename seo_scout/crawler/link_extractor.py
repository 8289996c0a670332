# seo_scout/crawler/link_extractor.py
"""
Link extraction and scoping for SeoScout.
"""
from __future__ import annotations

from typing import List
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from seo_scout.utils import is_media_url, is_same_site, normalize_url

_SKIP_PREFIXES = ("mailto:", "javascript:", "tel:", "data:", "#")


def extract_links(
    page_url: str,
    content: str,
    base_host: str,
    *,
    include_subdomains: bool = False,
    include_media: bool = False,
    ignore_query: bool = True,
) -> List[str]:
    """
    Extract in-scope links from HTML *content*, normalized and deduplicated.

    Ignores mailto:, javascript:, fragments, other sites and (unless
    *include_media*) links to media/static files. Order of first appearance
    is kept.
    """
    soup = BeautifulSoup(content, "html.parser")
    base = page_url
    base_tag = soup.find("base", href=True)
    if isinstance(base_tag, Tag) and isinstance(base_tag.get("href"), str):
        base = urljoin(page_url, base_tag["href"].strip())  # type: ignore[arg-type]

    seen: set[str] = set()
    links: List[str] = []
    for tag in soup.find_all("a", href=True):
        if not isinstance(tag, Tag):
            continue
        href_val = tag.get("href")
        if not isinstance(href_val, str):
            continue
        raw = href_val.strip()
        if not raw or raw.lower().startswith(_SKIP_PREFIXES):
            continue
        absolute = normalize_url(urljoin(base, raw), ignore_query=ignore_query)
        if not is_same_site(absolute, base_host, include_subdomains):
            continue
        if not include_media and is_media_url(absolute):
            continue
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links
