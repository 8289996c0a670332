# File: seo_scout/analyzer/base.py
"""
Page analyzer contract.

The pipeline only depends on :class:`PageAnalyzer`; scoring rules live in
concrete implementations such as :class:`seo_scout.analyzer.basic.BasicPageAnalyzer`.
"""
from __future__ import annotations

import abc
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

__all__ = ["Issue", "AnalysisResult", "PageAnalyzer", "error_result"]

Severity = Literal["critical", "warning", "info"]


class Issue(BaseModel):
    type: str
    severity: Severity = "warning"
    recommendation: str = ""


class AnalysisResult(BaseModel):
    """Score, issue list and extracted page data for one URL."""

    url: str
    score: int = Field(0, ge=0, le=100)
    status: str = "ok"
    issues: List[Issue] = Field(default_factory=list)
    page_data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


def error_result(url: str, message: str) -> AnalysisResult:
    """Zero-confidence result recorded when analysis of *url* fails."""
    return AnalysisResult(url=url, score=0, status="error", error=message)


class PageAnalyzer(abc.ABC):
    """Turns page content into an :class:`AnalysisResult`."""

    @abc.abstractmethod
    async def analyze(self, url: str, content: Optional[str] = None) -> AnalysisResult:
        """Analyze *url*.

        With *content* omitted the analyzer performs its own fetch; with
        pre-fetched *content* it must not touch the network.
        """
