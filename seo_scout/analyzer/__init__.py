"""seo_scout.analyzer: контракт анализатора страниц и реализация по умолчанию."""

from seo_scout.analyzer.base import AnalysisResult, Issue, PageAnalyzer, error_result
from seo_scout.analyzer.basic import BasicPageAnalyzer

__all__ = ["AnalysisResult", "Issue", "PageAnalyzer", "BasicPageAnalyzer", "error_result"]
