# File: seo_scout/report/__init__.py
"""seo_scout.report: Утилиты для генерации отчётов (JSON и HTML) используемые CLI и тестами."""

from seo_scout.report.html_report import render_html
from seo_scout.report.json_report import render_json

__all__ = ["render_json", "render_html"]
