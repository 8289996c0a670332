# File: seo_scout/report/html_report.py
"""seo_scout.report.html_report: Генерация HTML-отчёта с помощью Jinja2."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape

from seo_scout.report.json_report import to_jsonable

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


def build_context(results: Any) -> Dict[str, Any]:
    """Приводит результат страницы или сайта к одному виду для шаблона."""
    data = to_jsonable(results)
    if "pages" in data:
        pages = [
            {
                "url": p["url"],
                "status": p["status"],
                "depth": p.get("depth", 0),
                "score": (p.get("result") or {}).get("score"),
                "issues": (p.get("result") or {}).get("issues", []),
                "error": p.get("error"),
            }
            for p in data["pages"]
        ]
        return {
            "kind": "site",
            "url": data.get("url", ""),
            "score": data.get("overall_score", 0),
            "status": data.get("overall_status", ""),
            "pages": pages,
            "stats": data.get("crawl_stats", {}),
            "common_issues": data.get("common_issues", []),
            "failed_urls": data.get("failed_urls", []),
            "analyzed_at": data.get("analyzed_at"),
            "cached": data.get("cached", False),
        }
    return {
        "kind": "page",
        "url": data.get("url", ""),
        "score": data.get("score", 0),
        "status": data.get("status", ""),
        "pages": [],
        "issues": data.get("issues", []),
        "page_data": data.get("page_data", {}),
        "analyzed_at": data.get("analyzed_at"),
        "cached": data.get("cached", False),
    }


def render_html(
    results: Any,
    output_path: Union[Path, str, None] = None,
    template_dir: Union[Path, str, None] = None,
) -> Union[Path, str]:
    """Рендерит HTML-отчёт из шаблона ``report.html.j2``.

    Args:
        results: PageAuditResult, SiteAuditResult или dict из кэша.
        output_path: путь к итоговому HTML-файлу; без него возвращается строка.
        template_dir: директория с Jinja2-шаблонами (по умолчанию шаблоны пакета).

    Returns:
        Path до сохранённого HTML-файла или сам HTML.
    """
    env = Environment(
        loader=FileSystemLoader(str(Path(template_dir) if template_dir else TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "xml", "j2"]),
    )
    template = env.get_template("report.html.j2")
    html_content = template.render(**build_context(results))
    if output_path is None:
        return html_content

    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(html_content, encoding="utf-8")
    return output
