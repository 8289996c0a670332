# seo_scout/report/json_report.py

"""
Генерация JSON-отчёта для проекта SeoScout.

Сериализация результата аудита (страницы или сайта) в строку или файл.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

from pydantic import BaseModel


def to_jsonable(results: Any) -> Any:
    """Pydantic-модели -> dict, остальное без изменений."""
    if isinstance(results, BaseModel):
        return results.model_dump(mode="json")
    return results


def render_json(
    results: Any,
    output_path: Union[Path, str, None] = None,
    *,
    pretty: bool = True,
) -> Union[Path, str]:
    """
    Сериализует results в JSON.

    :param results: PageAuditResult, SiteAuditResult или dict из кэша
    :param output_path: путь к JSON-файлу; без него возвращается строка
    :param pretty: отступы в 2 пробела
    :return: Path сохранённого файла или JSON-строка

    Пример:
    ```python
    from seo_scout.report.json_report import render_json
    report_path = render_json(results, 'reports/report.json')
    ```
    """
    text = json.dumps(to_jsonable(results), ensure_ascii=False, indent=2 if pretty else None, default=str)
    if output_path is None:
        return text

    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    return output
