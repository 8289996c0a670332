# === FILE: seo_scout/config.py ===
"""
Модуль для загрузки и валидации конфигурации сервиса SeoScout.
Используется Pydantic для описания схемы и проверки данных.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

__all__ = ["AuditOptions", "ServiceConfig", "load_config", "MEMORY_STORE_URL"]

MEMORY_STORE_URL = "memory://"

_DEFAULT_USER_AGENTS = [
    "SeoScoutBot/1.0 (+https://github.com/seo-scout/seo-scout)",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.0 Safari/605.1.15",
]


class AuditOptions(BaseModel):
    """Параметры одного аудита. Принимает как camelCase, так и snake_case."""
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    max_pages: int = Field(20, ge=1, le=500, description="Жесткий лимит по числу страниц.")
    max_depth: int = Field(3, ge=0, le=10, description="Максимальная глубина обхода ссылок.")
    concurrency: int = Field(3, ge=1, le=10, description="Размер одного пакета запросов.")
    respect_robots: bool = Field(True, description="Учитывать robots.txt.")
    include_subdomains: bool = Field(False, description="Считать поддомены частью сайта.")
    ignore_query: bool = Field(True, description="Отбрасывать query при нормализации URL.")
    include_media: bool = Field(False, description="Обходить ссылки на медиафайлы.")
    skip_crawl: bool = Field(False, description="Не искать ссылки, анализировать custom_pages.")
    custom_pages: List[str] = Field(default_factory=list, description="Явный список страниц.")


class ServiceConfig(BaseModel):
    """Конфигурация сервиса: хранилище, кэш, воркер и краулер."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    namespace: str = Field("seo-audit", min_length=1, description="Префикс ключей хранилища.")
    redis_url: str = Field(MEMORY_STORE_URL, description="redis://… или memory://")
    job_ttl: int = Field(7 * 24 * 3600, gt=0, description="Срок жизни записи задачи (секунд).")
    page_cache_ttl: int = Field(3600, gt=0, description="TTL кэша аудита страницы (секунд).")
    site_cache_ttl: int = Field(14400, gt=0, description="TTL кэша аудита сайта (секунд).")

    poll_interval: float = Field(2.0, gt=0, description="Пауза опроса пустой очереди (секунд).")
    batch_size: int = Field(5, ge=1, description="Макс. число задач за один пакет воркера.")
    worker_concurrency: int = Field(1, ge=1, description="Задач пакета, выполняемых одновременно.")
    max_active_audits: int = Field(3, ge=1, description="Одновременных запросов аудита.")
    max_pending_audits: int = Field(10, ge=0, description="Очередь ожидающих запросов аудита.")

    agent_name: str = Field("SeoScoutBot", min_length=1, description="Имя агента для robots.txt.")
    user_agents: List[str] = Field(
        default_factory=lambda: list(_DEFAULT_USER_AGENTS),
        description="User-Agent строки в порядке перебора.",
    )
    timeout: float = Field(20.0, gt=0, description="Таймаут на один запрос (секунд).")
    max_content_bytes: int = Field(5 * 1024 * 1024, gt=0, description="Лимит размера ответа.")
    allowed_content_types: List[str] = Field(
        default_factory=lambda: ["text/html", "application/xhtml+xml"],
        description="MIME-типы, допустимые для анализа.",
    )
    throttle_interval: float = Field(1.0, ge=0, description="Мин. пауза между запросами к домену.")
    crawl_time_limit: Optional[float] = Field(
        None, gt=0, description="Потолок времени обхода сайта (секунд)."
    )
    analysis_timeout: float = Field(15.0, gt=0, description="Таймаут анализа одной страницы.")

    default_options: AuditOptions = Field(default_factory=AuditOptions)

    @field_validator("namespace", mode="before")
    def _strip_colons(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().strip(":")
        return v

    @field_validator("allowed_content_types", mode="after")
    def _lower_mime(cls, v: List[str]) -> List[str]:
        return [m.strip().lower() for m in v]

    @model_validator(mode="after")
    def _check_user_agents(self) -> ServiceConfig:
        if not self.user_agents:
            raise ValueError("user_agents must contain at least one entry")
        return self


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None] = None) -> ServiceConfig:
    """
    Читает YAML или JSON и возвращает проверенный объект ServiceConfig.

    Без пути используется configs/default.yaml, а при его отсутствии
    значения по умолчанию. Явно указанный, но отсутствующий файл даёт
    FileNotFoundError. redis_url берётся из переменной REDIS_URL, если
    в файле он не задан.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            data: dict[str, Any] = {}
        else:
            data = _read_yaml(_DEFAULT_CFG)
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

        suffix = path_obj.suffix.lower()
        if suffix in (".yaml", ".yml"):
            data = _read_yaml(path_obj)
        elif suffix == ".json":
            data = _read_json(path_obj)
        else:
            raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")

    env_url = os.getenv("REDIS_URL")
    if env_url and "redis_url" not in data:
        data["redis_url"] = env_url

    try:
        return ServiceConfig(**data)
    except ValidationError:
        raise
