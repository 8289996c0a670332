# File: seo_scout/utils.py
"""seo_scout.utils: Утилитарные функции для нормализации и проверки URL."""

from __future__ import annotations

import posixpath
import re
from typing import Collection, List, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from seo_scout.errors import AuditValidationError
from seo_scout.logger import logger

__all__: Sequence[str] = (
    "normalize_url",
    "validate_target",
    "extract_domain",
    "is_same_site",
    "is_media_url",
    "remove_duplicates",
)

_TRACKING_PREFIXES = ("utm_",)
_TRACKING_PARAMS = frozenset({"gclid", "fbclid", "msclkid", "yclid", "_ga", "mc_cid", "mc_eid"})
_DEFAULT_PORTS = {"http": ":80", "https": ":443"}
_MULTI_SLASH_RE = re.compile(r"/{2,}")

MEDIA_EXTENSIONS = frozenset(
    {
        "jpg", "jpeg", "png", "gif", "webp", "svg", "ico", "bmp",
        "pdf", "zip", "gz", "mp4", "webm", "mov", "mp3", "wav", "ogg",
        "css", "js", "woff", "woff2", "ttf",
    }
)


def _clean_query(query: str) -> str:
    pairs = [
        (k, v)
        for k, v in parse_qsl(query, keep_blank_values=True)
        if k.lower() not in _TRACKING_PARAMS and not k.lower().startswith(_TRACKING_PREFIXES)
    ]
    pairs.sort()
    return urlencode(pairs, doseq=True)


def normalize_url(url: str, *, ignore_query: bool = True) -> str:
    """Нормализует URL для сравнения и ключей кэша.

    Добавляет https:// при отсутствии схемы, приводит схему и хост к нижнему
    регистру, убирает порт по умолчанию, фрагмент и завершающий слеш.
    Query отбрасывается целиком (``ignore_query``) или очищается от
    трекинговых параметров и сортируется. Функция идемпотентна.
    """
    raw = url.strip()
    if not raw:
        return ""
    if "://" not in raw:
        raw = "https://" + raw.lstrip("/")

    parsed = urlsplit(raw)
    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    default_port = _DEFAULT_PORTS.get(scheme)
    if default_port and netloc.endswith(default_port):
        netloc = netloc[: -len(default_port)]

    path = _MULTI_SLASH_RE.sub("/", parsed.path)
    if path:
        path = posixpath.normpath(path)
    path = path.rstrip("/")
    if path in ("", "."):
        path = ""

    query = "" if ignore_query else _clean_query(parsed.query)
    return urlunsplit((scheme, netloc, path, query, ""))


def validate_target(url: object) -> str:
    """Проверяет цель аудита и возвращает её нормализованную форму.

    Бросает AuditValidationError для пустых и некорректных значений.
    """
    if not isinstance(url, str) or not url.strip():
        raise AuditValidationError("URL is required")
    normalized = normalize_url(url)
    parsed = urlsplit(normalized)
    if parsed.scheme not in ("http", "https"):
        raise AuditValidationError(f"Unsupported URL scheme: {parsed.scheme!r}")
    host = parsed.hostname or ""
    if not host or " " in parsed.netloc or ("." not in host and host != "localhost"):
        raise AuditValidationError(f"Invalid URL provided: {url!r}")
    logger.debug("Validated target: %s -> %s", url, normalized)
    return normalized


def extract_domain(url: str) -> str:
    """Возвращает хост из URL в нижнем регистре, без порта."""
    return (urlsplit(url).hostname or "").lower()


def is_same_site(url: str, base_host: str, include_subdomains: bool = False) -> bool:
    """Проверяет, что URL использует http(s) и принадлежит сайту base_host."""
    parsed = urlsplit(url)
    if parsed.scheme not in ("http", "https"):
        return False
    host = (parsed.hostname or "").lower()
    base = base_host.lower()
    if host == base:
        return True
    return include_subdomains and host.endswith("." + base)


def is_media_url(url: str) -> bool:
    """True, если путь URL оканчивается расширением медиа- или статического файла."""
    last = urlsplit(url).path.rsplit("/", 1)[-1]
    if "." not in last:
        return False
    return last.rsplit(".", 1)[-1].lower() in MEDIA_EXTENSIONS


def remove_duplicates(urls: Collection[str]) -> List[str]:
    """Удаляет дубликаты из списка URL, сохраняя порядок."""
    unique = list(dict.fromkeys(urls))
    removed = len(urls) - len(unique)
    if removed:
        logger.debug("Removed %d duplicate URLs", removed)
    return unique
