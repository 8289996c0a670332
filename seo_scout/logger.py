# === FILE: seo_scout/logger.py ===
"""Логирование SeoScout.

Один логгер проекта ``SeoScout``; компоненты пишут в дочерние
(``SeoScout.worker``, ``SeoScout.crawler`` …) через :func:`get_logger`
и делят его обработчики. Консольный вывод идёт в stderr, чтобы stdout
оставался за JSON-выводом CLI; файл (если задан) ротируется.

    from seo_scout.logger import logger
    logger.info("Worker started")
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, List, Union

DEFAULT_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOGGER_NAME: Final[str] = "SeoScout"

# сторонние логгеры, которые шумят на INFO
NOISY_LOGGERS: Final[tuple[str, ...]] = ("aiohttp.access", "aiohttp.client", "redis")

_LevelT = Union[int, str]


def _handlers(fmt: str, log_file: Path | str | None) -> List[logging.Handler]:
    formatter = logging.Formatter(fmt)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        handlers.append(
            RotatingFileHandler(
                filename=str(log_file),
                maxBytes=5 * 1024 * 1024,
                backupCount=3,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure(
    *,
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
    replace_handlers: bool = True,
) -> logging.Logger:
    """(Пере)настраивает логгер проекта.

    Parameters
    ----------
    level
        Уровень (``"DEBUG"``, ``logging.INFO`` …). Выше DEBUG сторонние
        логгеры из :data:`NOISY_LOGGERS` прижимаются к WARNING.
    log_file
        Файл с ротацией; при *None* только stderr.
    log_format
        Строка формата :class:`logging.Formatter`.
    replace_handlers
        *True* снимает прежние обработчики, *False* добавляет новые.
    """
    lg = logging.getLogger(LOGGER_NAME)
    lg.setLevel(level)
    if replace_handlers:
        for old in list(lg.handlers):
            lg.removeHandler(old)
            old.close()
    for handler in _handlers(log_format, log_file):
        lg.addHandler(handler)
    lg.propagate = False

    noisy_level = logging.DEBUG if lg.level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
    return lg


def init_logging(
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """Вызов из CLI: заменить обработчики и выставить *level*."""
    return configure(level=level, log_file=log_file, log_format=log_format, replace_handlers=True)


def get_logger(area: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{area}")


logger: logging.Logger = init_logging()

__all__ = ["logger", "configure", "init_logging", "get_logger", "LOGGER_NAME", "DEFAULT_FORMAT"]
