# File: seo_scout/engine.py
"""seo_scout.engine: Фасад сервиса аудита для CLI и тестов.

:class:`AuditService` держит хранилище, кэш и конфиг, которые передаются ему
явно; глобального состояния нет. Порядок работы ``submit``: проверка цели →
чтение кэша (попадание возвращается сразу, задача не создаётся) → создание
задачи в очереди. Выполняет задачи :class:`~seo_scout.jobs.worker.AuditWorker`.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from seo_scout.analyzer.basic import BasicPageAnalyzer
from seo_scout.cache import AuditCache
from seo_scout.config import AuditOptions, ServiceConfig, load_config
from seo_scout.crawler.fetcher import Fetcher
from seo_scout.errors import (
    AuditValidationError,
    JobNotCompletedError,
    JobNotFoundError,
    ServiceBusyError,
    ServiceUnavailableError,
    StoreUnavailableError,
)
from seo_scout.jobs.models import JobStatus, JobType, PageAuditParams, SiteAuditParams
from seo_scout.jobs.store import JobStore, Store, build_store
from seo_scout.jobs.worker import AnalyzerFactory, AuditWorker, run_page_audit
from seo_scout.logger import logger
from seo_scout.utils import normalize_url, validate_target

__all__ = ["AdmissionGate", "AuditService", "SubmitResult"]

OptionsInput = Union[AuditOptions, Mapping[str, Any], None]


class SubmitResult(BaseModel):
    """Ответ на запрос аудита: id новой задачи либо результат из кэша."""

    job_id: Optional[str] = None
    cached: bool = False
    cached_at: Optional[datetime] = None
    results: Optional[Dict[str, Any]] = None


class AdmissionGate:
    """Service-wide cap on audit requests in flight.

    Up to ``max_active`` requests run; up to ``max_pending`` more wait for a
    slot; anything beyond that is rejected with ServiceBusyError.
    """

    def __init__(self, max_active: int, max_pending: int) -> None:
        self.max_active = max_active
        self.max_pending = max_pending
        self._semaphore = asyncio.Semaphore(max_active)
        self.active = 0
        self.waiting = 0

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        if self.active >= self.max_active and self.waiting >= self.max_pending:
            raise ServiceBusyError(
                f"Service busy: {self.active} audits running, {self.waiting} waiting"
            )
        self.waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self.waiting -= 1
        self.active += 1
        try:
            yield
        finally:
            self.active -= 1
            self._semaphore.release()


class AuditService:
    """Create/read audit jobs with cache-first lookup and admission control."""

    @staticmethod
    def load_config(path: Optional[str]) -> ServiceConfig:
        """Загружает конфиг из YAML/JSON или использует значения по умолчанию."""
        return load_config(path)

    def __init__(
        self,
        config: ServiceConfig,
        store: Optional[Store] = None,
        *,
        analyzer_factory: AnalyzerFactory = BasicPageAnalyzer,
    ) -> None:
        self.config = config
        self.store = store if store is not None else build_store(config)
        self.jobs = JobStore(self.store, config.namespace, config.job_ttl)
        self.cache = AuditCache.from_config(self.store, config)
        self.gate = AdmissionGate(config.max_active_audits, config.max_pending_audits)
        self.analyzer_factory = analyzer_factory

    async def __aenter__(self) -> AuditService:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.store.close()

    def worker(self) -> AuditWorker:
        """Воркер, разделяющий хранилище и кэш этого сервиса."""
        return AuditWorker(self.jobs, self.cache, self.config, analyzer_factory=self.analyzer_factory)

    def _options(self, options: OptionsInput) -> AuditOptions:
        defaults = self.config.default_options
        if options is None:
            return defaults
        if isinstance(options, AuditOptions):
            return options
        try:
            given = AuditOptions.model_validate(dict(options))
            merged = defaults.model_dump()
            merged.update(given.model_dump(include=given.model_fields_set))
            return AuditOptions.model_validate(merged)
        except ValidationError as exc:
            raise AuditValidationError(f"Invalid audit options: {exc}") from exc

    def build_params(
        self,
        target_url: Any,
        audit_type: Union[JobType, str] = JobType.PAGE_AUDIT,
        options: OptionsInput = None,
    ) -> Union[PageAuditParams, SiteAuditParams]:
        """Проверяет запрос и строит типизированные параметры задачи."""
        validate_target(target_url)
        try:
            kind = JobType(audit_type)
        except ValueError as exc:
            raise AuditValidationError(f"Unknown audit type: {audit_type!r}") from exc
        opts = self._options(options)
        url = normalize_url(target_url, ignore_query=opts.ignore_query)
        if kind is JobType.SITE_AUDIT:
            return SiteAuditParams(target_url=url, options=opts)
        return PageAuditParams(target_url=url, options=opts)

    async def submit(
        self,
        target_url: Any,
        audit_type: Union[JobType, str] = JobType.PAGE_AUDIT,
        options: OptionsInput = None,
        *,
        enqueue: bool = True,
    ) -> SubmitResult:
        """Cache hit ⇒ stored artifact, no job. Miss ⇒ a new queued job.

        With ``enqueue=False`` the job is stored but kept off the pending queue,
        so only the caller can claim and run it.
        """
        params = self.build_params(target_url, audit_type, options)
        async with self.gate.slot():
            key = self.cache.key_for(params.type, params.target_url, params.options)
            hit = await self.cache.read(key)
            if hit is not None:
                logger.info("Cache hit for %s (%s)", params.target_url, params.type)
                return SubmitResult(cached=True, cached_at=hit.cached_at, results=hit.annotated())
            try:
                job_id = await self.jobs.create_job(params, enqueue=enqueue)
            except StoreUnavailableError as exc:
                logger.error("Cannot queue audit for %s: %s", params.target_url, exc)
                raise ServiceUnavailableError("Queue/cache unavailable") from exc
        return SubmitResult(job_id=job_id)

    async def _load(self, job_id: str):
        try:
            job = await self.jobs.get_job(job_id)
        except StoreUnavailableError as exc:
            raise ServiceUnavailableError("Queue/cache unavailable") from exc
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def get_status(self, job_id: str) -> Dict[str, Any]:
        job = await self._load(job_id)
        return job.summary()

    async def get_results(self, job_id: str) -> Any:
        job = await self._load(job_id)
        if job.status != JobStatus.COMPLETED:
            raise JobNotCompletedError(job_id, job.status.value)
        return job.results

    async def analyze_page(self, url: Any) -> Dict[str, Any]:
        """Аудит одной страницы в текущем процессе, с кэшем и ограничением нагрузки."""
        params = self.build_params(url, JobType.PAGE_AUDIT)
        async with self.gate.slot():
            key = self.cache.key_for(params.type, params.target_url, params.options)
            hit = await self.cache.read(key)
            if hit is not None:
                return hit.annotated()
            async with Fetcher(self.config) as fetcher:
                result = await run_page_audit(
                    self.config, fetcher, self.analyzer_factory(fetcher), params.target_url
                )
            await self.cache.write(key, result, self.cache.ttl_for(params.type), cached_at=result.analyzed_at)
        data = result.model_dump(mode="json")
        data["cached"] = False
        return data

    async def health(self) -> Dict[str, Any]:
        store_ok = await self.store.ping()
        report: Dict[str, Any] = {
            "store": store_ok,
            "active_audits": self.gate.active,
            "waiting_audits": self.gate.waiting,
        }
        if store_ok:
            try:
                report["queue_length"] = await self.jobs.queue_length()
            except StoreUnavailableError as exc:
                logger.warning("Queue length unavailable: %s", exc)
                report["store"] = False
        return report
