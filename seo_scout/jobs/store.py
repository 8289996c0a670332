# File: seo_scout/jobs/store.py
"""seo_scout.jobs.store: Хранилище ключ/значение с атомарной очередью и API задач.

Два бэкенда с одним интерфейсом :class:`Store`:

* :class:`RedisStore`: ``redis.asyncio``, общий для нескольких воркеров.
* :class:`MemoryStore`: словарь в памяти процесса с TTL; для одного
  процесса и тестов.

:class:`JobStore` строит поверх них операции над задачами аудита.
"""
from __future__ import annotations

import abc
import asyncio
import json
import time
import uuid
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Tuple, Union

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from seo_scout.config import MEMORY_STORE_URL, ServiceConfig
from seo_scout.errors import StoreUnavailableError
from seo_scout.jobs.models import JOB_ADAPTER, JobStatus, PageAuditJob, SiteAuditJob, utcnow
from seo_scout.logger import get_logger

__all__ = ["Store", "RedisStore", "MemoryStore", "JobStore", "build_store"]

log = get_logger("store")

Updater = Callable[[str], str]
Job = Union[PageAuditJob, SiteAuditJob]


class Store(abc.ABC):
    """Key/value records with TTL plus FIFO queues with atomic pop."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]: ...

    @abc.abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None: ...

    @abc.abstractmethod
    async def delete(self, key: str) -> bool: ...

    @abc.abstractmethod
    async def update(self, key: str, fn: Updater) -> Optional[str]:
        """Atomically replace the value of *key* with ``fn(current)``.

        Keeps the key's TTL. Returns the new value, or None when *key* is absent.
        """

    @abc.abstractmethod
    async def push(self, queue: str, value: str) -> None: ...

    @abc.abstractmethod
    async def pop(self, queue: str) -> Optional[str]:
        """Remove and return the head of *queue*; one caller wins per element."""

    @abc.abstractmethod
    async def length(self, queue: str) -> int: ...

    @abc.abstractmethod
    async def ping(self) -> bool: ...

    async def close(self) -> None:
        return None


class RedisStore(Store):
    """Store backed by Redis: SET EX, RPUSH/LPOP, WATCH/MULTI for updates."""

    def __init__(self, client: Redis, max_update_retries: int = 10) -> None:
        self.client = client
        self.max_update_retries = max_update_retries

    @classmethod
    def from_url(cls, url: str) -> RedisStore:
        return cls(Redis.from_url(url, encoding="utf-8", decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(key)
        except RedisError as exc:
            raise StoreUnavailableError(f"GET {key}: {exc}") from exc

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            await self.client.set(key, value, ex=ttl)
        except RedisError as exc:
            raise StoreUnavailableError(f"SET {key}: {exc}") from exc

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.client.delete(key))
        except RedisError as exc:
            raise StoreUnavailableError(f"DEL {key}: {exc}") from exc

    async def update(self, key: str, fn: Updater) -> Optional[str]:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                for _ in range(self.max_update_retries):
                    try:
                        await pipe.watch(key)
                        current = await pipe.get(key)
                        if current is None:
                            await pipe.unwatch()
                            return None
                        new_value = fn(current)
                        pipe.multi()
                        pipe.set(key, new_value, keepttl=True)
                        await pipe.execute()
                        return new_value
                    except WatchError:
                        log.debug("Concurrent write to %s, retrying update", key)
                        continue
        except RedisError as exc:
            raise StoreUnavailableError(f"UPDATE {key}: {exc}") from exc
        raise StoreUnavailableError(f"UPDATE {key}: gave up after {self.max_update_retries} conflicts")

    async def push(self, queue: str, value: str) -> None:
        try:
            await self.client.rpush(queue, value)
        except RedisError as exc:
            raise StoreUnavailableError(f"RPUSH {queue}: {exc}") from exc

    async def pop(self, queue: str) -> Optional[str]:
        try:
            return await self.client.lpop(queue)
        except RedisError as exc:
            raise StoreUnavailableError(f"LPOP {queue}: {exc}") from exc

    async def length(self, queue: str) -> int:
        try:
            return int(await self.client.llen(queue))
        except RedisError as exc:
            raise StoreUnavailableError(f"LLEN {queue}: {exc}") from exc

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as exc:
            log.warning("Redis ping failed: %s", exc)
            return False

    async def close(self) -> None:
        await self.client.aclose()


class MemoryStore(Store):
    """Process-local store. Every operation holds one asyncio lock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._queues: Dict[str, Deque[str]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] is not None and entry[1] <= self._clock():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._live(key)
            return None if entry is None else entry[0]

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        async with self._lock:
            expires = self._clock() + ttl if ttl else None
            self._data[key] = (value, expires)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def update(self, key: str, fn: Updater) -> Optional[str]:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            new_value = fn(entry[0])
            self._data[key] = (new_value, entry[1])
            return new_value

    async def push(self, queue: str, value: str) -> None:
        async with self._lock:
            self._queues.setdefault(queue, deque()).append(value)

    async def pop(self, queue: str) -> Optional[str]:
        async with self._lock:
            items = self._queues.get(queue)
            return items.popleft() if items else None

    async def length(self, queue: str) -> int:
        async with self._lock:
            return len(self._queues.get(queue, ()))

    async def ping(self) -> bool:
        return True


def build_store(config: ServiceConfig) -> Store:
    """Backend selected by ``config.redis_url`` (``memory://`` or a Redis URL)."""
    if config.redis_url == MEMORY_STORE_URL:
        return MemoryStore()
    return RedisStore.from_url(config.redis_url)


class JobStore:
    """Create/read/update/dequeue operations on audit jobs."""

    def __init__(self, store: Store, namespace: str, job_ttl: Optional[int] = None) -> None:
        self.store = store
        self.namespace = namespace
        self.job_ttl = job_ttl

    @property
    def queue_key(self) -> str:
        return f"{self.namespace}:queue:pending"

    def job_key(self, job_id: str) -> str:
        return f"{self.namespace}:job:{job_id}"

    async def create_job(self, params: Any, enqueue: bool = True) -> str:
        """Persist a queued job for *params*.

        With *enqueue* the id is pushed onto the pending queue. Without it the
        caller is expected to run the job itself through :meth:`claim_job`.
        """
        job_id = uuid.uuid4().hex
        job = JOB_ADAPTER.validate_python({"id": job_id, "type": params.type, "params": params})
        await self.store.set(self.job_key(job_id), job.model_dump_json(), ttl=self.job_ttl)
        if enqueue:
            await self.store.push(self.queue_key, job_id)
            log.info("Job %s (%s) queued for %s", job_id, job.type, params.target_url)
        else:
            log.info("Job %s (%s) created for %s", job_id, job.type, params.target_url)
        return job_id

    async def get_job(self, job_id: str) -> Optional[Job]:
        raw = await self.store.get(self.job_key(job_id))
        if raw is None:
            return None
        return JOB_ADAPTER.validate_json(raw)

    async def claim_job(self, job_id: str) -> Optional[Job]:
        """Atomically move a ``queued`` job to ``processing``.

        Returns the claimed job, or None when the job is missing or is not
        ``queued`` any more (someone else took it). A record that does not
        parse raises :class:`pydantic.ValidationError`.
        """
        claimed: Optional[Job] = None

        def apply(raw: str) -> str:
            nonlocal claimed
            claimed = None  # Redis may re-run the updater after a WATCH conflict
            job = JOB_ADAPTER.validate_json(raw)
            if job.status != JobStatus.QUEUED:
                return raw
            claimed = job.model_copy(
                update={
                    "status": JobStatus.PROCESSING,
                    "progress": max(job.progress, 5),
                    "message": "Processing",
                    "updated_at": utcnow(),
                }
            )
            return claimed.model_dump_json()

        await self.store.update(self.job_key(job_id), apply)
        return claimed

    async def mark_failed(self, job_id: str, error: str) -> bool:
        """Mark a record ``failed`` at the JSON level, without model validation.

        Used for records that no longer validate as a job. Returns False when the
        record is missing or is not a JSON object.
        """
        patched = False

        def apply(raw: str) -> str:
            nonlocal patched
            patched = False
            try:
                data = json.loads(raw)
            except ValueError:
                return raw
            if not isinstance(data, dict):
                return raw
            now = utcnow().isoformat()
            data.update(status=JobStatus.FAILED.value, error=error, message="Failed", completed_at=now, updated_at=now)
            patched = True
            return json.dumps(data)

        await self.store.update(self.job_key(job_id), apply)
        return patched

    async def update_job(self, job_id: str, **changes: Any) -> bool:
        """Merge *changes* into the job and bump ``updated_at``.

        ``progress`` never decreases. Returns False when the job does not exist.
        """

        def apply(raw: str) -> str:
            job = JOB_ADAPTER.validate_json(raw)
            data = dict(job)
            data.update(changes)
            if "progress" in changes:
                data["progress"] = max(job.progress, int(changes["progress"]))
            data["updated_at"] = utcnow()
            merged = JOB_ADAPTER.validate_python(data)
            return merged.model_dump_json()

        updated = await self.store.update(self.job_key(job_id), apply)
        if updated is None:
            log.debug("update_job: job %s not found", job_id)
            return False
        return True

    async def dequeue_next(self) -> Optional[str]:
        return await self.store.pop(self.queue_key)

    async def requeue(self, job_id: str) -> None:
        await self.store.push(self.queue_key, job_id)

    async def queue_length(self) -> int:
        return await self.store.length(self.queue_key)
