# File: seo_scout/cache.py
"""
Кэш готовых результатов аудита поверх :class:`~seo_scout.jobs.store.Store`.

Ключи строит одна функция :func:`build_cache_key`:
``<namespace>:<artifact-type>:<normalizedTarget>[:<fingerprint>]``.
Ошибки хранилища наружу не выходят: чтение превращается в промах,
запись логируется и отбрасывается.
"""
from __future__ import annotations

import hashlib
import json
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel

from seo_scout.config import AuditOptions, ServiceConfig
from seo_scout.errors import CacheError
from seo_scout.jobs.models import JobType, utcnow
from seo_scout.jobs.store import Store
from seo_scout.logger import get_logger
from seo_scout.utils import normalize_url

__all__ = ["AuditCache", "CachedArtifact", "build_cache_key", "options_fingerprint"]

log = get_logger("cache")


def options_fingerprint(options: AuditOptions) -> str:
    """First 16 hex chars of SHA-256 over the sorted-key JSON of *options*."""
    canonical = json.dumps(options.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def build_cache_key(
    namespace: str,
    artifact_type: str,
    normalized_target: str,
    fingerprint: Optional[str] = None,
) -> str:
    parts = [namespace, artifact_type, normalized_target]
    if fingerprint:
        parts.append(fingerprint)
    return ":".join(parts)


class CachedArtifact(BaseModel):
    """Результат, прочитанный из кэша."""

    key: str
    payload: Dict[str, Any]
    cached_at: datetime

    def annotated(self) -> Dict[str, Any]:
        """Payload with the ``cached`` marker and original write time injected."""
        data = dict(self.payload)
        data["cached"] = True
        data["cachedAt"] = self.cached_at.isoformat()
        return data


class AuditCache:
    """Cache-first lookup/write wrapper with a TTL per artifact type."""

    def __init__(self, store: Store, namespace: str, page_ttl: int, site_ttl: int) -> None:
        self.store = store
        self.namespace = namespace
        self.ttls = {JobType.PAGE_AUDIT.value: page_ttl, JobType.SITE_AUDIT.value: site_ttl}

    @classmethod
    def from_config(cls, store: Store, config: ServiceConfig) -> AuditCache:
        return cls(store, config.namespace, config.page_cache_ttl, config.site_cache_ttl)

    def key_for(self, artifact_type: str, target: str, options: Optional[AuditOptions] = None) -> str:
        artifact_type = JobType(artifact_type).value
        ignore_query = options.ignore_query if options is not None else True
        normalized = normalize_url(target, ignore_query=ignore_query)
        # одностраничный аудит от параметров обхода не зависит
        fingerprint = None
        if artifact_type == JobType.SITE_AUDIT.value:
            fingerprint = options_fingerprint(options or AuditOptions())
        return build_cache_key(self.namespace, artifact_type, normalized, fingerprint)

    def ttl_for(self, artifact_type: str) -> int:
        return self.ttls[JobType(artifact_type).value]

    async def read(self, key: str) -> Optional[CachedArtifact]:
        try:
            raw = await self.store.get(key)
            if raw is None:
                return None
            envelope = json.loads(raw)
            if not isinstance(envelope, dict) or "payload" not in envelope:
                raise CacheError(f"Malformed cache entry under {key}")
            return CachedArtifact(key=key, payload=envelope["payload"], cached_at=envelope["cachedAt"])
        except Exception as exc:
            log.warning("Cache read failed for %s, treating as miss: %s", key, exc)
            return None

    async def write(
        self,
        key: str,
        payload: Any,
        ttl: int,
        cached_at: Optional[datetime] = None,
    ) -> bool:
        """Store *payload* under *key*. Returns False on failure instead of raising."""
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")
        envelope = {"payload": payload, "cachedAt": (cached_at or utcnow()).isoformat()}
        try:
            await self.store.set(key, json.dumps(envelope, ensure_ascii=False), ttl=ttl)
        except Exception as exc:
            log.error("Cache write failed for %s: %s", key, exc)
            return False
        log.debug("Cached %s for %d s", key, ttl)
        return True

    async def invalidate(self, key: str) -> bool:
        try:
            return await self.store.delete(key)
        except Exception as exc:
            log.warning("Cache invalidate failed for %s: %s", key, exc)
            return False
