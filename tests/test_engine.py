# File: tests/test_engine.py
"""AuditService: отправка задач, кэш, статусы и ограничение нагрузки."""
from __future__ import annotations

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from conftest import build_site, wait_for_status
from seo_scout.engine import AdmissionGate, AuditService
from seo_scout.errors import (
    AuditValidationError,
    FetchError,
    JobNotCompletedError,
    JobNotFoundError,
    ServiceBusyError,
    ServiceUnavailableError,
    StoreUnavailableError,
)
from seo_scout.jobs.models import JobStatus, SiteAuditResult

SITE = {
    "/": '<title>Home</title><a href="/a">A</a>',
    "/a": "<p>a</p>",
}


@pytest.mark.asyncio()
async def test_submit_queues_job(audit_service):
    submitted = await audit_service.submit("https://example.com/page?utm=1#frag")
    assert submitted.cached is False
    assert submitted.job_id

    status = await audit_service.get_status(submitted.job_id)
    assert status["status"] == "queued"
    assert status["progress"] == 0
    assert status["has_results"] is False
    assert status["params"]["target_url"] == "https://example.com/page"
    assert await audit_service.jobs.queue_length() == 1


@pytest.mark.asyncio()
async def test_submit_without_enqueue_runs_inline(serve, audit_service, stub_analyzer):
    base = await serve(build_site(SITE))
    submitted = await audit_service.submit(base, enqueue=False)
    assert await audit_service.jobs.queue_length() == 0
    assert (await audit_service.get_status(submitted.job_id))["status"] == "queued"

    # воркер очереди её не видит, а прямой запуск выполняет
    assert await audit_service.worker().process_batch() == 0
    assert await audit_service.worker().process_job(submitted.job_id) == JobStatus.COMPLETED
    assert len(stub_analyzer.calls) == 1


@pytest.mark.asyncio()
@pytest.mark.parametrize("target", [None, "", "   ", "ftp://example.com", "not a url", 42])
async def test_invalid_target_creates_no_job(audit_service, target):
    with pytest.raises(AuditValidationError):
        await audit_service.submit(target)
    assert await audit_service.jobs.queue_length() == 0


@pytest.mark.asyncio()
async def test_invalid_type_and_options(audit_service):
    with pytest.raises(AuditValidationError):
        await audit_service.submit("https://example.com", "seo_magic")
    with pytest.raises(AuditValidationError):
        await audit_service.submit("https://example.com", "site_audit", {"maxPages": 0})
    with pytest.raises(AuditValidationError):
        await audit_service.submit("https://example.com", "site_audit", {"unknownOption": 1})


def test_options_merge_over_defaults(service_config, memory_store):
    config = service_config.model_copy(
        update={"default_options": service_config.default_options.model_copy(update={"max_depth": 1})}
    )
    service = AuditService(config, memory_store)

    params = service.build_params("https://example.com", "site_audit", {"maxPages": 7})
    assert params.options.max_pages == 7
    assert params.options.max_depth == 1

    params = service.build_params("https://example.com", "site_audit", {"max_depth": 4, "respectRobots": False})
    assert params.options.max_depth == 4
    assert params.options.respect_robots is False
    assert params.options.max_pages == 20


@pytest.mark.asyncio()
async def test_second_submit_served_from_cache(serve, audit_service, stub_analyzer):
    """Повторный запрос того же сайта отдаётся из кэша без новой задачи."""
    base = await serve(build_site(SITE))
    options = {"maxPages": 5}

    first = await audit_service.submit(base, "site_audit", options)
    await audit_service.worker().process_batch()
    done = await wait_for_status(audit_service, first.job_id, "completed")
    assert done["status"] == "completed"
    calls_after_first = len(stub_analyzer.calls)

    second = await audit_service.submit(f"{base}/", "site_audit", options)
    assert second.cached is True
    assert second.job_id is None
    assert second.results["cached"] is True
    assert second.results["overall_score"] == 65
    job = await audit_service.jobs.get_job(first.job_id)
    assert second.cached_at == job.completed_at
    assert await audit_service.jobs.queue_length() == 0
    assert len(stub_analyzer.calls) == calls_after_first

    # другие параметры обхода дают другой ключ кэша
    third = await audit_service.submit(base, "site_audit", {"maxPages": 6})
    assert third.cached is False


@pytest.mark.asyncio()
async def test_results_lifecycle(serve, audit_service):
    base = await serve(build_site(SITE))
    submitted = await audit_service.submit(base, "site_audit")

    with pytest.raises(JobNotCompletedError):
        await audit_service.get_results(submitted.job_id)

    await audit_service.worker().process_batch()
    results = await audit_service.get_results(submitted.job_id)
    assert isinstance(results, SiteAuditResult)
    assert {p.url for p in results.pages} == {base, f"{base}/a"}
    assert results.overall_score == 65


@pytest.mark.asyncio()
async def test_failed_job_reports_error(audit_service, unused_tcp_port):
    submitted = await audit_service.submit(f"http://127.0.0.1:{unused_tcp_port}/")
    await audit_service.worker().process_batch()

    status = await audit_service.get_status(submitted.job_id)
    assert status["status"] == JobStatus.FAILED.value
    assert status["error"]
    assert status["completed_at"] is not None
    with pytest.raises(JobNotCompletedError):
        await audit_service.get_results(submitted.job_id)


@pytest.mark.asyncio()
async def test_unknown_job(audit_service):
    with pytest.raises(JobNotFoundError):
        await audit_service.get_status("nope")
    with pytest.raises(JobNotFoundError):
        await audit_service.get_results("nope")


@pytest.mark.asyncio()
async def test_store_outage_maps_to_service_unavailable(audit_service, monkeypatch):
    monkeypatch.setattr(audit_service.store, "push", AsyncMock(side_effect=StoreUnavailableError("down")))
    with pytest.raises(ServiceUnavailableError):
        await audit_service.submit("https://example.com")

    monkeypatch.setattr(audit_service.store, "get", AsyncMock(side_effect=StoreUnavailableError("down")))
    with pytest.raises(ServiceUnavailableError):
        await audit_service.get_status("anything")


@pytest.mark.asyncio()
async def test_analyze_page_is_cache_first(serve, audit_service, stub_analyzer):
    base = await serve(build_site(SITE))

    fresh = await audit_service.analyze_page(base)
    assert fresh["cached"] is False
    assert fresh["score"] == 90
    assert fresh["http_status"] == 200

    again = await audit_service.analyze_page(f"{base}/?utm_source=x")
    assert again["cached"] is True
    assert datetime.fromisoformat(again["cachedAt"]) == datetime.fromisoformat(fresh["analyzed_at"])
    assert len(stub_analyzer.calls) == 1

    # одностраничная задача тоже находит этот результат
    submitted = await audit_service.submit(base)
    assert submitted.cached is True


@pytest.mark.asyncio()
async def test_analyze_page_fetch_error_propagates(audit_service, unused_tcp_port):
    with pytest.raises(FetchError):
        await audit_service.analyze_page(f"http://127.0.0.1:{unused_tcp_port}/")


@pytest.mark.asyncio()
async def test_health(audit_service):
    await audit_service.submit("https://example.com")
    report = await audit_service.health()
    assert report == {"store": True, "active_audits": 0, "waiting_audits": 0, "queue_length": 1}


@pytest.mark.asyncio()
async def test_context_manager_closes_store(service_config, memory_store, monkeypatch):
    close = AsyncMock()
    monkeypatch.setattr(memory_store, "close", close)
    async with AuditService(service_config, memory_store):
        pass
    close.assert_awaited_once()


# --------------------------------------------------------------------------- #
#                               Admission gate                                #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_gate_rejects_when_backlog_full():
    gate = AdmissionGate(max_active=1, max_pending=1)
    release = asyncio.Event()
    entered = []

    async def hold(tag):
        async with gate.slot():
            entered.append(tag)
            await release.wait()

    first = asyncio.create_task(hold("first"))
    await asyncio.sleep(0)
    second = asyncio.create_task(hold("second"))
    await asyncio.sleep(0)
    assert gate.active == 1
    assert gate.waiting == 1

    with pytest.raises(ServiceBusyError):
        async with gate.slot():
            pass

    release.set()
    await asyncio.gather(first, second)
    assert entered == ["first", "second"]
    assert gate.active == 0
    assert gate.waiting == 0


@pytest.mark.asyncio()
async def test_gate_waiters_get_slots_in_turn():
    gate = AdmissionGate(max_active=2, max_pending=10)
    peak = 0

    async def work():
        nonlocal peak
        async with gate.slot():
            peak = max(peak, gate.active)
            await asyncio.sleep(0.01)

    await asyncio.gather(*(work() for _ in range(8)))
    assert peak == 2


@pytest.mark.asyncio()
async def test_busy_service_rejects_submit(service_config, memory_store):
    config = service_config.model_copy(update={"max_active_audits": 1, "max_pending_audits": 0})
    service = AuditService(config, memory_store)
    release = asyncio.Event()

    async def occupy():
        async with service.gate.slot():
            await release.wait()

    holder = asyncio.create_task(occupy())
    await asyncio.sleep(0)
    with pytest.raises(ServiceBusyError):
        await service.submit("https://example.com")
    release.set()
    await holder
    assert (await service.submit("https://example.com")).job_id
