# File: tests/test_cli.py
"""Тесты для CLI (`seo_scout/cli.py`) с использованием click.testing.CliRunner.
Проверяют команды `submit`, `status`, `results`, `worker`, `audit`, `config`,
`--version`, а также обработку ошибок.
"""
import asyncio
import importlib
import json
import threading

import pytest
from aiohttp import web
from click.testing import CliRunner

cli_module = importlib.import_module("seo_scout.cli")
from conftest import StubAnalyzer, build_site
from seo_scout.cli import cli
from seo_scout.engine import AuditService
from seo_scout.jobs.store import MemoryStore
from seo_scout.logger import init_logging


@pytest.fixture(autouse=True)
def reset_logging(monkeypatch):
    """CLI перенастраивает логгер на поток CliRunner; возвращаем stderr."""
    monkeypatch.delenv("REDIS_URL", raising=False)
    yield
    init_logging()


@pytest.fixture()
def shared_store(monkeypatch):
    """Все вызовы CLI в тесте работают с одним in-memory хранилищем."""
    store = MemoryStore()
    analyzer = StubAnalyzer()

    def fake_build_service(cfg):
        cfg = cfg.model_copy(update={"throttle_interval": 0.0, "timeout": 2.0, "user_agents": ["TestAgent/1.0"]})
        return AuditService(cfg, store, analyzer_factory=lambda fetcher: analyzer)

    monkeypatch.setattr(cli_module, "build_service", fake_build_service)
    return store


@pytest.fixture()
def site_url(unused_tcp_port):
    """Маленький сайт в отдельном потоке: CLI сам запускает asyncio.run()."""
    app = build_site({"/": '<title>Home</title><a href="/a">A</a>', "/a": "<p>a</p>"})
    ready = threading.Event()
    state = {}

    def serve_forever():
        loop = asyncio.new_event_loop()
        runner = web.AppRunner(app)
        loop.run_until_complete(runner.setup())
        loop.run_until_complete(web.TCPSite(runner, "127.0.0.1", unused_tcp_port).start())
        state["loop"], state["runner"] = loop, runner
        ready.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=serve_forever, daemon=True)
    thread.start()
    ready.wait(5)
    yield f"http://127.0.0.1:{unused_tcp_port}"
    state["loop"].call_soon_threadsafe(state["loop"].stop)
    thread.join(5)


def invoke(*args):
    return CliRunner().invoke(cli, list(args))


def test_version_option():
    result = invoke("--version")
    assert result.exit_code == 0
    assert "SeoScout" in result.output


def test_show_config(tmp_path):
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(
        "namespace: cli-test\ndefault_options:\n  maxPages: 7\n",
        encoding="utf-8",
    )
    result = invoke("--config", str(cfg_file), "config")
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["namespace"] == "cli-test"
    assert data["default_options"]["max_pages"] == 7


def test_bad_config_is_reported(tmp_path):
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text("namespace: ''\n", encoding="utf-8")
    result = invoke("--config", str(cfg_file), "config")
    assert result.exit_code == 1
    assert "Ошибка загрузки конфигурации" in result.output


def test_submit_invalid_url(shared_store):
    result = invoke("submit", "ftp://example.com")
    assert result.exit_code == 1
    assert "Unsupported URL scheme" in result.output


def test_submit_status_worker_results(shared_store, site_url, tmp_path):
    result = invoke("submit", site_url, "--site", "--max-pages", "5", "--no-robots")
    assert result.exit_code == 0, result.output
    submitted = json.loads(result.stdout)
    assert submitted["cached"] is False
    job_id = submitted["job_id"]

    result = invoke("status", job_id)
    assert json.loads(result.stdout)["status"] == "queued"

    result = invoke("results", job_id)
    assert result.exit_code == 1
    assert "not completed" in result.output

    result = invoke("worker", "--once")
    assert result.exit_code == 0
    assert "Processed jobs: 1" in result.stdout

    result = invoke("status", job_id)
    status = json.loads(result.stdout)
    assert status["status"] == "completed"
    assert status["progress"] == 100

    result = invoke("results", job_id)
    data = json.loads(result.stdout)
    assert data["overall_score"] == 65
    assert {p["url"] for p in data["pages"]} == {site_url, f"{site_url}/a"}

    html_path = tmp_path / "report.html"
    result = invoke("results", job_id, "--html", str(html_path))
    assert result.exit_code == 0
    assert "SEO audit" in html_path.read_text(encoding="utf-8")

    # повторная отправка обслуживается кэшем
    result = invoke("submit", site_url, "--site", "--max-pages", "5", "--no-robots")
    again = json.loads(result.stdout)
    assert again["cached"] is True
    assert again["job_id"] is None


def test_status_unknown_job(shared_store):
    result = invoke("status", "missing")
    assert result.exit_code == 1
    assert "Job missing not found" in result.output


def test_audit_page_to_files(shared_store, site_url, tmp_path):
    json_path = tmp_path / "out" / "report.json"
    html_path = tmp_path / "out" / "report.html"
    result = invoke("audit", site_url, "--json", str(json_path), "--html", str(html_path), "--pretty")
    assert result.exit_code == 0, result.output
    assert f"JSON report: {json_path}" in result.stdout
    assert json.loads(json_path.read_text(encoding="utf-8"))["score"] == 90
    assert html_path.exists()
    # задача выполняется в процессе и не попадает в общую очередь
    assert asyncio.run(shared_store.length("seo-audit:queue:pending")) == 0


def test_audit_failure_exits_with_error(shared_store, unused_tcp_port_factory):
    result = invoke("audit", f"http://127.0.0.1:{unused_tcp_port_factory()}/")
    assert result.exit_code == 1
    assert "Ошибка аудита" in result.output


def test_worker_once_with_empty_queue(shared_store):
    result = invoke("worker", "--once", "--batch-size", "3")
    assert result.exit_code == 0
    assert "Processed jobs: 0" in result.stdout
