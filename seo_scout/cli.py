# === FILE: seo_scout/cli.py ===
#!/usr/bin/env python3
"""
Точка входа SeoScout для командной строки.

Команды:
  submit URL    Поставить аудит страницы или сайта в очередь (или взять из кэша)
  status ID     Показать состояние задачи
  results ID    Вывести/сохранить результаты завершённой задачи
  worker        Обрабатывать очередь (--once: один пакет)
  audit URL     submit + обработка в текущем процессе + вывод результата
  config        Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: configs/default.yaml, если есть)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (только stderr, если не указан)
  --log-format FORMAT Формат логирования

С ``redis_url: memory://`` очередь живёт только внутри одного процесса,
поэтому submit/status/worker как отдельные вызовы требуют Redis; ``audit``
работает и без него.

Пример:
  seo-scout audit https://example.com --site --max-pages 10 --json report.json --pretty
"""
from __future__ import annotations

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click

from seo_scout import __version__
from seo_scout.config import ServiceConfig, load_config
from seo_scout.engine import AuditService
from seo_scout.errors import JobNotCompletedError, JobNotFoundError, SeoScoutError
from seo_scout.jobs.models import JobStatus, JobType
from seo_scout.logger import DEFAULT_FORMAT, init_logging
from seo_scout.report.html_report import render_html
from seo_scout.report.json_report import render_json

CONTEXT_SETTINGS = dict(help_option_names=['--help'])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def build_service(cfg: ServiceConfig) -> AuditService:
    """Сервис для одной команды; тесты подменяют эту функцию."""
    return AuditService(cfg)


def audit_options(max_pages, max_depth, concurrency, no_robots, include_subdomains) -> Dict[str, Any]:
    """Только явно заданные опции; остальное берётся из default_options конфига."""
    options: Dict[str, Any] = {}
    if max_pages is not None:
        options['maxPages'] = max_pages
    if max_depth is not None:
        options['maxDepth'] = max_depth
    if concurrency is not None:
        options['concurrency'] = concurrency
    if no_robots:
        options['respectRobots'] = False
    if include_subdomains:
        options['includeSubdomains'] = True
    return options


def emit_results(results: Any, json_output: Optional[Path], html_output: Optional[Path],
                 template_dir: Optional[Path], pretty: bool) -> None:
    # без файлов результат идёт в stdout
    if not json_output and not html_output:
        click.echo(render_json(results, pretty=pretty))
        return
    if json_output:
        try:
            saved_json = render_json(results, json_output, pretty=pretty)
            click.echo(f'JSON report: {saved_json}')
        except OSError as e:
            print_error(f'Ошибка при сохранении JSON: {e}')
    if html_output:
        try:
            saved_html = render_html(results, html_output, template_dir)
            click.echo(f'HTML report: {saved_html}')
        except OSError as e:
            print_error(f'Ошибка при сохранении HTML: {e}')


def audit_command_options(func):
    """Опции аудита, общие для submit и audit."""
    decorators = [
        click.argument('url'),
        click.option('--site', 'site', is_flag=True, help='Аудит всего сайта вместо одной страницы'),
        click.option('--max-pages', type=int, default=None, help='Лимит страниц (override maxPages)'),
        click.option('--max-depth', type=int, default=None, help='Глубина обхода (override maxDepth)'),
        click.option('--concurrency', type=int, default=None, help='Размер пакета запросов'),
        click.option('--no-robots', is_flag=True, help='Не учитывать robots.txt'),
        click.option('--include-subdomains', is_flag=True, help='Считать поддомены частью сайта'),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def report_options(func):
    decorators = [
        click.option('--json', '-j', 'json_output', default=None,
                     type=click.Path(writable=True, dir_okay=False, path_type=Path),
                     help='Сохранить JSON-отчёт в файл'),
        click.option('--html', 'html_output', default=None,
                     type=click.Path(writable=True, dir_okay=False, path_type=Path),
                     help='Сохранить HTML-отчёт в файл'),
        click.option('--template', '-t', 'template_dir', default=None,
                     type=click.Path(exists=True, file_okay=False, path_type=Path),
                     help='Папка с Jinja2-шаблонами (по умолчанию встроенные)'),
        click.option('--pretty', is_flag=True, help='Преформатировать JSON-вывод (отступ 2)'),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='SeoScout, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (только stderr, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default=DEFAULT_FORMAT,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """Группа команд SeoScout CLI."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        cfg = load_config(config_path)
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('submit', context_settings=CONTEXT_SETTINGS)
@audit_command_options
@click.pass_context
def submit(ctx, url, site, max_pages, max_depth, concurrency, no_robots, include_subdomains):
    """Поставить аудит в очередь; при попадании в кэш сразу вывести результат."""
    cfg = ctx.obj['config']
    audit_type = JobType.SITE_AUDIT if site else JobType.PAGE_AUDIT
    options = audit_options(max_pages, max_depth, concurrency, no_robots, include_subdomains)

    async def _submit():
        async with build_service(cfg) as service:
            return await service.submit(url, audit_type, options)

    try:
        outcome = asyncio.run(_submit())
    except SeoScoutError as e:
        print_error(f'Ошибка постановки в очередь: {e}')
    click.echo(outcome.model_dump_json(indent=2))


@cli.command('status', context_settings=CONTEXT_SETTINGS)
@click.argument('job_id')
@click.pass_context
def status(ctx, job_id):
    """Показать состояние задачи без результатов."""
    cfg = ctx.obj['config']

    async def _status():
        async with build_service(cfg) as service:
            return await service.get_status(job_id)

    try:
        data = asyncio.run(_status())
    except JobNotFoundError as e:
        print_error(str(e))
    except SeoScoutError as e:
        print_error(f'Ошибка: {e}')
    click.echo(json.dumps(data, ensure_ascii=False, indent=2))


@cli.command('results', context_settings=CONTEXT_SETTINGS)
@click.argument('job_id')
@report_options
@click.pass_context
def results(ctx, job_id, json_output, html_output, template_dir, pretty):
    """Вывести или сохранить результаты завершённой задачи."""
    cfg = ctx.obj['config']

    async def _results():
        async with build_service(cfg) as service:
            return await service.get_results(job_id)

    try:
        payload = asyncio.run(_results())
    except (JobNotFoundError, JobNotCompletedError) as e:
        print_error(str(e))
    except SeoScoutError as e:
        print_error(f'Ошибка: {e}')
    emit_results(payload, json_output, html_output, template_dir, pretty)


@cli.command('worker', context_settings=CONTEXT_SETTINGS)
@click.option('--once', is_flag=True, help='Обработать один пакет и выйти')
@click.option('--batch-size', type=int, default=None, help='Макс. число задач в пакете')
@click.pass_context
def worker(ctx, once, batch_size):
    """Обрабатывать очередь задач до SIGINT/SIGTERM."""
    cfg = ctx.obj['config']
    if batch_size is not None:
        cfg = cfg.model_copy(update={'batch_size': batch_size})

    async def _work() -> int:
        async with build_service(cfg) as service:
            audit_worker = service.worker()
            if once:
                return await audit_worker.process_batch(cfg.batch_size)
            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, stop.set)
                except (NotImplementedError, RuntimeError):
                    pass
            return await audit_worker.run(stop)

    try:
        handled = asyncio.run(_work())
    except SeoScoutError as e:
        print_error(f'Ошибка воркера: {e}')
    click.echo(f'Processed jobs: {handled}')


@cli.command('audit', context_settings=CONTEXT_SETTINGS)
@audit_command_options
@report_options
@click.pass_context
def audit(ctx, url, site, max_pages, max_depth, concurrency, no_robots, include_subdomains,
          json_output, html_output, template_dir, pretty):
    """Выполнить аудит в текущем процессе и вывести результат."""
    cfg = ctx.obj['config']
    audit_type = JobType.SITE_AUDIT if site else JobType.PAGE_AUDIT
    options = audit_options(max_pages, max_depth, concurrency, no_robots, include_subdomains)

    async def _audit():
        async with build_service(cfg) as service:
            outcome = await service.submit(url, audit_type, options, enqueue=False)
            if outcome.cached:
                return outcome.results
            final = await service.worker().process_job(outcome.job_id)
            if final != JobStatus.COMPLETED:
                job = await service.get_status(outcome.job_id)
                raise SeoScoutError(job.get('error') or 'audit failed')
            return await service.get_results(outcome.job_id)

    try:
        payload = asyncio.run(_audit())
    except SeoScoutError as e:
        print_error(f'Ошибка аудита: {e}')
    emit_results(payload, json_output, html_output, template_dir, pretty)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
