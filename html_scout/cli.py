# === FILE: html_scout/cli.py ===
#!/usr/bin/env python3
"""
Точка входа для запуска аудита HTMLScout через командную строку.

Команды:
  audit [PATH]  Проверить каталог (или один документ) и вывести/сохранить отчёты
  config        Показать итоговую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: .htmlscout.yml, если есть)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stdout, если не указан)
  --log-format FORMAT Формат логирования

Команда audit опции:
  --conc              Проверять документы параллельно (экспериментально)
  --skip-external     Не проверять внешние ссылки
  --no-cache          Не читать и не сохранять кэш ссылок
  --json PATH         Сохранить JSON-отчёт в файл
  --html PATH         Сохранить HTML-отчёт в файл
  --template DIR      Папка с Jinja2-шаблонами

Пример:
  html-scout audit public/ --json report.json
"""
import sys
from pathlib import Path

import click

from html_scout import __version__
from html_scout.aggregator import report_from_audit
from html_scout.config import load_config
from html_scout.engine import HTMLAudit
from html_scout.logger import init_logging
from html_scout.output import AuditAborted
from html_scout.report.html_report import render_html
from html_scout.report.json_report import render_json

CONTEXT_SETTINGS = dict(help_option_names=["--help"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='HTMLScout, version %(version)s')
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
    type=click.Path(dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stdout, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(message)s',
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """Группа команд HTMLScout CLI."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path


@cli.command('audit', context_settings=CONTEXT_SETTINGS)
@click.argument('path', required=False, type=click.Path(path_type=Path))
@click.option('--conc', is_flag=True, help='Проверять документы параллельно (экспериментально)')
@click.option('--skip-external', is_flag=True, help='Не проверять внешние ссылки')
@click.option('--no-cache', is_flag=True, help='Не использовать кэш ссылок')
@click.option(
    '--json', '-j', 'json_output',
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help='Сохранить JSON-отчёт в файл'
)
@click.option(
    '--html', '-h', 'html_output',
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help='Сохранить HTML-отчёт в файл'
)
@click.option(
    '--template', '-t', 'template_dir',
    default=None,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help='Папка с Jinja2-шаблонами (по умолчанию встроенный шаблон)'
)
@click.pass_context
def audit(ctx, path, conc, skip_external, no_cache, json_output, html_output, template_dir):
    """Проверить документы и сгенерировать отчёты."""
    overrides = {}
    if path is not None:
        if path.is_file():
            overrides['directory_path'] = path.parent
            overrides['file_path'] = path.name
        else:
            overrides['directory_path'] = path
    if conc:
        overrides['test_files_concurrently'] = True
    if skip_external:
        overrides['check_external'] = False
    if no_cache:
        overrides['enable_cache'] = False

    try:
        options = load_config(ctx.obj['config_path'], **overrides)
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')

    runner = HTMLAudit(options)
    try:
        runner.start_audit()
    except AuditAborted as e:
        print_error(str(e))

    report = report_from_audit(runner)

    if json_output:
        try:
            saved_json = render_json(report, json_output)
            click.echo(f'JSON report: {saved_json}')
        except OSError as e:
            print_error(f'Ошибка при сохранении JSON: {e}')

    if html_output:
        try:
            saved_html = render_html(report, template_dir, html_output)
            click.echo(f'HTML report: {saved_html}')
        except OSError as e:
            print_error(f'Ошибка при сохранении HTML: {e}')

    if report.passed:
        click.secho(
            f'✔✔✔ passed in {report.duration:.2f}s, tested {report.documents} documents',
            fg='green',
        )
        return
    click.secho(
        f'✘✘✘ failed in {report.duration:.2f}s\n'
        f'{report.errors} errors in {report.documents} documents',
        fg='red',
    )
    ctx.exit(1)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    try:
        options = load_config(ctx.obj['config_path'])
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    click.echo(options.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
