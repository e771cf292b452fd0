# === FILE: chapter_scout/cli.py ===
#!/usr/bin/env python3
"""
Command line entry point of ChapterScout.

Commands:
  scan URL            Scrape one or more chapters starting at URL
  config              Show the effective configuration
  patterns export     Print the loaded chapter URL rules
  patterns test       Show how a URL maps to another chapter
  patterns presets    List (or print) the built-in site rules

Global options:
  --config PATH       YAML/JSON config (default: configs/default.yaml when present)
  --log-level LEVEL   Logging level (DEBUG, INFO, ...)
  --log-file PATH     Log file (stderr only when omitted)
  --log-format FORMAT Logging format string
  --version, -v       Show the ChapterScout version

Example:
  chapter-scout scan https://example.org/manga/title/chapter-1 --chapters 3 --interval 20 --pretty
"""
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import click

from chapter_scout import __version__
from chapter_scout.aggregator import ScrapeReport
from chapter_scout.config import ScoutConfig, load_config, min_fetch_interval
from chapter_scout.crawler.models import RunOutcome
from chapter_scout.engine import Engine
from chapter_scout.errors import ScrapeConfigError
from chapter_scout.events import Event, FinishedEvent, ImageEvent, ProgressEvent
from chapter_scout.logger import init_logging
from chapter_scout.report.json_report import render_json
from chapter_scout.site_presets import (
    PREDEFINED_WEBSITE_PATTERNS,
    auto_detect_url_pattern,
    detect_website_pattern,
    preset_to_env_format,
    presets_by_id,
)

CONTEXT_SETTINGS = dict(help_option_names=["--help"])
DEFAULT_CONFIG = Path("configs/default.yaml")


def print_error(message: str, code: int = 1):
    click.secho(message, fg='red', err=True)
    sys.exit(code)


def print_event(event: Event) -> None:
    """Progress line on stderr for one run event."""
    if isinstance(event, ImageEvent):
        click.echo(f'  + {event.image.url}', err=True)
    elif isinstance(event, ProgressEvent):
        if event.chapter_results is not None and event.current_url is None:
            ok = ', '.join(map(str, event.successful_chapters or ())) or '-'
            failed = ', '.join(map(str, event.failed_chapters or ())) or '-'
            click.echo(f'[{event.stage.value}] chapters ok: {ok}; failed: {failed}', err=True)
        elif event.current_url and event.stage.value != 'scanning':
            click.echo(f'[{event.stage.value}] {event.current_url}', err=True)
    elif isinstance(event, FinishedEvent):
        colour = 'green' if event.outcome is RunOutcome.COMPLETED else 'yellow'
        suffix = f' ({event.error})' if event.error else ''
        click.secho(f'[{event.outcome.value}] {event.found} images{suffix}', fg=colour, err=True)


def run_scan(engine: Engine, url: str, **kwargs) -> ScrapeReport:
    """Seam for tests: run the scrape through the engine."""
    return engine.start_scan(url, **kwargs)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='ChapterScout, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Path to a YAML or JSON config file.'
)
@click.option(
    '--log-level', 'log_level',
    default='WARNING', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Logging level'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Log file (stderr only when omitted)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(name)s %(message)s',
    show_default=True,
    help='Logging format string'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """ChapterScout: find the images of manga/comic chapters."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        if config_path is not None:
            cfg = load_config(config_path)
        elif DEFAULT_CONFIG.is_file():
            cfg = load_config(DEFAULT_CONFIG)
        else:
            cfg = ScoutConfig()
    except Exception as e:
        print_error(f'Failed to load configuration: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('scan', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.option('--type', '-t', 'file_types', multiple=True, help='Image type to keep (repeatable)')
@click.option('--chapters', '-n', 'chapters', type=click.IntRange(min=1), default=None, help='Number of chapters')
@click.option('--threshold', '-k', 'threshold', type=click.IntRange(1, 3), default=None,
              help='Empty batches tolerated in a row')
@click.option('--validate/--load-test', 'validate', default=None, help='HEAD-validate candidates instead of loading them')
@click.option('--interval', '-i', 'interval', type=click.FloatRange(min=0), default=None,
              help='Wait between chapters (seconds)')
@click.option('--filter', '-f', 'filters', multiple=True, help='Drop images whose URL matches (repeatable)')
@click.option(
    '--json', '-j', 'json_output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Save the JSON report to a file'
)
@click.option('--pretty', is_flag=True, help='Indent the JSON output (2 spaces)')
@click.option('--quiet', '-q', is_flag=True, help='No progress on stderr')
@click.option('--scan-timeout', 'scan_timeout', type=float, default=None, help='Cancel the run after SEC seconds')
@click.pass_context
def scan(ctx, url, file_types, chapters, threshold, validate, interval, filters, json_output, pretty, quiet,
         scan_timeout):
    """Scrape chapters starting at URL and print the report."""
    cfg: ScoutConfig = ctx.obj['config']
    engine = Engine(cfg)

    chapter_count = chapters or cfg.scrape.chapter_count
    fetch_interval = cfg.scrape.fetch_interval if interval is None else interval
    minimum = min_fetch_interval(chapter_count)
    if chapter_count > 1 and fetch_interval < minimum:
        click.secho(f'Interval raised to {minimum:g}s for {chapter_count} chapters', fg='yellow', err=True)
        fetch_interval = minimum

    try:
        options = engine.build_options(
            filters,
            chapter_count=chapter_count,
            consecutive_miss_threshold=threshold,
            validate_images=validate,
            fetch_interval=fetch_interval,
        )
    except Exception as e:
        print_error(f'Invalid options: {e}')

    try:
        report = run_scan(
            engine,
            url,
            file_types=list(file_types) or None,
            options=options,
            timeout=scan_timeout,
            on_event=None if quiet else print_event,
            cancel_on_sigint=True,
        )
    except ScrapeConfigError as e:
        print_error(f'Invalid scrape request: {e}', code=2)
    except Exception as e:
        print_error(f'Scrape failed: {e}')

    if json_output:
        try:
            saved = render_json(report, json_output)
            click.echo(f'JSON report: {saved}')
        except OSError as e:
            print_error(f'Failed to save JSON: {e}')
    else:
        click.echo(report.json(pretty=pretty))

    if report.outcome is RunOutcome.CANCELLED:
        sys.exit(130)
    if report.outcome is RunOutcome.FAILED:
        sys.exit(1)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Show the effective configuration as JSON."""
    cfg: ScoutConfig = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


@cli.group('patterns', context_settings=CONTEXT_SETTINGS)
def patterns():
    """Chapter URL rules."""


@patterns.command('export', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def export_patterns(ctx):
    """Print the rules from the environment and the patterns file."""
    manager = Engine(ctx.obj['config']).build_patterns()
    if not len(manager):
        click.secho('No URL patterns configured', fg='yellow', err=True)
        return
    click.echo(manager.export_to_env_format())


@patterns.command('test', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.argument('chapter', type=click.IntRange(min=0))
@click.pass_context
def test_pattern(ctx, url, chapter):
    """Show the URL generated for CHAPTER from URL."""
    manager = Engine(ctx.obj['config']).build_patterns(url)
    debug = manager.debug_pattern_generation(url, chapter)
    preset = detect_website_pattern(url)
    detected = auto_detect_url_pattern(url)
    data = asdict(debug)
    data['preset'] = preset.id if preset else None
    data['auto_detected_pattern'] = detected.url_pattern if detected else None
    click.echo(json.dumps(data, ensure_ascii=False, indent=2))
    if debug.generated_url is None:
        sys.exit(1)


@patterns.command('presets', context_settings=CONTEXT_SETTINGS)
@click.option('--id', 'preset_id', default=None, help='Print the rule block of one preset')
def list_presets(preset_id: Optional[str]):
    """List the built-in site rules."""
    if preset_id:
        preset = presets_by_id().get(preset_id)
        if preset is None:
            print_error(f'Unknown preset: {preset_id}')
        click.echo(preset_to_env_format(preset), nl=False)
        return
    for preset in PREDEFINED_WEBSITE_PATTERNS:
        marker = '' if preset.generates_urls else ' (discovery only)'
        click.echo(f'{preset.id:<16} {preset.domain:<20} {preset.description}{marker}')


if __name__ == "__main__":
    cli()
