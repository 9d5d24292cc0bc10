"""Main CLI entry point for metarr."""

import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any

import click

from metarr import __version__
from metarr.batch import BatchOrchestrator
from metarr.config import PURGE_CHOICES, RENAME_STYLES, Settings, get_settings
from metarr.exceptions import ConfigError
from metarr.log_setup import setup_logging
from metarr.models import AccelType, BatchResult

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIG = 2

PATH = click.Path(path_type=Path)


def _overrides(options: dict[str, Any]) -> dict[str, Any]:
    """Keep only the options given on the command line.

    Anything left out falls through to the environment and the defaults.
    """
    overrides: dict[str, Any] = {}
    for name, value in options.items():
        if value is None or value is False or value == ():
            continue
        overrides[name] = list(value) if isinstance(value, tuple) else value
    return overrides


def _log_dir(settings: Settings) -> Path | None:
    """The log lives beside the sidecars, or the videos without them."""
    if settings.meta_dirs:
        return settings.meta_dirs[0]
    if settings.meta_files:
        return settings.meta_files[0].parent
    if settings.video_dirs:
        return settings.video_dirs[0]
    if settings.video_files:
        return settings.video_files[0].parent
    return None


def _summarize(results: list[BatchResult]) -> int:
    failed_files = sum(len(result.failures) for result in results)
    failed_batches = [result for result in results if result.failed]
    processed = sum(len(result.results) for result in results)

    for result in failed_batches:
        reason = result.error or "every file failed"
        click.echo(f"❌ Batch {result.batch_id} failed: {reason}", err=True)
    for result in results:
        for failure in result.failures:
            click.echo(f"❌ {failure}", err=True)

    if failed_files or failed_batches:
        click.echo(
            f"⚠️ Finished with {failed_files} failed files and "
            f"{len(failed_batches)} failed batches ({processed} files handled)"
        )
        return EXIT_FAILURES
    click.echo(f"✅ Processed {processed} files in {len(results)} batches")
    return EXIT_OK


@click.command()
@click.version_option(version=__version__)
# Inputs
@click.option("--video-dir", "video_dirs", multiple=True, type=PATH)
@click.option("--json-dir", "--meta-dir", "meta_dirs", multiple=True, type=PATH)
@click.option("--video-file", "video_files", multiple=True, type=PATH)
@click.option("--meta-file", "--json-file", "meta_files", multiple=True, type=PATH)
@click.option(
    "--input-exts",
    "input_exts",
    multiple=True,
    help="Only process videos with these extensions",
)
@click.option("--prefix", "filter_prefixes", multiple=True)
@click.option("--contains", "filter_contains", multiple=True)
@click.option("--omit", "filter_omit", multiple=True)
# Workers
@click.option("--concurrency", type=int, help="Number of worker threads")
@click.option("--max-cpu", type=float, help="Pause workers above this CPU %")
@click.option("--min-mem-mb", "min_free_mem_mb", type=int)
# Transcoding
@click.option(
    "--gpu", "use_gpu", type=click.Choice([accel.value for accel in AccelType])
)
@click.option("--transcode-video-codec")
@click.option("--transcode-audio-codec")
@click.option("--transcode-quality")
@click.option("--transcode-device-dir")
@click.option("--transcode-video-filter")
@click.option("--extra-ffmpeg-args")
@click.option("--output-filetype", "output_ext")
@click.option("--output-dir", type=PATH)
@click.option("--ffprobe-timeout", type=float)
# Filename operations
@click.option("--metadata-filename-prefix", multiple=True)
@click.option("--filename-date-tag", help="location:format, e.g. prefix:Ymd")
@click.option("--filename-delete-date-tag")
@click.option("--filename-set")
@click.option("--filename-prefix", multiple=True)
@click.option("--filename-append", multiple=True)
@click.option("--filename-replace", multiple=True, help="find:replacement")
@click.option("--filename-replace-prefix", multiple=True)
@click.option("--filename-replace-suffix", multiple=True)
@click.option("--rename-style", type=click.Choice(RENAME_STYLES))
# Metadata operations
@click.option("--meta-add-field", multiple=True, help="field:value")
@click.option("--meta-trim-prefix", multiple=True, help="field:prefix[:replacement]")
@click.option("--meta-trim-suffix", multiple=True, help="field:suffix[:replacement]")
@click.option("--meta-append", multiple=True, help="field:suffix")
@click.option("--meta-prefix", multiple=True, help="field:prefix")
@click.option("--meta-replace", multiple=True, help="field:find:replacement")
@click.option("--meta-copy-to", multiple=True, help="field:destination")
@click.option("--meta-paste-from", multiple=True, help="field:origin")
@click.option("--meta-date-tag", multiple=True, help="field:location:format")
@click.option("--meta-delete-date-tag", multiple=True)
@click.option("--meta-override", multiple=True, help="category:op:value")
@click.option("--meta-overwrite", is_flag=True)
@click.option("--meta-preserve", is_flag=True)
@click.option("--meta-purge", type=click.Choice(PURGE_CHOICES))
@click.option("--desc-date-prefix", is_flag=True)
@click.option("--desc-date-suffix", is_flag=True)
# File handling
@click.option("--no-file-overwrite", is_flag=True)
@click.option("--skip-videos", is_flag=True)
@click.option("--strip-thumbnails", is_flag=True)
@click.option("--force-write-thumbnails", is_flag=True)
# Scraping
@click.option("--cookie-path", type=PATH)
@click.option("--cache-dir", type=PATH)
@click.option("--debug-level", type=int)
def cli(**options: Any) -> None:
    """Metarr.

    Pairs videos with their JSON or NFO sidecars, completes and edits the
    sidecar metadata, and writes it into the video files with FFmpeg.
    """
    try:
        settings = get_settings(**_overrides(options))
    except ConfigError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(EXIT_CONFIG)

    if not any(
        (
            settings.video_dirs,
            settings.video_files,
            settings.meta_dirs,
            settings.meta_files,
        )
    ):
        click.echo("❌ No videos or sidecars given", err=True)
        sys.exit(EXIT_CONFIG)

    setup_logging(settings.debug_level, _log_dir(settings))
    click.echo("🚀 Starting Metarr...")
    click.echo(f"🔧 Workers: {settings.concurrency}")
    if settings.output_ext:
        click.echo(f"🎞️ Output type: {settings.output_ext}")

    cancel_event = threading.Event()

    def signal_handler(signum: int, frame: object) -> None:
        logger.info("Received shutdown signal")
        cancel_event.set()
        click.echo("👋 Stopping after the current files...")

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        orchestrator = BatchOrchestrator(settings, cancel_event)
    except ConfigError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(EXIT_CONFIG)

    try:
        results = orchestrator.run()
    except ConfigError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(EXIT_CONFIG)
    finally:
        orchestrator.close()

    exit_code = _summarize(results)
    if cancel_event.is_set():
        click.echo("👋 Stopped before all files were processed")
        exit_code = EXIT_FAILURES
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
