"""Command line entry point."""

import shutil
from pathlib import Path
from typing import Optional

import click
from mutagen import File, MutagenError
from rich.markup import escape
from rich.table import Table

from . import __version__, log
from .cover_art import CoverArtResolver
from .job import FileJob, output_path_for
from .log import console
from .models import Outcome, SeenDigestSet
from .scheduler import BatchScheduler, discover_files, get_optimal_workers
from .settings import Settings, load_settings
from .titles import make_cleaner
from .transcoder import Transcoder


def check_tools(settings: Settings):
    """Fail fast if ffmpeg isn't available; a missing ffprobe only loses art detection."""
    if shutil.which(settings.ffmpeg) is None:
        raise click.ClickException(f"'{settings.ffmpeg}' not found in PATH. Install ffmpeg first.")
    if shutil.which(settings.ffprobe) is None:
        log.warning(f"'{settings.ffprobe}' not found in PATH, embedded covers won't be detected")


def build_processor(settings: Settings):
    """Wire one run's shared collaborators into a per-file process function."""
    seen = SeenDigestSet()
    resolver = CoverArtResolver(
        timeout=settings.search_timeout,
        query_suffix=settings.query_suffix,
        ffprobe=settings.ffprobe,
        probe_timeout=settings.probe_timeout,
    )
    transcoder = Transcoder(
        ffmpeg=settings.ffmpeg,
        bitrate=settings.bitrate,
        audio_codec=settings.audio_codec,
        container=settings.container,
        loudness=settings.loudness,
    )
    normalize = make_cleaner(settings.strip_words)

    def process(input_file, progress):
        job = FileJob(input_file, settings.output_dir, seen, resolver, transcoder,
                      extension=settings.extension, normalize=normalize, progress=progress)
        return job.run()

    return process


def _apply_overrides(settings: Settings, input_dir, output_dir, batch_size, workers) -> Settings:
    if input_dir:
        settings.input_dir = Path(input_dir)
    if output_dir:
        settings.output_dir = Path(output_dir)
    if batch_size is not None:
        settings.batch_size = batch_size
    if workers is not None:
        settings.workers = workers
    return settings


@click.group(invoke_without_command=True, context_settings={'help_option_names': ['-h', '--help']})
@click.version_option(__version__, prog_name='tunepress')
@click.option('--debug', is_flag=True, help='Show debug output')
@click.option('--config', '-c', type=click.Path(dir_okay=False), default=None,
              help='Settings file (default: ~/tunepress.yaml or ./tunepress.yaml)')
@click.pass_context
def cli(ctx, debug, config):
    """
    Convert a folder of audio into loudness-matched M4A files with cover art.

    Examples:
        tunepress convert                 # ./Music -> ./Converted
        tunepress convert ~/Downloads -o ~/Music/m4a
        tunepress convert -b 20 -w 4      # batches of 20, 4 at a time
        tunepress info ~/Downloads        # preview titles and targets
    """
    log.set_debug(debug)
    ctx.obj = {'settings': load_settings(Path(config) if config else None)}

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command(context_settings={'help_option_names': ['-h', '--help']})
@click.argument('input_dir', required=False, type=click.Path(exists=True, file_okay=False))
@click.option('--output', '-o', 'output_dir', type=click.Path(file_okay=False), default=None,
              help='Output directory (default: ./Converted)')
@click.option('--batch-size', '-b', type=click.IntRange(min=1), default=None,
              help='Files per batch (default: all files in one batch)')
@click.option('--workers', '-w', type=click.IntRange(min=1), default=None,
              help=f'Concurrent conversions per batch (default: {get_optimal_workers()})')
@click.pass_context
def convert(ctx, input_dir, output_dir, batch_size, workers):
    """Convert every file in INPUT_DIR."""
    settings = _apply_overrides(ctx.obj['settings'], input_dir, output_dir, batch_size, workers)

    if not settings.input_dir.is_dir():
        raise click.ClickException(f"Input directory not found: {settings.input_dir}")
    check_tools(settings)
    settings.output_dir.mkdir(parents=True, exist_ok=True)

    files = discover_files(settings.input_dir)
    if not files:
        log.warning(f"No files found in {settings.input_dir}")
        return

    scheduler = BatchScheduler(build_processor(settings), batch_size=settings.batch_size,
                               workers=settings.workers)
    results = scheduler.run(files)

    failed = [result for result in results if result.outcome is Outcome.FAILED]
    if failed:
        log.error(f"{len(failed)} file(s) failed to convert")


def _read_tags(path: Path) -> Optional[dict]:
    """Title, artist and cover presence read back from a converted file."""
    try:
        audio = File(path)
    except MutagenError as e:
        log.debug(f"Could not read {path.name}: {e}")
        return None
    if audio is None or not audio.tags:
        return None

    tags = audio.tags
    title = tags.get('\xa9nam') or ['']
    artist = tags.get('\xa9ART') or ['']
    return {'title': str(title[0]), 'artist': str(artist[0]), 'cover': bool(tags.get('covr'))}


@cli.command(context_settings={'help_option_names': ['-h', '--help']})
@click.argument('input_dir', required=False, type=click.Path(exists=True, file_okay=False))
@click.option('--output', '-o', 'output_dir', type=click.Path(file_okay=False), default=None,
              help='Output directory (default: ./Converted)')
@click.pass_context
def info(ctx, input_dir, output_dir):
    """Preview cleaned titles and targets without converting anything."""
    settings = _apply_overrides(ctx.obj['settings'], input_dir, output_dir, None, None)
    if not settings.input_dir.is_dir():
        raise click.ClickException(f"Input directory not found: {settings.input_dir}")

    files = discover_files(settings.input_dir)
    if not files:
        log.warning(f"No files found in {settings.input_dir}")
        return

    normalize = make_cleaner(settings.strip_words)
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("File")
    table.add_column("Output")
    table.add_column("Status")
    table.add_column("Tags")

    for input_file in files:
        output_path = output_path_for(input_file.path, settings.output_dir, settings.extension, normalize)
        output_name = output_path.name
        if not output_path.exists():
            table.add_row(escape(input_file.display_name), escape(output_name), "[yellow]pending[/yellow]", "")
            continue

        tags = _read_tags(output_path)
        if tags:
            summary = escape(f"{tags['title']} / {tags['artist']}") + (" 🖼️" if tags['cover'] else "")
        else:
            summary = "[dim]unreadable[/dim]"
        table.add_row(escape(input_file.display_name), escape(output_name), "[green]converted[/green]", summary)

    console.print(table)


def main():
    cli()


if __name__ == '__main__':
    main()
