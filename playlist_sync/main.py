"""
Main CLI interface for playlist-sync

Commands:
- sync: mirror every playlist (and optionally the likes) from one account to another
- export: save a source account's playlists to a JSON snapshot
- import: synchronize a JSON snapshot onto a destination account
- config show: print the effective configuration
"""

import asyncio
import functools
import sys

import click

from . import __version__
from .config.settings import get_settings, reload_settings
from .platforms import PLATFORM_NAMES, build_platform
from .sync.synchronizer import SyncOptions, SyncReport, synchronize, synchronize_playlists
from .sync.transfer import export_playlists, load_playlists
from .utils.helpers import split_pipe_list
from .utils.logger import configure_from_settings, get_logger


logger = get_logger(__name__)

PLATFORM_CHOICE = click.Choice(PLATFORM_NAMES, case_sensitive=False)


def print_banner():
    """Print application banner to console"""
    banner = """
╔═══════════════════════════════════════════════════════════════╗
║                         playlist-sync                         ║
║                                                               ║
║     Mirror playlists and likes between streaming accounts     ║
║                                                               ║
╚═══════════════════════════════════════════════════════════════╝
    """
    click.echo(click.style(banner, fg='green', bold=True))


def handle_error(func):
    """
    Decorator to handle common CLI errors gracefully

    Ctrl-C exits with 130, any other failure is logged, printed in red and
    exits with 1.

    Args:
        func: The CLI command function to wrap

    Returns:
        Wrapped function with error handling
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\n\nOperation cancelled by user", fg='yellow'))
            sys.exit(130)
        except Exception as e:
            logger.error(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


def sync_options(func):
    """Options shared by the sync and import commands"""
    options = [
        click.option('--skip-playlists', default=None, help='Playlists to skip, separated by "|"'),
        click.option('--sync-likes', is_flag=True, help='Also synchronize liked songs'),
        click.option('--like-all', is_flag=True, help='Like every song added to a playlist'),
        click.option('--debug', is_flag=True, help='Write debug files (missing songs, conversion rates)'),
        click.option('--diff-country', is_flag=True,
                     help='Allow source and destination accounts from different countries'),
        click.option('--dst-owner', default=None, help='Owner of the destination playlists'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


CLEAR_CACHE_OPTION = click.option(
    '--clear-cache', type=PLATFORM_CHOICE, multiple=True,
    help='Delete the stored token of a platform before connecting (repeatable)',
)


def build_options(dst, skip_playlists, sync_likes, like_all, debug, diff_country, dst_owner) -> SyncOptions:
    """
    Merge command line flags over the configured sync settings

    Flags can only switch a behavior on; an absent flag keeps the configured value.
    The destination owner defaults to the owner configured for that platform.
    """
    settings = get_settings()
    options = SyncOptions.from_settings(
        settings,
        sync_likes=sync_likes or None,
        like_all=like_all or None,
        debug=debug or None,
        diff_country=diff_country or None,
        owner=dst_owner or settings.sections[dst.lower()].owner or None,
        show_progress=settings.logging.console_output,
    )
    if skip_playlists:
        options.skip_playlists = options.skip_playlists + split_pipe_list(skip_playlists)
    return options


def print_report(report: SyncReport) -> None:
    click.echo(click.style("\nSynchronization summary:", fg='green', bold=True))
    for stats in report.playlists:
        marker = " (created)" if stats.created else ""
        click.echo(f"   {stats.name}{marker}: {stats.summary}, {stats.added} added")
    if report.likes is not None:
        click.echo(f"   Likes: {report.likes.summary}, {report.likes.added} added")
    if report.skipped:
        click.echo(f"   Skipped: {', '.join(report.skipped)}")
    click.echo(f"\n{report.summary}")


# Main CLI group - root command that all subcommands attach to
@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', type=click.Path(), help='Path to config file')
@click.pass_context
@handle_error
def cli(ctx, version, verbose, config):
    """
    playlist-sync - Mirror playlists between Spotify, YouTube Music, Tidal and Plex

    Every source playlist is recreated (or completed) on the destination
    account. Songs are never removed, so runs can be repeated safely.
    """
    ctx.ensure_object(dict)

    if version:
        click.echo(f"playlist-sync v{__version__}")
        return

    settings = reload_settings(config) if config else get_settings()
    if verbose:
        settings.logging.level = "DEBUG"
        ctx.obj['verbose'] = True
    configure_from_settings(settings)

    if config:
        logger.info(f"Loaded config: {config}")

    if ctx.invoked_subcommand is None:
        print_banner()
        click.echo(ctx.get_help())


@cli.command()
@click.argument('src', type=PLATFORM_CHOICE)
@click.argument('dst', type=PLATFORM_CHOICE)
@sync_options
@CLEAR_CACHE_OPTION
@handle_error
def sync(src, dst, skip_playlists, sync_likes, like_all, debug, diff_country, dst_owner, clear_cache):
    """
    Synchronize playlists from SRC to DST

    SRC and DST are platform names (spotify, ytmusic, tidal, plex).
    """
    options = build_options(dst, skip_playlists, sync_likes, like_all, debug, diff_country, dst_owner)
    settings = get_settings()

    async def run():
        src_platform = await build_platform(src, settings, clear_cache=src in clear_cache)
        dst_platform = await build_platform(dst, settings, clear_cache=dst in clear_cache)
        return await synchronize(src_platform, dst_platform, options)

    click.echo(f"Synchronizing {src} -> {dst}")
    report = asyncio.run(run())
    print_report(report)


@cli.command()
@click.argument('src', type=PLATFORM_CHOICE)
@click.argument('output', type=click.Path(dir_okay=False))
@click.option('--minify', is_flag=True, help='Write compact JSON')
@CLEAR_CACHE_OPTION
@handle_error
def export(src, output, minify, clear_cache):
    """Export every playlist of SRC to the JSON file OUTPUT"""
    settings = get_settings()

    async def run():
        platform = await build_platform(src, settings, clear_cache=src in clear_cache)
        return await export_playlists(platform, output, minify)

    playlists = asyncio.run(run())
    total = sum(playlist.track_count for playlist in playlists)
    click.echo(click.style(f"Exported {len(playlists)} playlists ({total} songs) to {output}", fg='green'))


@cli.command(name='import')
@click.argument('input_file', metavar='INPUT', type=click.Path(exists=True, dir_okay=False))
@click.argument('dst', type=PLATFORM_CHOICE)
@sync_options
@CLEAR_CACHE_OPTION
@handle_error
def import_cmd(input_file, dst, skip_playlists, sync_likes, like_all, debug, diff_country, dst_owner, clear_cache):
    """
    Synchronize the playlists of a JSON snapshot INPUT onto DST

    Snapshots carry no likes, so --sync-likes has no effect here.
    """
    options = build_options(dst, skip_playlists, sync_likes, like_all, debug, diff_country, dst_owner)
    settings = get_settings()
    playlists = load_playlists(input_file)

    async def run():
        dst_platform = await build_platform(dst, settings, clear_cache=dst in clear_cache)
        return await synchronize_playlists(playlists, dst_platform, options)

    click.echo(f"Importing {len(playlists)} playlists into {dst}")
    report = asyncio.run(run())
    print_report(report)


@cli.group()
def config():
    """Configuration management"""
    pass


@config.command()
@handle_error
def show():
    """
    Show current configuration

    Secrets are masked. Problems reported by validation are listed at the end.
    """
    settings = get_settings()

    source = settings.loaded_from or "defaults"
    click.echo(f"Current Configuration ({source}):")

    for section, values in settings.to_dict().items():
        click.echo(f"\n{section.capitalize()}:")
        for key, value in values.items():
            click.echo(f"   {key}: {value}")

    problems = settings.validate()
    if problems:
        click.echo(click.style("\nProblems:", fg='yellow'))
        for problem in problems:
            click.echo(click.style(f"   - {problem}", fg='yellow'))


if __name__ == '__main__':
    cli()
