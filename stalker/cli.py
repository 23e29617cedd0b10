"""
StalkerKit CLI
===============

Click-based command-line interface for the Stalker portal client and
the MAC credential tools.

Commands:
    stalkerkit generate                 - Generate vendor-prefixed MAC addresses
    stalkerkit validate MAC...          - Format and validate MAC addresses
    stalkerkit connect PORTAL MAC       - Handshake, profile and subscription check
    stalkerkit discover PORTAL          - Search for a working MAC address
    stalkerkit test-macs PORTAL [MAC..] - Audit a batch of MAC addresses
    stalkerkit genres PORTAL MAC        - List live TV genres
    stalkerkit channels PORTAL MAC      - List live channels
    stalkerkit epg PORTAL MAC CHANNEL   - Show the programme guide of a channel
    stalkerkit stream PORTAL MAC CMD    - Resolve a cmd into a playable URL
    stalkerkit movies PORTAL MAC        - List VOD categories and movies
    stalkerkit series PORTAL MAC        - List series categories, series and seasons

Global Options:
    --config        Path to a config.toml file
    --output, -o    Write the command result to a JSON report
    --timezone      Timezone sent to the portal (default from config)
    --verbose, -v   Enable verbose (debug) logging

Exit codes:
    0  success
    1  portal unreachable or unexpected error
    2  invalid input
    3  negative outcome (credential rejected, nothing found, no stream)

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import asyncio
import signal
import sys
import tomllib
from typing import Any, Awaitable, Callable, NoReturn, Optional, TypeVar

import click

from shared.config import StalkerKitConfig
from shared.console import KitConsole
from shared.logger import KitLogger

from stalker.core.engine import STREAM_KINDS, StalkerEngine
from stalker.core.errors import CredentialNotFound, ProtocolError, ValidationFault
from stalker.core.models import DiscoveryAttempt, DiscoveryState
from stalker.output.console import StalkerConsoleOutput
from stalker.output.report import StalkerReportGenerator

T = TypeVar("T")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID = 2
EXIT_NEGATIVE = 3


# ================================================================== #
#  Async runner helpers
# ================================================================== #

def _run_async(coro: Awaitable[T]) -> T:
    """Run an async coroutine in the current or a new event loop.

    Args:
        coro: Coroutine to execute.

    Returns:
        The coroutine's return value.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop is not None and loop.is_running():
        # Already inside an event loop (e.g. Jupyter)
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor() as pool:
            future = pool.submit(asyncio.run, coro)
            return future.result()
    return asyncio.run(coro)


def _run_engine(ctx: click.Context, call: Callable[[StalkerEngine], Awaitable[T]]) -> T:
    """Run *call* with an engine whose HTTP client lives on the same loop."""
    config: StalkerKitConfig = ctx.obj["config"]
    logger: KitLogger = ctx.obj["logger"]
    command = ctx.info_name or "stalkerkit"

    async def runner() -> T:
        async with StalkerEngine(config) as engine:
            return await call(engine)

    with logger.operation(command), logger.timed(command):
        return _run_async(runner())


def _fail(ctx: click.Context, exc: BaseException, action: str) -> NoReturn:
    """Report *exc* and exit with the matching code."""
    console: KitConsole = ctx.obj["console"]
    logger: KitLogger = ctx.obj["logger"]

    if isinstance(exc, ValidationFault):
        console.error(str(exc))
        sys.exit(EXIT_INVALID)
    if isinstance(exc, CredentialNotFound):
        console.warning(str(exc))
        sys.exit(EXIT_NEGATIVE)
    if isinstance(exc, ProtocolError):
        console.error(f"{action} failed: {exc}")
        sys.exit(EXIT_ERROR)

    logger.exception("%s failed", action)
    console.error(f"{action} failed: {exc}")
    sys.exit(EXIT_ERROR)


# ================================================================== #
#  CLI Group
# ================================================================== #

@click.group()
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to a config.toml file.",
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    default=None,
    help="Write the command result to this JSON file.",
)
@click.option(
    "--timezone",
    default=None,
    help="Timezone sent to the portal (e.g. Europe/Paris).",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable verbose (debug) logging.",
)
@click.pass_context
def stalkerkit(
    ctx: click.Context,
    config_path: Optional[str],
    output: Optional[str],
    timezone: Optional[str],
    verbose: bool,
) -> None:
    """StalkerKit -- Stalker portal client and MAC credential toolkit."""
    ctx.ensure_object(dict)

    try:
        config = StalkerKitConfig.load(config_path)
    except tomllib.TOMLDecodeError as exc:
        raise click.BadParameter(f"invalid TOML: {exc}", param_hint="--config") from exc

    if timezone:
        config.portal.timezone = timezone

    settings = config.global_settings
    log_level = "DEBUG" if verbose or settings.debug else settings.log_level
    logger = KitLogger(
        "stalker",
        log_level=log_level,
        log_file=settings.log_file or None,
        json_logs=settings.log_json,
    )

    console = KitConsole()
    ctx.obj["config"] = config
    ctx.obj["console"] = console
    ctx.obj["display"] = StalkerConsoleOutput(console=console)
    ctx.obj["report_gen"] = StalkerReportGenerator(version=settings.version)
    ctx.obj["logger"] = logger
    ctx.obj["output"] = output


# ================================================================== #
#  Offline credential commands
# ================================================================== #

@stalkerkit.command()
@click.option("--count", "-n", type=click.IntRange(min=1), default=1, show_default=True,
              help="Number of MAC addresses to generate.")
@click.option("--prefix", default=None,
              help="Vendor prefix; built-in prefixes are rotated when omitted.")
@click.pass_context
def generate(ctx: click.Context, count: int, prefix: Optional[str]) -> None:
    """Generate vendor-prefixed MAC addresses.

    Example:
        stalkerkit generate -n 5 --prefix 00:1A:79
    """
    display: StalkerConsoleOutput = ctx.obj["display"]

    try:
        macs = StalkerEngine.generate_macs(count, prefix)
    except ValidationFault as exc:
        _fail(ctx, exc, "MAC generation")

    display.display_macs(macs)
    _write_report(ctx, {"macs": macs})


@stalkerkit.command()
@click.argument("macs", nargs=-1, required=True)
@click.pass_context
def validate(ctx: click.Context, macs: tuple[str, ...]) -> None:
    """Format and validate MAC addresses (exit 2 if any is invalid).

    Example:
        stalkerkit validate 001a79123456 00-1A-79-AB-CD-EF
    """
    display: StalkerConsoleOutput = ctx.obj["display"]

    rows = StalkerEngine.validate_macs(macs)
    display.display_validation(rows)
    _write_report(ctx, {"results": rows})

    if not all(row["valid"] for row in rows):
        sys.exit(EXIT_INVALID)


# ================================================================== #
#  Credential checks against a portal
# ================================================================== #

@stalkerkit.command()
@click.argument("portal")
@click.argument("mac")
@click.pass_context
def connect(ctx: click.Context, portal: str, mac: str) -> None:
    """Handshake with a known MAC and show profile and subscription.

    Example:
        stalkerkit connect http://portal.example/c 00:1A:79:12:34:56
    """
    console: KitConsole = ctx.obj["console"]
    display: StalkerConsoleOutput = ctx.obj["display"]

    console.banner(ctx.obj["config"].global_settings.version)
    console.section("Connection Test")

    try:
        with console.status(f"Connecting to {portal}..."):
            result = _run_engine(ctx, lambda engine: engine.connect(portal, mac))
    except Exception as exc:
        _fail(ctx, exc, "Connection")

    display.display_connection(result)
    _write_report(ctx, result)
    if not result.authenticated:
        sys.exit(EXIT_NEGATIVE)


@stalkerkit.command()
@click.argument("portal")
@click.option("--max-attempts", type=click.IntRange(min=1), default=None,
              help="Attempt ceiling (default from config).")
@click.option("--timeout", "attempt_timeout", type=click.FloatRange(min=0, min_open=True),
              default=None, help="Per-attempt handshake timeout in seconds.")
@click.option("--delay", "attempt_delay", type=click.FloatRange(min=0), default=None,
              help="Pause between attempts in seconds.")
@click.option("--prefix", default=None, help="Vendor prefix for candidates.")
@click.pass_context
def discover(
    ctx: click.Context,
    portal: str,
    max_attempts: Optional[int],
    attempt_timeout: Optional[float],
    attempt_delay: Optional[float],
    prefix: Optional[str],
) -> None:
    """Search for a MAC address the portal accepts.

    Press Ctrl+C to stop the search early.

    Example:
        stalkerkit discover http://portal.example/c --max-attempts 50
    """
    config: StalkerKitConfig = ctx.obj["config"]
    console: KitConsole = ctx.obj["console"]
    display: StalkerConsoleOutput = ctx.obj["display"]

    console.banner(ctx.obj["config"].global_settings.version)
    console.section("MAC Discovery")
    total = max_attempts or config.discovery.max_attempts
    console.info(f"Probing {portal} with up to {total} generated MAC addresses")

    with console.progress("Probing MAC addresses", total=total) as (progress, task_id):

        def on_attempt(attempt: DiscoveryAttempt) -> None:
            progress.update(
                task_id,
                advance=1,
                description=f"Probing {attempt.mac_address} ({attempt.outcome.value})",
            )

        async def run(engine: StalkerEngine) -> Any:
            cancel_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGINT, cancel_event.set)
            except (NotImplementedError, RuntimeError):
                pass
            try:
                return await engine.discover(
                    portal,
                    max_attempts=max_attempts,
                    attempt_timeout=attempt_timeout,
                    attempt_delay=attempt_delay,
                    prefix=prefix,
                    cancel_event=cancel_event,
                    on_attempt=on_attempt,
                )
            finally:
                try:
                    loop.remove_signal_handler(signal.SIGINT)
                except (NotImplementedError, RuntimeError):
                    pass

        try:
            result = _run_engine(ctx, run)
        except Exception as exc:
            _fail(ctx, exc, "Discovery")

    display.display_discovery(result)
    _write_report(ctx, result)
    if result.state is not DiscoveryState.FOUND:
        sys.exit(EXIT_NEGATIVE)


@stalkerkit.command(name="test-macs")
@click.argument("portal")
@click.argument("macs", nargs=-1)
@click.option("--generate", "-g", "generate_count", type=int, default=None,
              help="Generate this many MACs when none are given.")
@click.option("--prefix", default=None, help="Vendor prefix for generated MACs.")
@click.pass_context
def test_macs(
    ctx: click.Context,
    portal: str,
    macs: tuple[str, ...],
    generate_count: Optional[int],
    prefix: Optional[str],
) -> None:
    """Test a batch of MAC addresses (explicit or generated).

    Example:
        stalkerkit test-macs http://portal.example/c 00:1A:79:00:00:01 00:1A:79:00:00:02
    """
    console: KitConsole = ctx.obj["console"]
    display: StalkerConsoleOutput = ctx.obj["display"]

    console.banner(ctx.obj["config"].global_settings.version)
    console.section("Batch Credential Test")

    try:
        with console.status("Testing MAC addresses..."):
            result = _run_engine(
                ctx,
                lambda engine: engine.test_macs(
                    portal, list(macs), generate_count=generate_count, prefix=prefix
                ),
            )
    except Exception as exc:
        _fail(ctx, exc, "Batch test")

    display.display_batch(result)
    _write_report(ctx, result)
    if not result.working:
        sys.exit(EXIT_NEGATIVE)


# ================================================================== #
#  Content commands
# ================================================================== #

@stalkerkit.command()
@click.argument("portal")
@click.argument("mac")
@click.pass_context
def genres(ctx: click.Context, portal: str, mac: str) -> None:
    """List live TV genres."""
    display: StalkerConsoleOutput = ctx.obj["display"]

    try:
        result = _run_engine(ctx, lambda engine: engine.list_genres(portal, mac))
    except Exception as exc:
        _fail(ctx, exc, "Genre listing")

    display.display_genres(result)
    _write_report(ctx, result)


@stalkerkit.command()
@click.argument("portal")
@click.argument("mac")
@click.option("--genre", default=None, help="Genre id to filter by.")
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--all", "all_channels", is_flag=True, default=False,
              help="Fetch every channel in one call.")
@click.pass_context
def channels(
    ctx: click.Context,
    portal: str,
    mac: str,
    genre: Optional[str],
    page: int,
    all_channels: bool,
) -> None:
    """List live channels."""
    display: StalkerConsoleOutput = ctx.obj["display"]

    try:
        result = _run_engine(
            ctx,
            lambda engine: engine.list_channels(
                portal, mac, genre=genre, page=page, all_channels=all_channels
            ),
        )
    except Exception as exc:
        _fail(ctx, exc, "Channel listing")

    display.display_channels(result)
    _write_report(ctx, result)


@stalkerkit.command()
@click.argument("portal")
@click.argument("mac")
@click.argument("channel_id")
@click.option("--period", type=click.IntRange(min=1), default=7, show_default=True,
              help="Days of programmes to request.")
@click.pass_context
def epg(ctx: click.Context, portal: str, mac: str, channel_id: str, period: int) -> None:
    """Show the programme guide of one channel."""
    display: StalkerConsoleOutput = ctx.obj["display"]

    try:
        result = _run_engine(
            ctx, lambda engine: engine.get_epg(portal, mac, channel_id, period_days=period)
        )
    except Exception as exc:
        _fail(ctx, exc, "EPG lookup")

    display.display_epg(result, channel_id)
    _write_report(ctx, result)


@stalkerkit.command()
@click.argument("portal")
@click.argument("mac")
@click.argument("cmd")
@click.option("--type", "kind", type=click.Choice(STREAM_KINDS), default="live", show_default=True)
@click.option("--content-id", default=None)
@click.option("--season", default=None)
@click.option("--episode", default=None)
@click.pass_context
def stream(
    ctx: click.Context,
    portal: str,
    mac: str,
    cmd: str,
    kind: str,
    content_id: Optional[str],
    season: Optional[str],
    episode: Optional[str],
) -> None:
    """Resolve a portal cmd into a playable stream URL."""
    display: StalkerConsoleOutput = ctx.obj["display"]

    try:
        url = _run_engine(
            ctx,
            lambda engine: engine.resolve_stream(
                portal, mac, cmd,
                kind=kind, content_id=content_id, season=season, episode=episode,
            ),
        )
    except Exception as exc:
        _fail(ctx, exc, "Stream resolution")

    display.display_stream(url)
    _write_report(ctx, {"cmd": cmd, "type": kind, "url": url})
    if url is None:
        sys.exit(EXIT_NEGATIVE)


@stalkerkit.command()
@click.argument("portal")
@click.argument("mac")
@click.option("--category", default=None, help="Category id to filter by.")
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--all", "all_pages", is_flag=True, default=False, help="Walk every page.")
@click.option("--max-pages", type=click.IntRange(min=1), default=None)
@click.pass_context
def movies(
    ctx: click.Context,
    portal: str,
    mac: str,
    category: Optional[str],
    page: int,
    all_pages: bool,
    max_pages: Optional[int],
) -> None:
    """List VOD categories and movies."""
    display: StalkerConsoleOutput = ctx.obj["display"]

    try:
        categories, items = _run_engine(
            ctx,
            lambda engine: engine.list_movies(
                portal, mac, category=category, page=page,
                max_pages=max_pages, all_pages=all_pages,
            ),
        )
    except Exception as exc:
        _fail(ctx, exc, "Movie listing")

    display.display_categories(categories, "VOD Categories")
    display.display_vod(items, "Movies")
    _write_report(ctx, {"categories": categories, "movies": items})


@stalkerkit.command()
@click.argument("portal")
@click.argument("mac")
@click.option("--category", default=None, help="Category id to filter by.")
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--all", "all_pages", is_flag=True, default=False, help="Walk every page.")
@click.option("--max-pages", type=click.IntRange(min=1), default=None)
@click.option("--series-id", default=None, help="Also list the seasons of this series.")
@click.pass_context
def series(
    ctx: click.Context,
    portal: str,
    mac: str,
    category: Optional[str],
    page: int,
    all_pages: bool,
    max_pages: Optional[int],
    series_id: Optional[str],
) -> None:
    """List series categories, series and (optionally) seasons."""
    display: StalkerConsoleOutput = ctx.obj["display"]

    try:
        categories, items, seasons = _run_engine(
            ctx,
            lambda engine: engine.list_series(
                portal, mac, category=category, page=page,
                max_pages=max_pages, all_pages=all_pages, series_id=series_id,
            ),
        )
    except Exception as exc:
        _fail(ctx, exc, "Series listing")

    display.display_categories(categories, "Series Categories")
    display.display_vod(items, "Series")
    if series_id:
        display.display_seasons(seasons)
    _write_report(ctx, {"categories": categories, "series": items, "seasons": seasons})


# ================================================================== #
#  Report Helper
# ================================================================== #

def _write_report(ctx: click.Context, result: Any) -> None:
    """Write a JSON report if an output path was given."""
    output_path = ctx.obj.get("output")
    if not output_path:
        return

    console: KitConsole = ctx.obj["console"]
    report_gen: StalkerReportGenerator = ctx.obj["report_gen"]

    try:
        path = report_gen.generate_json(result, output_path)
        console.success(f"Report written to {path}")
    except OSError as exc:
        console.error(f"Failed to write report: {exc}")


# ================================================================== #
#  Entry Point
# ================================================================== #

def main() -> None:
    """Main entry point for the StalkerKit CLI."""
    stalkerkit(obj={})


if __name__ == "__main__":
    main()
