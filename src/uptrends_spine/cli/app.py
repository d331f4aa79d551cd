"""
Root Typer application for the uptrends-spine CLI.

Records are written to stdout as JSON lines; logs and tables go to stderr
so the output can be piped straight into a log shipper.
"""

from __future__ import annotations

import signal
from datetime import date
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from uptrends_spine.core.errors import ConfigError, UnknownTokenError
from uptrends_spine.core.logging import configure_logging, get_logger
from uptrends_spine.core.settings import get_settings
from uptrends_spine.polling.config import PollerConfig
from uptrends_spine.polling.dates import DATE_TOKENS, render
from uptrends_spine.polling.poller import UptrendsPoller
from uptrends_spine.polling.sinks import JsonLinesSink

app = typer.Typer(
    name="uptrends-spine",
    help="uptrends-spine — scheduled polling of the Uptrends monitoring API.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True)

logger = get_logger(__name__)

EXIT_CONFIG = 2


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from uptrends_spine import __version__

        typer.echo(f"uptrends-spine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """uptrends-spine CLI — poll, validate and inspect date tokens."""


# ── Helpers ──────────────────────────────────────────────────────────────


def _setup(log_level: str | None) -> None:
    settings = get_settings()
    configure_logging(level=log_level or settings.log_level, json_format=settings.json_logs)


def _load(config_file: Path | None) -> PollerConfig:
    path = config_file or get_settings().config_file
    return PollerConfig.from_file(path)


def _config_failure(error: ConfigError) -> typer.Exit:
    err_console.print(f"[red]Configuration error:[/red] {escape(error.message)}")
    return typer.Exit(code=EXIT_CONFIG)


def _parse_today(today: str | None) -> date:
    if today is None:
        return date.today()
    try:
        return date.fromisoformat(today)
    except ValueError:
        raise typer.BadParameter(f"expected YYYY-MM-DD, got {today!r}", param_hint="--today") from None


ConfigOption = typer.Option(None, "--config", "-c", help="Poller YAML document.")
LogLevelOption = typer.Option(None, "--log-level", "-l", help="Override UPTRENDS_LOG_LEVEL.")


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("run")
def run(
    config_file: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Poll on the configured schedule until interrupted."""
    _setup(log_level)
    try:
        poller = UptrendsPoller(_load(config_file), sink=JsonLinesSink())
        poller.register()
    except ConfigError as e:
        raise _config_failure(e) from e

    def _handle_signal(signum: int, frame: object) -> None:
        logger.info("cli.signal_received", signal=signal.Signals(signum).name)
        poller.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    poller.run()


@app.command("once")
def once(
    config_file: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Run a single cycle now, ignoring the schedule."""
    _setup(log_level)
    try:
        poller = UptrendsPoller(_load(config_file), sink=JsonLinesSink())
        poller.register(require_schedule=False)
    except ConfigError as e:
        raise _config_failure(e) from e

    report = poller.run_once()
    err_console.print(
        f"cycle {report.cycle_id}: {report.succeeded} ok, {report.failed} failed, "
        f"{report.records} records in {report.duration_seconds:.2f}s"
    )


@app.command("validate")
def validate(
    config_file: Path | None = ConfigOption,
) -> None:
    """Validate a poller document without sending any request."""
    try:
        config = _load(config_file)
        schedule = config.schedule_spec()
        registry = config.registry()
    except ConfigError as e:
        raise _config_failure(e) from e

    table = Table(title=f"Operations ({schedule.kind.value}: {schedule.value})")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Path")
    table.add_column("Type")
    table.add_column("Parameters")
    for operation in registry:
        params = ", ".join(f"{k}={v}" for k, v in operation.parameters.items())
        table.add_row(operation.name, operation.path, operation.type or "", params)
    err_console.print(table)
    err_console.print("[green]Configuration is valid.[/green]")


@app.command("resolve-date")
def resolve_date(
    token: str = typer.Argument(..., help="Date token, e.g. first_day_of_previous_month"),
    today: str | None = typer.Option(None, "--today", help="Reference date (YYYY-MM-DD)."),
) -> None:
    """Print the query value a date token resolves to."""
    reference = _parse_today(today)
    try:
        typer.echo(render(token, reference))
    except UnknownTokenError as e:
        err_console.print(f"[red]{escape(e.message)}[/red]")
        raise typer.Exit(code=1) from e


@app.command("tokens")
def tokens(
    today: str | None = typer.Option(None, "--today", help="Reference date (YYYY-MM-DD)."),
) -> None:
    """List every date token with its value for a reference date."""
    reference = _parse_today(today)
    table = Table(title=f"Date tokens for {reference.isoformat()} ({reference:%A})")
    table.add_column("Token", style="cyan")
    table.add_column("Value")
    for name, token in DATE_TOKENS.items():
        table.add_row(name, token.render(reference))
    console.print(table)
