from __future__ import annotations

import asyncio
import json
import logging
import sys

import typer
from rich.console import Console
from rich.table import Table

from .config import resolve_settings
from .errors import ConfigError
from .logging_setup import setup_logging
from .version import __version__

app = typer.Typer(help="Telegram bingo bot")
logger = logging.getLogger("bingo_bot")


@app.callback()
def common_options(
    version: bool = typer.Option(
        False, "--version", help="Show application version and exit", is_eager=True
    ),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(0)


def _load(config: str | None, overrides: dict):
    try:
        settings, fingerprint, _cfg_path_unused = resolve_settings(
            config_path_str=config, cli_overrides=overrides
        )
    except ConfigError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=2)
    setup_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        json_format=(settings.log_format == "json"),
    )
    return settings, fingerprint


@app.command()
def run(
    config: str = typer.Option(None, "--config", help="Path to config file (YAML/JSON)"),
    mode: str = typer.Option(None, "--mode", help="polling|webhook"),
    backend_url: str = typer.Option(None, "--backend-url", help="Backend base URL"),
    port: int = typer.Option(None, "--port", help="Webhook listen port"),
    health_port: int = typer.Option(None, "--health-port", help="Health endpoint port (0 disables)"),
    log_file: str = typer.Option(None, "--log-file", help="Log file path"),
    log_level: str = typer.Option(None, "--log-level", help="DEBUG|INFO|WARN|ERROR"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Resolve settings and exit"),
) -> None:
    """Start the bot."""
    from .bot import run_bot

    overrides = {
        "mode": mode,
        "backend_url": backend_url,
        "port": port,
        "health_port": health_port,
        "log_file": log_file,
        "log_level": log_level,
    }
    settings, fingerprint = _load(config, overrides)

    if dry_run:
        typer.echo(f"Mode: {settings.mode}")
        typer.echo(f"Backend: {settings.backend_url}")
        typer.echo(f"Gateway: {settings.gateway_url}")
        typer.echo(f"Health: {settings.health_url or 'disabled'}")
        typer.echo(f"Settings hash: {fingerprint}")
        raise typer.Exit(0)

    logger.info("bingo-bot %s starting (%s)", __version__, fingerprint)
    try:
        run_bot(settings)
    except ConfigError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=2)


@app.command()
def monitor(
    config: str = typer.Option(None, "--config", help="Path to config file (YAML/JSON)"),
    backend_url: str = typer.Option(None, "--backend-url", help="Backend base URL"),
    health_port: int = typer.Option(None, "--health-port", help="Port of the running bot's health endpoint"),
) -> None:
    """Check the running bot and each service it depends on once."""
    from .monitor import run_checks

    settings, _fingerprint = _load(config, {"backend_url": backend_url, "health_port": health_port})
    checks = asyncio.run(run_checks(settings))

    table = Table(title="Bingo bot health")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Detail")
    for check in checks:
        status = "[green]OK[/green]" if check.healthy else "[red]DOWN[/red]"
        table.add_row(check.name, status, check.detail)
    Console().print(table)
    raise typer.Exit(code=0 if all(c.healthy for c in checks) else 1)


@app.command()
def simulate(
    seed: int = typer.Option(0, "--seed", help="Base seed"),
    engine: str = typer.Option("py_random", "--engine", help="py_random|numpy_pcg64"),
    card: int = typer.Option(1, "--card", help="Card number (1..400)"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Deal a card offline and call numbers until it wins."""
    from .render import format_card_grid
    from .simulate import simulate as run_simulation
    from .simulate import summarize

    try:
        result = run_simulation(seed=seed, engine=engine, card_number=card)
    except (ValueError, RuntimeError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2)

    if as_json:
        typer.echo(json.dumps(summarize(result), ensure_ascii=False))
        raise typer.Exit(0)
    typer.echo(format_card_grid(result.card))
    typer.echo(f"Won with {result.pattern.label} after {result.calls_to_win} calls")
    raise typer.Exit(0)


def main(_argv: list[str] | None = None) -> int:
    try:
        app(standalone_mode=True)
        return 0
    except SystemExit as e:
        return int(e.code) if e.code is not None else 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
