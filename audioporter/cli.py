"""
Audioporter CLI - run and inspect the signaling relay.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .config import Config, set_config
from .errors import ConfigError

console = Console()


def setup_logging(verbose: bool = False, level: str = "INFO"):
    """Set up logging configuration."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler()]
    )
    # aiohttp logs every HTTP request at INFO
    if not verbose:
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def load_config(config_path: Optional[str]) -> Config:
    """Load configuration, exiting with a readable message on error."""
    try:
        return Config.load(Path(config_path) if config_path else None)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.pass_context
def main(ctx, verbose):
    """🔊 Audioporter - phone-to-PC audio signaling relay"""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose


@main.command()
@click.option('--host', '-h', default=None, help='Host to bind to')
@click.option('--port', '-p', default=None, type=int, help='Port to bind to')
@click.option('--ping-interval', default=None, type=float, help='Seconds between liveness probes')
@click.option('--config', 'config_path', type=click.Path(), help='JSON config file')
@click.pass_context
def serve(ctx, host: Optional[str], port: Optional[int], ping_interval: Optional[float], config_path: Optional[str]):
    """Start the signaling relay."""
    config = load_config(config_path)
    if host:
        config.server.host = host
    if port is not None:
        config.server.port = port
    if ping_interval is not None:
        config.relay.ping_interval = ping_interval

    try:
        config.validate()
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    set_config(config)
    setup_logging(ctx.obj['verbose'], config.log_level)

    console.print(f"\n[bold blue]🔊 Starting Audioporter Relay[/bold blue]")
    console.print(f"   Listening on: ws://{config.server.host}:{config.server.port}/")
    if config.server.external_url:
        console.print(f"   External URL: {config.server.external_url}")
    console.print(f"   Press Ctrl+C to stop\n")

    from .relay.server import run_server

    run_server(config)


@main.command()
@click.argument('url')
@click.option('--timeout', '-t', default=5.0, type=float, help='Seconds to wait for the list')
@click.pass_context
def discover(ctx, url: str, timeout: float):
    """List the PCs a phone on this network would see."""
    setup_logging(ctx.obj['verbose'], "WARNING")

    from .client import RelayClient

    async def _discover():
        client = RelayClient(url)
        if not await client.connect(timeout=timeout):
            return None, None
        try:
            pcs = await client.discover(timeout=timeout)
            return client.server_info, pcs
        finally:
            await client.disconnect()

    server_info, pcs = asyncio.run(_discover())
    if pcs is None:
        console.print(f"[red]Could not connect to {url}[/red]")
        sys.exit(1)

    if server_info:
        console.print(
            f"[dim]Relay host: {server_info.get('hostname')} "
            f"({server_info.get('ip')}:{server_info.get('port')})[/dim]"
        )

    if not pcs:
        console.print("[yellow]No PCs found on this network.[/yellow]")
        return

    table = Table(title=f"PCs ({len(pcs)})")
    table.add_column("ID", style="cyan")
    table.add_column("Identity")

    for pc in pcs:
        table.add_row(pc.get("id", ""), pc.get("identity", ""))

    console.print(table)


@main.command()
@click.option('--config', 'config_path', type=click.Path(), help='JSON config file')
@click.option('--json', 'as_json', is_flag=True, help='Print as JSON')
def config(config_path: Optional[str], as_json: bool):
    """Show the effective configuration."""
    cfg = load_config(config_path)
    data = cfg.to_dict()

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")

    for section in ("server", "relay"):
        for key, value in data[section].items():
            table.add_row(f"{section}.{key}", str(value))
    table.add_row("log_level", data["log_level"])

    console.print(table)


if __name__ == '__main__':
    main()
