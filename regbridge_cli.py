#!/usr/bin/env python3
"""regbridge CLI - copy Modbus register blocks between endpoints.

Examples:
    # Validate a bridge configuration
    python regbridge_cli.py check bridge.yaml

    # Run the bridge until Ctrl+C
    python regbridge_cli.py run bridge.yaml

    # One-shot sensor readings
    python regbridge_cli.py read sensor.yaml

    # Serve an in-memory register table
    python regbridge_cli.py serve server.yaml
"""
from __future__ import annotations

import asyncio
import logging
import signal
from typing import Awaitable, Callable

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from regbridge.bridge import BridgeSupervisor
from regbridge.config import load_bridge_config, load_sensor_config, load_server_config
from regbridge.core.sensor import BlockSensor
from regbridge.errors import ClientBuildError, RegBridgeError, ServerStartError
from regbridge.server import ServerBridge

app = typer.Typer(
    name="regbridge",
    help="regbridge - Modbus register block bridge",
    add_completion=False,
)
console = Console()

STATS_INTERVAL = 60


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


def _fail(e: Exception) -> None:
    console.print(f"[red]Error: {e}[/red]")
    if isinstance(e, (ClientBuildError, ServerStartError)):
        for err in e.errors:
            console.print(f"[red]  - {err}[/red]")
    raise typer.Exit(1)


async def _run_until_signalled(on_tick: Callable[[], None], interval: float = STATS_INTERVAL) -> None:
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def signal_handler():
        console.print("\n[yellow]Shutting down...[/yellow]")
        stop_event.set()

    try:
        loop.add_signal_handler(signal.SIGINT, signal_handler)
        loop.add_signal_handler(signal.SIGTERM, signal_handler)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler
        pass

    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            on_tick()


def _run_async(main: Callable[[], Awaitable[None]]) -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


@app.command()
def check(
    config: str = typer.Argument(..., help="Bridge configuration file (YAML or JSON)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Validate a bridge configuration and show its endpoints and blocks."""
    setup_logging(verbose)
    try:
        cfg = load_bridge_config(config)
    except RegBridgeError as e:
        _fail(e)

    endpoints = Table(title="Endpoints", show_header=True)
    endpoints.add_column("Name", style="cyan")
    endpoints.add_column("Connection", style="yellow")
    endpoints.add_column("Unit", style="green")
    endpoints.add_column("Order")
    for ep in cfg.endpoints:
        unit = str(ep.server_id) if ep.server_id is not None else "-"
        endpoints.add_row(ep.name, ep.describe(), unit, f"{ep.byte_order}/{ep.word_order}")

    blocks = Table(title="Blocks", show_header=True)
    blocks.add_column("Source", style="cyan")
    blocks.add_column("Destination", style="yellow")
    blocks.add_column("Length", style="green")
    for block in cfg.blocks:
        blocks.add_row(
            f"{block.src} {block.src_register.value}@{block.src_offset}",
            f"{block.dst} {block.dst_register.value}@{block.dst_offset}",
            str(block.length),
        )

    console.print(endpoints)
    console.print(blocks)
    console.print(f"[green]OK[/green] update every {cfg.update_time_ms} ms")


@app.command()
def run(
    config: str = typer.Argument(..., help="Bridge configuration file (YAML or JSON)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run the bridge until interrupted."""
    setup_logging(verbose)
    try:
        cfg = load_bridge_config(config)
    except RegBridgeError as e:
        _fail(e)

    supervisor = BridgeSupervisor()

    def show_stats() -> None:
        stats = supervisor.get_stats()
        console.print(
            f"[dim]Stats: {stats['iterations']} iterations, {stats['successes']} ok, "
            f"{stats['failures']} failed[/dim]"
        )

    async def main() -> None:
        try:
            await supervisor.reconfigure(cfg)
        except RegBridgeError as e:
            _fail(e)
        console.print(Panel.fit("[bold green]Bridge running. Press Ctrl+C to stop.[/bold green]"))
        try:
            await _run_until_signalled(show_stats)
        finally:
            errors = await supervisor.close()
            for err in errors:
                console.print(f"[red]close error: {err}[/red]")
            console.print("[green]Bridge stopped.[/green]")

    _run_async(main)


@app.command()
def read(
    config: str = typer.Argument(..., help="Sensor configuration file (YAML or JSON)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Read every configured block once and print the values."""
    setup_logging(verbose)
    try:
        cfg = load_sensor_config(config)
    except RegBridgeError as e:
        _fail(e)

    async def main() -> None:
        try:
            async with BlockSensor(cfg) as sensor:
                readings = await sensor.readings()
        except RegBridgeError as e:
            _fail(e)

        table = Table(title=f"Readings: {cfg.endpoint.describe()}", show_header=True)
        table.add_column("Name", style="cyan")
        table.add_column("Value", style="green")
        for name, value in readings.items():
            table.add_row(name, str(value))
        console.print(table)

    _run_async(main)


@app.command()
def serve(
    config: str = typer.Argument(..., help="Server configuration file (YAML or JSON)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Serve one shared register table on every configured endpoint until interrupted."""
    setup_logging(verbose)
    try:
        cfg = load_server_config(config)
    except RegBridgeError as e:
        _fail(e)

    bridge = ServerBridge(cfg)

    def show_stats() -> None:
        stats = bridge.get_stats()
        requests = sum(v for k, v in stats.items() if k.endswith(".requests"))
        errors = sum(v for k, v in stats.items() if k.endswith(".errors"))
        console.print(f"[dim]Stats: {stats['active_servers']} server(s), {requests} requests, {errors} errors[/dim]")

    async def main() -> None:
        try:
            await bridge.start()
        except RegBridgeError as e:
            _fail(e)
        table = Table(title="Servers", show_header=True)
        table.add_column("Name", style="cyan")
        table.add_column("Endpoint", style="yellow")
        table.add_column("Unit", style="green")
        for name, server in bridge.servers.items():
            table.add_row(name, server.endpoint.describe(), str(server.unit_id))
        console.print(table)
        console.print(Panel.fit("[bold green]Serving. Press Ctrl+C to stop.[/bold green]"))
        try:
            await _run_until_signalled(show_stats)
        finally:
            for err in await bridge.stop():
                console.print(f"[yellow]Warning: {err}[/yellow]")
            console.print("[green]Server stopped.[/green]")

    _run_async(main)


if __name__ == "__main__":
    app()
