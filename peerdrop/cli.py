#!/usr/bin/env python3
"""
peerdrop CLI

Command-line interface for sending files and folders between peers.

Usage:
    peerdrop serve                      # Receive into ./received_data
    peerdrop serve --push HOST:PORT DIR # Receive, and push DIR once
    peerdrop send HOST:PORT PATH        # Send a file or folder
    peerdrop config                     # Show effective configuration
"""

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.logging import RichHandler

from .config import load_config
from .errors import TransferError
from .node import Peer, parse_address

# Status and errors go to stderr
console = Console(stderr=True)


def setup_logging(level: str = 'INFO', verbose: bool = False):
    """Configure logging with rich output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
        force=True,
    )


def _address(value: str, default_port: int):
    try:
        return parse_address(value, default_port)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='ADDRESS')


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--host', default=None, help='Listen address [env PEERDROP_HOST]')
@click.option('--port', type=int, default=None, help='Listen/default peer TCP port [env PEERDROP_PORT]')
@click.option('--output-dir', type=click.Path(file_okay=False), default=None,
              help='Where received files go [env PEERDROP_OUTPUT_DIR]')
@click.option('--buffer-size', type=int, default=None, help='Copy buffer in bytes')
@click.pass_context
def cli(ctx, verbose, host, port, output_dir, buffer_size):
    """peerdrop - send files and folders to a peer over TCP."""
    try:
        config = load_config(
            host=host,
            port=port,
            output_dir=output_dir,
            buffer_size=buffer_size,
        )
    except ValueError as e:
        raise click.UsageError(str(e))

    setup_logging(config.log_level, verbose)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--max-sessions', type=int, default=None,
              help='Max concurrent receive sessions (0 = no limit)')
@click.option('--push', nargs=2, type=(str, click.Path(exists=True)), default=None,
              metavar='ADDRESS PATH', help='Also send PATH to ADDRESS once listening')
@click.pass_context
def serve(ctx, max_sessions, push):
    """Receive files until interrupted."""
    config = ctx.obj['config']
    if max_sessions is not None:
        if max_sessions < 0:
            raise click.BadParameter('must be >= 0', param_hint='--max-sessions')
        config.max_sessions = max_sessions

    push_target = None
    if push:
        push_target = (_address(push[0], config.port), Path(push[1]))

    async def run():
        peer = Peer(config)
        await peer.start()

        host, port = peer.address
        console.print(Panel.fit(
            f"[bold green]Listening[/bold green]\n\n"
            f"Address: [yellow]{host}:{port}[/yellow]\n"
            f"Output Dir: [blue]{config.output_dir}[/blue]\n"
            f"Max Sessions: [yellow]{config.max_sessions or 'unlimited'}[/yellow]",
            title="peerdrop"
        ))
        console.print("[dim]Press Ctrl+C to stop[/dim]\n")

        await peer.serve(push=push_target)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
    except TransferError as e:
        console.print(f"[red]✗ {e}[/red]")
        ctx.exit(1)


@cli.command()
@click.argument('address')
@click.argument('path', type=click.Path(exists=True))
@click.pass_context
def send(ctx, address, path):
    """Send a file or folder to ADDRESS (host:port)."""
    config = ctx.obj['config']
    target = _address(address, config.port)

    async def run():
        return await Peer(config).send(target, Path(path))

    try:
        result = asyncio.run(run())
    except TransferError as e:
        console.print(f"[red]✗ Transfer failed: {e}[/red]")
        ctx.exit(1)

    console.print(
        f"[green]✓ Sent {len(result.files)} files "
        f"({format_size(result.total_bytes)}) in {result.elapsed_seconds:.2f}s[/green]"
    )


@cli.command('config')
@click.pass_context
def show_config(ctx):
    """Show the effective configuration."""
    config = ctx.obj['config']

    table = Table(title="peerdrop configuration")
    table.add_column("Option", style="cyan")
    table.add_column("Value", style="yellow")
    for key, value in config.to_dict().items():
        table.add_row(key, str(value))

    Console().print(table)


def format_size(bytes_count: int) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


if __name__ == '__main__':
    cli()
