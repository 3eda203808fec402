#!/usr/bin/env python3
"""RelayHub - WebSocket relay between operators and remote agents."""

import argparse
import asyncio
import os
import signal
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from rich.console import Console
from rich.table import Table

from config import (
    RELAY_SERVER_HOST,
    RELAY_SERVER_PORT,
    RELAY_OPERATOR_SECRET,
    STATUS_HTTP_PORT,
    IMAGE_OUTPUT_DIR,
    LOG_FILE,
)
from relay.errors import HubStartupError
from relay.server.relay_server import RelayServer
from storage.images import ImageStore
from utils.logger import logger
from web.app import StatusServer


def show_banner(console: Console, hub: RelayServer, http_port) -> None:
    """Print where the hub is listening."""
    table = Table(title="RelayHub", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("WebSocket", f"ws://{hub.host}:{hub.port}")
    table.add_row("Status HTTP", f"http://{hub.host}:{http_port}" if http_port else "disabled")
    table.add_row("Images", IMAGE_OUTPUT_DIR)
    table.add_row("Log file", LOG_FILE)

    console.print(table)


async def run_hub(args, console: Console) -> None:
    """Run the hub until SIGINT/SIGTERM."""
    hub = RelayServer(
        host=args.host,
        port=args.port,
        secret=args.secret,
        image_store=ImageStore(args.images),
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(hub.shutdown()))

    await hub.start()

    status = None
    if not args.no_http:
        status = StatusServer(hub, host=args.host, port=args.http_port)
        try:
            status.start()
        except OSError as e:
            logger.error(f"Status endpoint unavailable: {e}")
            console.print(f"[yellow]Warning:[/yellow] status endpoint not started ({e})")
            status = None

    show_banner(console, hub, status.port if status else None)
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    try:
        await hub.wait_closed()
    finally:
        if status is not None:
            status.stop()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="RelayHub - WebSocket relay between operators and remote agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                          # Listen on 0.0.0.0:8080
  python main.py --port 9000              # Use another WebSocket port
  python main.py --secret s3cret          # Change the operator secret
  python main.py --no-http                # Skip the status endpoint

Operators connect with:
  relay-operator --server ws://HOST:8080 --secret SECRET
        """,
    )

    parser.add_argument(
        "--host",
        default=RELAY_SERVER_HOST,
        help=f"Listen address (default: {RELAY_SERVER_HOST})",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=RELAY_SERVER_PORT,
        help=f"WebSocket port (default: {RELAY_SERVER_PORT})",
    )
    parser.add_argument(
        "--secret",
        default=RELAY_OPERATOR_SECRET,
        help="Shared operator secret",
    )
    parser.add_argument(
        "--http-port",
        type=int,
        default=STATUS_HTTP_PORT,
        help=f"Status endpoint port (default: {STATUS_HTTP_PORT})",
    )
    parser.add_argument(
        "--no-http",
        action="store_true",
        help="Do not start the status endpoint",
    )
    parser.add_argument(
        "--images",
        default=IMAGE_OUTPUT_DIR,
        help=f"Directory for images sent by agents (default: {IMAGE_OUTPUT_DIR})",
    )

    args = parser.parse_args()
    console = Console()

    try:
        console.print("[green]Starting RelayHub...[/green]")
        asyncio.run(run_hub(args, console))
    except HubStartupError as e:
        logger.error(str(e))
        console.print(f"[bold red]Error:[/bold red] {e}", style="red")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")

    console.print("[green]RelayHub stopped.[/green]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
