"""Command-line entry point: run the Page Relay server."""

from __future__ import annotations

import logging

import click
import uvicorn
from rich.console import Console

from page_relay import __version__
from page_relay.config import load_config
from page_relay.server import create_app

console = Console()


@click.command()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to page_relay.yaml (auto-detected from CWD or ~/.config/page-relay/)")
@click.option("--host", default=None, help="Bind address (overrides config)")
@click.option("--port", "-p", default=None, type=int, help="Bind port (overrides config)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def main(config_path: str | None, host: str | None, port: int | None,
         verbose: bool):
    """Page Relay - stream AI-generated HTML pages for any path."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.INFO)

    config = load_config(config_path)
    bind_host = host or config.host
    bind_port = port or config.port

    console.print(f"[bold cyan]page-relay[/bold cyan] [dim]v{__version__}[/dim]")
    console.print(f"[dim]Upstream: {config.completions_url}[/dim]")
    console.print(f"[dim]Model: {config.model}[/dim]")
    if not config.has_api_key:
        console.print(
            "[yellow]Warning: OPENAI_API_KEY is not set; "
            "every page will render an error document.[/yellow]"
        )
    console.print(f"[green]Listening on http://{bind_host}:{bind_port}[/green]")

    uvicorn.run(
        create_app(config),
        host=bind_host,
        port=bind_port,
        log_level="debug" if verbose else "info",
    )


if __name__ == "__main__":
    main()
