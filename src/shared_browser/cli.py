"""CLI module for the shared browser server."""

import asyncio
import json
import sys
from typing import Any, Optional

import click
import httpx
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from shared_browser import __version__
from shared_browser.config import load_settings
from shared_browser.logging_config import configure_logging
from shared_browser.server.runner import serve as run_server

console = Console()


def _default_url(url: Optional[str]) -> str:
    if url:
        return url.rstrip("/")
    return f"http://127.0.0.1:{load_settings().port}"


def _split_extensions(extensions: Optional[str], extension: tuple[str, ...]) -> list[str]:
    dirs = [part.strip() for part in (extensions or "").split(",") if part.strip()]
    dirs.extend(extension)
    return dirs


@click.group()
@click.version_option(version=__version__, prog_name="shared-browser")
def cli():
    """Shared browser server - one persistent browser for many automation clients."""
    pass


@cli.command()
@click.option("--port", type=int, default=None, help="First port to try (SHARED_BROWSER_PORT)")
@click.option("--strict-port", is_flag=True, default=False, help="Fail instead of trying the next port")
@click.option("--host", default=None, help="Listen host (SHARED_BROWSER_HOST)")
@click.option("--extensions", default=None, help="Comma-separated extension directories")
@click.option("--extension", multiple=True, help="Extension directory, repeatable")
@click.option("--headless/--no-headless", default=None, help="Launch the browser headless")
@click.option("--log-level", default=None, help="Minimum log level (debug, info, warning, error)")
@click.option("--log-dir", default=None, help="Directory for the JSON log file")
def serve(
    port: Optional[int],
    strict_port: bool,
    host: Optional[str],
    extensions: Optional[str],
    extension: tuple[str, ...],
    headless: Optional[bool],
    log_level: Optional[str],
    log_dir: Optional[str],
):
    """Launch the browser and serve the HTTP control surface.

    Command-line options override the matching environment variables;
    extension directories are appended to the ones from the environment.

    Example:
        >>> shared-browser serve --port 9223 --extension ./dist
    """
    settings = load_settings(
        SHARED_BROWSER_PORT=port,
        SHARED_BROWSER_STRICT_PORT="true" if strict_port else None,
        SHARED_BROWSER_HOST=host,
        SHARED_BROWSER_HEADLESS=None if headless is None else str(headless).lower(),
        SHARED_BROWSER_LOG_LEVEL=log_level,
        SHARED_BROWSER_LOG_DIR=log_dir,
    ).with_extensions(_split_extensions(extensions, extension))

    log_path = configure_logging(settings.log_level, settings.log_dir)

    console.print(Panel.fit(
        f"[bold blue]shared-browser[/bold blue] {__version__}\n"
        f"Port: {settings.port}{' (strict)' if settings.strict_port else ''}\n"
        f"Profile: {settings.user_data_dir}\n"
        f"Extensions: {', '.join(settings.extension_dirs) or 'none'}\n"
        f"Log file: {log_path}",
        title="Starting",
    ))

    try:
        exit_code = asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        exit_code = 0
    sys.exit(exit_code)


@cli.command()
@click.option("--url", default=None, help="Server URL (default: http://127.0.0.1:<SHARED_BROWSER_PORT>)")
def status(url: Optional[str]):
    """Show the pages of a running server."""
    base_url = _default_url(url)
    try:
        response = httpx.get(f"{base_url}/api/status", timeout=10)
        data = response.json()
    except httpx.HTTPError as e:
        console.print(f"[red]Cannot reach {base_url}: {e}[/red]")
        sys.exit(1)

    table = Table(title=f"Pages at {base_url}")
    table.add_column("id", justify="right")
    table.add_column("url")
    table.add_column("closed")
    for page in data.get("pages", []):
        table.add_row(str(page["id"]), page["url"], "yes" if page["isClosed"] else "no")
    console.print(table)


@cli.command()
@click.argument("action")
@click.argument("payload", required=False)
@click.option("--url", default=None, help="Server URL (default: http://127.0.0.1:<SHARED_BROWSER_PORT>)")
@click.option("--timeout-ms", type=float, default=None, help="Per-request timeout override")
def send(action: str, payload: Optional[str], url: Optional[str], timeout_ms: Optional[float]):
    """Send one action to a running server and print the response.

    PAYLOAD is a JSON object with the action's fields.

    Example:
        >>> shared-browser send goto '{"pageId": "1", "url": "https://example.com"}'
    """
    base_url = _default_url(url)
    try:
        body: dict[str, Any] = json.loads(payload) if payload else {}
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint="PAYLOAD")
    if not isinstance(body, dict):
        raise click.BadParameter("must be a JSON object", param_hint="PAYLOAD")

    body["action"] = action
    if timeout_ms is not None:
        body["timeoutMs"] = timeout_ms

    # Leave the server's timer in charge; no client-side read timeout
    try:
        response = httpx.post(f"{base_url}/api/action", json=body, timeout=None)
        data = response.json()
    except httpx.HTTPError as e:
        console.print(f"[red]Cannot reach {base_url}: {e}[/red]")
        sys.exit(1)

    console.print_json(data=data)
    if not data.get("ok"):
        sys.exit(1)


def main():
    """Main entry point for CLI.

    The CLI provides the following commands:
        - serve: Launch the browser and serve the control surface
        - status: List the pages of a running server
        - send: Post one action to a running server
    """
    cli()


if __name__ == "__main__":
    main()
