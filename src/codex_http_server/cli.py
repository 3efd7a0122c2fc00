"""Codex HTTP Server CLI.

Usage:
    codex-http-server                                # Serve on 0.0.0.0:8081 (echo handler)
    codex-http-server --addr 127.0.0.1:9000          # Custom bind address
    codex-http-server --runtime myapp.agent:manager  # Serve an agent runtime
    codex-http-server --health                       # Check server health

    codex-http-server send "hello"                   # Send a prompt, print events
"""

from __future__ import annotations

import asyncio
import logging
import sys

import click
import httpx

from .config import DEFAULT_ADDR, ServerSettings, parse_addr
from .errors import CodexHttpError
from .handler import EchoHandler, MessageHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str) -> None:
    """Route all logging to stderr at the given level."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(stderr_handler)
    root_logger.setLevel(level.upper())


@click.group(invoke_without_command=True)
@click.option("--addr", default=None, help=f"Server bind address [default: {DEFAULT_ADDR}]")
@click.option(
    "--runtime",
    "runtime_ref",
    default=None,
    help="Agent runtime as module:attribute (ConversationManager or factory)",
)
@click.option(
    "--dangerously-bypass-approvals-and-sandbox/--no-dangerously-bypass-approvals-and-sandbox",
    "bypass",
    default=None,
    help="Run agent commands without approvals or sandbox [default: on]",
)
@click.option("--ping-interval", type=float, default=None, help="Seconds between SSE pings")
@click.option("--shutdown-grace", type=float, default=None, help="Seconds to drain on shutdown")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level [default: INFO]",
)
@click.option("--health", "health_check", is_flag=True, help="Check server health and exit")
@click.option("--url", default="http://localhost:8081", help="Server URL for --health")
@click.pass_context
def main(
    ctx: click.Context,
    addr: str | None,
    runtime_ref: str | None,
    bypass: bool | None,
    ping_interval: float | None,
    shutdown_grace: float | None,
    log_level: str | None,
    health_check: bool,
    url: str,
) -> None:
    """Codex HTTP Server - JSON requests in, JSON or SSE out."""
    if ctx.invoked_subcommand is not None:
        return

    if health_check:
        _do_health_check(url)
        return

    try:
        host, port = parse_addr(addr) if addr else (None, None)
        settings = ServerSettings.from_env(
            host=host,
            port=port,
            dangerously_bypass_approvals_and_sandbox=bypass,
            ping_interval=ping_interval,
            shutdown_grace=shutdown_grace,
            log_level=log_level.upper() if log_level else None,
        )
    except CodexHttpError as e:
        raise click.ClickException(str(e)) from e

    configure_logging(settings.log_level)
    handler = _build_handler(runtime_ref, settings)
    _run_http_server(handler, settings)


def _build_handler(runtime_ref: str | None, settings: ServerSettings) -> MessageHandler:
    if runtime_ref is None:
        click.echo("No --runtime given, serving the echo handler", err=True)
        return EchoHandler(stream_kinds={"UserMessage"})

    from .agent import AgentHandler, load_manager

    try:
        manager = load_manager(runtime_ref)
    except CodexHttpError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Loaded agent runtime {runtime_ref}", err=True)
    return AgentHandler(
        manager,
        dangerously_bypass_approvals_and_sandbox=settings.dangerously_bypass_approvals_and_sandbox,
    )


def _run_http_server(handler: MessageHandler, settings: ServerSettings) -> None:
    """Run the HTTP server until interrupted."""
    from .server import HttpServer

    server = HttpServer(handler, settings)
    click.echo(f"Starting Codex HTTP server on http://{settings.addr}", err=True)
    click.echo("Press Ctrl+C to stop", err=True)

    try:
        asyncio.run(server.run())
    except CodexHttpError as e:
        raise click.ClickException(str(e)) from e
    except KeyboardInterrupt:
        click.echo("\nShutting down", err=True)


def _do_health_check(url: str) -> None:
    """Check server health."""

    async def check() -> None:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"{url}/health")
        except httpx.ConnectError:
            click.echo(f"Cannot connect to server at {url}", err=True)
            sys.exit(1)

        if response.status_code == 200:
            click.echo(f"Server is healthy: {response.text}")
        else:
            click.echo(f"Server returned {response.status_code}", err=True)
            sys.exit(1)

    asyncio.run(check())


@main.command("send")
@click.argument("prompt")
@click.option("--url", default="http://localhost:8081", help="Server URL")
@click.option("--id", "message_id", default=None, help="Request id echoed on every event")
@click.option("--work-dir", default=None, help="Working directory for the agent")
def send(prompt: str, url: str, message_id: str | None, work_dir: str | None) -> None:
    """Send a prompt and print every returned message as a JSON line.

    Examples:

        codex-http-server send "list the files here"

        codex-http-server send "run the tests" --work-dir /src/project --id 42
    """
    from .client import HttpServerClient
    from .protocol import Message, UserMessageEvent

    message = Message(
        id=message_id,
        routing_metadata=work_dir,
        payload=UserMessageEvent(message=prompt),
    )

    async def run() -> None:
        async with HttpServerClient(url) as client:
            async for reply in client.stream(message):
                click.echo(reply.to_json())

    try:
        asyncio.run(run())
    except httpx.HTTPStatusError as e:
        click.echo(f"Server returned {e.response.status_code}: {e.response.text}", err=True)
        sys.exit(1)
    except httpx.ConnectError:
        click.echo(f"Cannot connect to server at {url}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
