"""Command-line interface for the SupportDesk agent.

This module provides the CLI entry point. It can serve the HTTP API, answer
a single question from the terminal, print aggregate metrics, and check
whether the MCP tool-provider can be started.

The interface uses Rich for terminal output: panels for answers, a table
for metrics, and a Rich logging handler for application logs.
"""

import asyncio
import errno
import logging
import socket
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from typing_extensions import Annotated

from .api import create_app
from .bridge import ProtocolBridge
from .config import SupportDeskConfig
from .exceptions import BindConflict
from .pipeline import SupportPipeline

app = typer.Typer(
    name="supportdesk",
    help="SupportDesk Agent - FAQ-grounded support answers with human escalation",
    rich_markup_mode="rich",
)

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def _load_config(data_dir: Optional[Path]) -> SupportDeskConfig:
    config = SupportDeskConfig()
    if data_dir is not None:
        config.data_dir = data_dir
    return config


def bind_socket(host: str, port: int, retries: int) -> socket.socket:
    """Bind a listening socket, moving to the next port while ports are taken.

    Args:
        host: Interface to bind.
        port: First port to try.
        retries: Number of following ports to try after ``port``.

    Returns:
        socket.socket: A bound socket ready to hand to uvicorn.

    Raises:
        BindConflict: If every port from ``port`` to ``port + retries`` is in use.
    """
    for candidate in range(port, port + retries + 1):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, candidate))
        except OSError as e:
            sock.close()
            if e.errno != errno.EADDRINUSE:
                raise
            if candidate < port + retries:
                logger.warning(f"Port {candidate} is in use, retrying on {candidate + 1}")
            continue
        return sock
    raise BindConflict(
        f"Ports {port}-{port + retries} are all in use; stop the existing server process"
    )


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option("--host", help="Interface to bind")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="First port to try")] = None,
    data_dir: Annotated[
        Optional[Path], typer.Option("--data-dir", "-d", help="Directory with faq.json and logs.json")
    ] = None,
    log_level: Annotated[str, typer.Option("--log-level", help="Log level")] = "INFO",
):
    """Serve the HTTP API.

    Binds the configured port, or the next free one within the retry range,
    and runs the API with uvicorn. The MCP tool-provider is started lazily
    on the first request that needs it.
    """
    setup_logging(log_level)
    config = _load_config(data_dir)
    host = host or config.server.host
    port = port if port is not None else config.server.port

    try:
        sock = bind_socket(host, port, config.server.port_retries)
    except BindConflict as e:
        console.print(f"[red]ERROR: {e}[/red]")
        raise typer.Exit(code=1)

    bound_port = sock.getsockname()[1]
    console.print(f"SupportDesk API listening on [bold]http://{host}:{bound_port}[/bold]")
    server = uvicorn.Server(
        uvicorn.Config(create_app(config), log_level=log_level.lower())
    )
    server.run(sockets=[sock])


@app.command()
def ask(
    question: Annotated[str, typer.Argument(help="Support question to answer")],
    local: Annotated[
        bool, typer.Option("--local", help="Skip the MCP tool-provider and answer in-process")
    ] = False,
    data_dir: Annotated[
        Optional[Path], typer.Option("--data-dir", "-d", help="Directory with faq.json and logs.json")
    ] = None,
):
    """Answer a single support question and show the decision trace."""
    setup_logging("WARNING")
    config = _load_config(data_dir)
    if not question.strip():
        console.print("[red]ERROR: question is required[/red]")
        raise typer.Exit(code=1)

    async def run() -> Dict[str, Any]:
        if not local:
            bridge = ProtocolBridge(config.bridge, data_dir=config.data_dir)
            try:
                remote = await bridge.ask_support(question)
            finally:
                await bridge.close()
            if remote.available:
                return {**remote.data, "path": "mcp"}
            console.print(f"[dim]MCP unavailable ({remote.reason}); answering locally[/dim]")
        response = await SupportPipeline(config).ask(question)
        return {**response.to_json_dict(), "path": "local"}

    display_answer(asyncio.run(run()))


@app.command()
def metrics(
    local: Annotated[
        bool, typer.Option("--local", help="Skip the MCP tool-provider and compute in-process")
    ] = False,
    data_dir: Annotated[
        Optional[Path], typer.Option("--data-dir", "-d", help="Directory with faq.json and logs.json")
    ] = None,
):
    """Show deflection rate, confidence statistics and intent counts."""
    setup_logging("WARNING")
    config = _load_config(data_dir)

    async def run() -> Dict[str, Any]:
        if not local:
            bridge = ProtocolBridge(config.bridge, data_dir=config.data_dir)
            try:
                remote = await bridge.get_metrics()
            finally:
                await bridge.close()
            if remote.available:
                return remote.data
        result = await SupportPipeline(config).metrics()
        return result.to_json_dict()

    display_metrics(asyncio.run(run()))


@app.command()
def health(
    data_dir: Annotated[
        Optional[Path], typer.Option("--data-dir", "-d", help="Directory with faq.json and logs.json")
    ] = None,
):
    """Check that the MCP tool-provider starts and accepts a connection."""
    setup_logging("WARNING")
    config = _load_config(data_dir)
    console.print("Checking MCP tool-provider...")

    async def check() -> bool:
        bridge = ProtocolBridge(config.bridge, data_dir=config.data_dir)
        try:
            return await bridge.is_available()
        finally:
            await bridge.close()

    if asyncio.run(check()):
        console.print("✓ SupportDesk MCP Server: [green]healthy[/green]")
    else:
        console.print("✗ SupportDesk MCP Server: [red]unavailable[/red] (local fallback will be used)")
        raise typer.Exit(code=1)


def display_answer(result: Dict[str, Any]):
    """Render an answer with its classification and escalation decision."""
    needs_human = result.get("needsHuman")
    judge = result.get("trace", {}).get("judge", {})
    console.print(
        Panel(
            f"[bold]Intent:[/bold] {result.get('intent')}\n"
            f"[bold]Confidence:[/bold] {result.get('confidence', 0):.3f}\n"
            f"[bold]Needs human:[/bold] {'yes' if needs_human else 'no'} ({judge.get('reason', 'n/a')})\n"
            f"[bold]Path:[/bold] {result.get('path')}",
            title="Classification",
            style="dim",
        )
    )
    console.print(
        Panel(
            Text(result.get("answer", "")),
            title="Answer",
            style="red" if needs_human else "green",
        )
    )
    citations = result.get("citations") or []
    if citations:
        console.print(
            Panel(
                Text("\n".join(f"{c['id']}: {c['title']} ({c['score']})" for c in citations)),
                title="Sources",
                style="dim",
                border_style="dim",
            )
        )


def display_metrics(data: Dict[str, Any]):
    table = Table(title="Support Metrics")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key in ("total", "deflected", "deflectionRate", "avgConfidence", "maxConfidence"):
        table.add_row(key, str(data.get(key, 0)))
    console.print(table)

    by_intent = data.get("byIntent") or {}
    if by_intent:
        intents = Table(title="By Intent")
        intents.add_column("Intent")
        intents.add_column("Count", justify="right")
        for intent, count in sorted(by_intent.items(), key=lambda kv: kv[1], reverse=True):
            intents.add_row(intent, str(count))
        console.print(intents)


def main():
    """Main entry point for the CLI application."""
    app()


if __name__ == "__main__":
    main()
