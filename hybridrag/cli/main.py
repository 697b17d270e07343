"""
HybridRAG CLI - main application entry point.

Commands:
    ingest PATH...      Chunk, embed and index documents
    ask QUESTION        Answer a question (optionally streaming)
    health              Show a running server's search and vector store health
    reset-breaker       Force a running server's circuit breaker closed
    serve               Run the HTTP API with uvicorn

Use the ``chromadb`` vector backend in the config file for an index that
persists between invocations; the in-memory backend only lives for one
command, so ``ask --docs`` ingests before answering.
"""

from __future__ import annotations

from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import typer

from hybridrag.cli.console import get_console, render_error, render_mapping, status_text
from hybridrag.core.config import Config
from hybridrag.core.config_loaders import load_config
from hybridrag.core.logging import configure_logging, get_logger
from hybridrag.pipeline.models import CONTENT, DONE, ERROR, SEARCH_COMPLETE

logger = get_logger(__name__)

SERVER_TIMEOUT_SECONDS = 10.0

app = typer.Typer(
    name="hybridrag",
    help="Hybrid retrieval-augmented question answering",
    add_completion=False,
)


class _State:
    config_path: Optional[Path] = None


def safe_cli_command(operation_name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Render errors as panels and exit with status 1."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except typer.Exit:
                raise
            except Exception as e:
                logger.error("Command failed", command=operation_name, error=str(e))
                render_error(e, f"While running {operation_name}")
                raise typer.Exit(code=1)

        return wrapper

    return decorator


def _load_config() -> Config:
    return load_config(_State.config_path)


def _build_service(config: Config):  # type: ignore[no-untyped-def]
    from hybridrag.pipeline.service import RAGService

    service = RAGService(config)
    service.initialize()
    return service


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to a YAML config file"
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
) -> None:
    """HybridRAG - hybrid retrieval-augmented question answering."""
    if version:
        from hybridrag import __version__

        typer.echo(f"HybridRAG {__version__}")
        raise typer.Exit()

    configure_logging(level="DEBUG" if verbose else "WARNING")
    _State.config_path = config

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("ingest")
@safe_cli_command("ingest")
def ingest_command(
    paths: List[Path] = typer.Argument(..., help="Files or directories (.md, .txt)"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", min=1),
) -> None:
    """Chunk, embed and index documents."""
    console = get_console()
    service = _build_service(_load_config())
    with console.status("Ingesting documents..."):
        summary = service.ingest_paths(paths, batch_size=batch_size)

    render_mapping("Ingestion", summary.to_dict())
    if summary.errors:
        console.print(f"[yellow]{summary.errors} document(s) had failed batches[/yellow]")
        raise typer.Exit(code=1)


@app.command("ask")
@safe_cli_command("ask")
def ask_command(
    question: str = typer.Argument(..., help="Question to answer"),
    docs: Optional[List[Path]] = typer.Option(
        None, "--docs", "-d", help="Ingest these paths before answering"
    ),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n"),
    stream: bool = typer.Option(False, "--stream", "-s", help="Print the answer as it arrives"),
    show_sources: bool = typer.Option(True, "--sources/--no-sources"),
) -> None:
    """Answer a question from the indexed documents."""
    console = get_console()
    service = _build_service(_load_config())
    if docs:
        with console.status("Ingesting documents..."):
            service.ingest_paths(docs)

    if stream:
        _ask_streaming(service, question, namespace, show_sources)
        return

    with console.status("Searching..."):
        result = service.call_chain(question, namespace=namespace)

    console.print(result.text)
    console.print(
        f"\n[dim]quality {result.quality.overall_score:.2f} · "
        f"confidence {result.confidence:.2f} · {result.completeness}"
        f"{' · cached' if result.cached else ''}[/dim]"
    )
    if show_sources:
        _print_sources([s.to_dict() for s in result.sources])


def _ask_streaming(service: Any, question: str, namespace: Optional[str], show_sources: bool) -> None:
    console = get_console()
    for event in service.stream_chain(question, namespace=namespace):
        if event.type == SEARCH_COMPLETE:
            console.print(
                f"[dim]{event.data['total_results']} passages · "
                f"{event.data['search_strategy']}[/dim]"
            )
        elif event.type == CONTENT:
            console.print(event.data["text"], end="", markup=False, highlight=False)
        elif event.type == DONE:
            console.print()
            if show_sources:
                _print_sources(event.data["sources"])
        elif event.type == ERROR:
            console.print(f"\n[red]{event.data['message']}[/red]")
            raise typer.Exit(code=1)


def _print_sources(sources: List[dict]) -> None:
    if not sources:
        return
    console = get_console()
    console.print("\n[bold]Sources[/bold]")
    for i, source in enumerate(sources, 1):
        section = f" › {source['section']}" if source.get("section") else ""
        console.print(
            f"  [{i}] {source['source']}{section} "
            f"[dim]({source['contentType']}, {source['relevance']:.2f})[/dim]"
        )


def _server_url(url: Optional[str]) -> str:
    if url:
        return url.rstrip("/")
    api = _load_config().api
    return f"http://{api.host}:{api.port}"


def _call_server(method: str, base_url: str, path: str) -> Dict[str, Any]:
    """Send one request to a running server and return its JSON body."""
    try:
        response = httpx.request(method, f"{base_url}{path}", timeout=SERVER_TIMEOUT_SECONDS)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error("Server request failed", url=base_url, path=path, error=str(e))
        render_error(e, f"Could not reach the HybridRAG server at {base_url}")
        raise typer.Exit(code=1)
    return response.json()


@app.command("health")
@safe_cli_command("health")
def health_command(
    url: Optional[str] = typer.Option(
        None, "--url", "-u", help="Server base URL (default from config)"
    ),
) -> None:
    """Show search and vector store health of a running server."""
    console = get_console()
    report = _call_server("GET", _server_url(url), "/v1/health")
    console.print(status_text(report["status"]))
    for issue in report.get("issues", []):
        console.print(f"  [yellow]- {issue}[/yellow]")
    stats = report.get("stats", {})
    render_mapping("Search", stats.get("search", {}))
    render_mapping("Vector store", stats.get("vector_store", {}))


@app.command("reset-breaker")
@safe_cli_command("reset-breaker")
def reset_breaker_command(
    url: Optional[str] = typer.Option(
        None, "--url", "-u", help="Server base URL (default from config)"
    ),
) -> None:
    """Force a running server's vector store circuit breaker closed."""
    body = _call_server("POST", _server_url(url), "/v1/admin/circuit-breaker/reset")
    state = body["circuit_breaker"]["state"]
    get_console().print(f"[green]Circuit breaker reset[/green] ({state})")


@app.command("serve")
@safe_cli_command("serve")
def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", min=1, max=65535),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    from hybridrag.api.app import create_app

    config = _load_config()
    host = host or config.api.host
    port = port or config.api.port

    console = get_console()
    console.print(f"\n[cyan]Starting HybridRAG API[/cyan] on http://{host}:{port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    service = _build_service(config)
    uvicorn.run(create_app(service), host=host, port=port)
