"""Command line interface for mdserve."""

from __future__ import annotations

import logging
import threading
import webbrowser
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from mdserve import __version__
from mdserve.config import AppConfig
from mdserve.errors import MdServeError
from mdserve.index.builder import IndexBuilder
from mdserve.index.search import QueryEngine
from mdserve.index.storage import SQLiteIndexStore
from mdserve.web.app import create_app

console = Console()
app = typer.Typer(help="mdserve - serve and search a directory of markdown files")

_DEFAULTS = AppConfig()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_index_parent(index_path: Path) -> None:
    index_path.parent.mkdir(parents=True, exist_ok=True)


def _build_config(**overrides) -> AppConfig:
    try:
        return AppConfig(**overrides)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _open_browser(url: str, delay: float = 0.1) -> None:
    timer = threading.Timer(delay, webbrowser.open, args=(url,))
    timer.daemon = True
    timer.start()


@app.command()
def serve(
    directory: Path = typer.Option(
        Path("."), "--directory", "-d", envvar="MDSERVE_DIR", help="Directory of markdown files",
        exists=True, file_okay=False, resolve_path=True,
    ),
    host: str = typer.Option(_DEFAULTS.host, envvar="MDSERVE_HOST", help="Host interface"),
    port: int = typer.Option(_DEFAULTS.port, envvar="MDSERVE_PORT", help="Server port"),
    theme: str = typer.Option(
        _DEFAULTS.theme, "--theme", "-t", envvar="MDSERVE_THEME", help="CSS theme: 'dark' or 'light'"
    ),
    index: Path = typer.Option(None, "--index", envvar="MDSERVE_INDEX", help="Search index path"),
    interval: float = typer.Option(
        _DEFAULTS.rebuild_interval, help="Seconds between search index rebuilds"
    ),
    open_page: Optional[str] = typer.Option(
        None, "--open", "-o", help="Document to open in a browser once the server is up"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", envvar="MDSERVE_DEBUG", help="Verbose logging"
    ),
) -> None:
    """Launch a webserver that displays markdown files."""
    import uvicorn

    _setup_logging(verbose)
    config = _build_config(
        root_dir=directory,
        host=host,
        port=port,
        theme=theme,
        index_path=index,
        rebuild_interval=interval,
    )

    web_app = create_app(config)
    console.print(
        f"Serving [bold]{config.root_dir}[/bold] on http://{config.addr} "
        f"(index: {config.resolve_index_path(Path.cwd())})"
    )
    if open_page is not None:
        _open_browser(f"http://{config.addr}/{open_page.lstrip('/')}")

    uvicorn.run(
        web_app,
        host=config.host,
        port=config.port,
        timeout_keep_alive=1,
        log_level="debug" if verbose else "info",
    )


@app.command()
def index(
    directory: Path = typer.Option(
        Path("."), "--directory", "-d", envvar="MDSERVE_DIR", help="Directory of markdown files",
        exists=True, file_okay=False, resolve_path=True,
    ),
    index_path: Path = typer.Option(None, "--index", envvar="MDSERVE_INDEX", help="Search index path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Run a single search index build."""
    _setup_logging(verbose)
    config = _build_config(root_dir=directory, index_path=index_path)
    resolved = config.resolve_index_path(Path.cwd())
    _ensure_index_parent(resolved)

    store = SQLiteIndexStore(resolved)
    builder = IndexBuilder(
        store, config.root_dir, suffix=config.suffix, max_file_size=config.max_file_size
    )
    console.print(f"Indexing into [bold]{resolved}[/bold]...")
    try:
        stats = builder.build_index()
    except MdServeError as exc:
        console.print(f"[red]Indexing failed: {exc}[/red]")
        raise typer.Exit(code=1)
    finally:
        store.close()

    console.print(
        f"Indexed: {stats.indexed}, oversized: {stats.oversized}, "
        f"removed: {stats.removed} in {stats.elapsed:.2f}s"
    )


@app.command()
def search(
    phrase: str = typer.Argument(..., help="Search phrase; every word must match"),
    index_path: Path = typer.Option(None, "--index", envvar="MDSERVE_INDEX", help="Search index path"),
) -> None:
    """Search the index for documents containing every term."""
    config = _build_config(index_path=index_path)
    resolved = config.resolve_index_path(Path.cwd())
    if not resolved.exists():
        raise typer.BadParameter(f"Index not found: {resolved}")

    store = SQLiteIndexStore(resolved)
    try:
        hits = QueryEngine(store).query(phrase)
    except MdServeError as exc:
        console.print(f"[red]Search failed: {exc}[/red]")
        raise typer.Exit(code=1)
    finally:
        store.close()

    if not hits:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Document")
    for doc_id in hits:
        table.add_row(doc_id)
    console.print(table)


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"Markdown Server v{__version__}")
