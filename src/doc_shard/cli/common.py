import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from doc_shard.core.errors import DocShardError

console = Console()
err_console = Console(stderr=True)


def configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def render_table(headers: Sequence[str], rows: Sequence[tuple[Any, ...]], title: str | None = None) -> None:
    table = Table(show_lines=False, title=title)
    for h in headers:
        table.add_column(h)
    for row in rows:
        table.add_row(*("" if v is None else escape(str(v)) for v in row))
    console.print(table)
    console.print(f"({len(rows)} rows)")


@contextmanager
def reported_errors() -> Iterator[None]:
    """Print engine errors with rich and exit with status 1."""
    try:
        yield
    except (DocShardError, FileNotFoundError, ValueError) as exc:
        err_console.print(f"[red]Error:[/red] {escape(str(exc))}", soft_wrap=True)
        raise typer.Exit(1) from exc
