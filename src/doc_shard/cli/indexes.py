from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from doc_shard.cli.common import console, err_console, render_table
from doc_shard.core.errors import CorruptIndex
from doc_shard.core.index import clear_index, list_indexes, load_index
from doc_shard.core.settings import get_settings

indexes_app = typer.Typer(help="Inspect and remove persisted indexes.")

IndexDirOption = Annotated[Path | None, typer.Option("--index-dir", help="Index directory (default: $DOC_SHARD_INDEX_DIR).")]


@indexes_app.command("list")
def list_(index_dir: IndexDirOption = None) -> None:
    """List persisted indexes and the documents they cover; unreadable ones are flagged as corrupt."""
    directory = index_dir or get_settings().index_dir
    rows = []
    for path in list_indexes(directory):
        try:
            index = load_index(path)
        except CorruptIndex as exc:
            err_console.print(f"[yellow]Warning:[/yellow] {escape(str(exc))}", soft_wrap=True)
            rows.append((path.name, None, "corrupt", None, None))
            continue
        if index is not None:
            rows.append((path.name, index.source, index.format, index.total_nodes, index.created.isoformat()))
    render_table(["index", "source", "format", "nodes", "created"], rows)


@indexes_app.command("clear")
def clear(
    file: Annotated[Path, typer.Argument(help="Document whose index should be removed.")],
    index_dir: IndexDirOption = None,
) -> None:
    """Remove the persisted index of a document."""
    directory = index_dir or get_settings().index_dir
    if clear_index(file, directory):
        console.print(f"[green]Removed[/green] index for {file}")
    else:
        console.print(f"[yellow]No index[/yellow] for {file}")
