from pathlib import Path
from typing import Annotated

import typer

from doc_shard.cli.common import console, render_table, reported_errors
from doc_shard.core.chunker import index_document
from doc_shard.core.query import PathMatch, QueryKind, query
from doc_shard.models import HierarchyIndex, IndexEntry

query_app = typer.Typer(help="Query a document's index (built on demand).")

FileArg = Annotated[Path, typer.Argument(help="Document to query.")]
NodeIdArg = Annotated[str, typer.Argument(help="Node id.")]
IndexDirOption = Annotated[Path | None, typer.Option("--index-dir", help="Index directory (default: $DOC_SHARD_INDEX_DIR).")]
LimitOption = Annotated[int, typer.Option(help="Max rows to show.")]


def _load(file: Path, index_dir: Path | None) -> HierarchyIndex:
    return index_document(file, index_dir).index


def _render_entries(entries: list[IndexEntry], limit: int) -> None:
    rows = [(e.id, e.type.value, e.name, e.path, e.level, e.line, e.preview) for e in entries[:limit]]
    render_table(["id", "type", "name", "path", "level", "line", "preview"], rows)
    if len(entries) > limit:
        console.print(f"[yellow]{len(entries) - limit} more not shown (use --limit)[/yellow]")


def _run(file: Path, index_dir: Path | None, limit: int, kind: QueryKind, **args: object) -> None:
    with reported_errors():
        entries = query(_load(file, index_dir), kind, **args)
    _render_entries(entries, limit)


@query_app.command("id")
def by_id(file: FileArg, node_id: NodeIdArg, index_dir: IndexDirOption = None) -> None:
    """Show one node by id."""
    _run(file, index_dir, 1, QueryKind.ID, node_id=node_id)


@query_app.command("path")
def by_path(
    file: FileArg,
    path: Annotated[str, typer.Argument(help="Structural path, prefix or glob (e.g. /a/b, /a/*).")],
    match: Annotated[PathMatch, typer.Option(help="How to match the path.")] = PathMatch.EXACT,
    index_dir: IndexDirOption = None,
    limit: LimitOption = 50,
) -> None:
    """Find nodes by structural path."""
    _run(file, index_dir, limit, QueryKind.PATH, path=path, match=match)


@query_app.command("type")
def by_type(
    file: FileArg,
    node_type: Annotated[str, typer.Argument(help="Node type (element, key, heading, ...).")],
    index_dir: IndexDirOption = None,
    limit: LimitOption = 50,
) -> None:
    """Find nodes by type."""
    _run(file, index_dir, limit, QueryKind.TYPE, node_type=node_type)


@query_app.command("level")
def by_level(
    file: FileArg,
    level: Annotated[int, typer.Argument(help="Depth from the root (root = 0).")],
    index_dir: IndexDirOption = None,
    limit: LimitOption = 50,
) -> None:
    """Find nodes at a depth."""
    _run(file, index_dir, limit, QueryKind.LEVEL, level=level)


@query_app.command("content")
def by_content(
    file: FileArg,
    pattern: Annotated[str, typer.Argument(help="Substring (case-insensitive) or regular expression.")],
    regex: Annotated[bool, typer.Option(help="Treat the pattern as a regular expression.")] = False,
    index_dir: IndexDirOption = None,
    limit: LimitOption = 50,
) -> None:
    """Search node content."""
    _run(file, index_dir, limit, QueryKind.CONTENT, pattern=pattern, regex=regex)


@query_app.command("children")
def children(file: FileArg, node_id: NodeIdArg, index_dir: IndexDirOption = None, limit: LimitOption = 50) -> None:
    """List ordered children of a node."""
    _run(file, index_dir, limit, QueryKind.CHILDREN, node_id=node_id)


@query_app.command("ancestors")
def ancestors(file: FileArg, node_id: NodeIdArg, index_dir: IndexDirOption = None, limit: LimitOption = 50) -> None:
    """List ancestors of a node, parent first."""
    _run(file, index_dir, limit, QueryKind.ANCESTORS, node_id=node_id)


@query_app.command("descendants")
def descendants(file: FileArg, node_id: NodeIdArg, index_dir: IndexDirOption = None, limit: LimitOption = 50) -> None:
    """List descendants of a node in document order."""
    _run(file, index_dir, limit, QueryKind.DESCENDANTS, node_id=node_id)
