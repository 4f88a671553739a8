import json
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from doc_shard.cli.common import configure_logging, console, render_table, reported_errors
from doc_shard.cli.indexes import indexes_app
from doc_shard.cli.query import query_app
from doc_shard.cli.serve import serve, watch
from doc_shard.core.bridge import BashExecutorBridge
from doc_shard.core.chunker import extract as run_extract
from doc_shard.core.chunker import index_document, parse_document, read_chunk
from doc_shard.core.chunker import overview as document_overview
from doc_shard.core.settings import DEFAULT_CHUNK_SIZE, get_settings
from doc_shard.core.sharding import shard_hierarchy
from doc_shard.models import CountPolicy, LevelPolicy, SubtreePolicy

app = typer.Typer(
    name="doc-shard",
    help="doc-shard CLI: parse, index, shard and query XML, YAML, JSON and Markdown documents.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)

FileArg = Annotated[Path, typer.Argument(help="Path to the document.")]
FormatOption = Annotated[str | None, typer.Option("--format", "-f", help="xml, yaml, json, markdown or auto.")]
IndexDirOption = Annotated[Path | None, typer.Option("--index-dir", help="Index directory (default: $DOC_SHARD_INDEX_DIR).")]


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log engine activity.")] = False,
) -> None:
    configure_logging(verbose)


@app.command("parse")
def parse(
    file: FileArg,
    fmt: FormatOption = None,
    limit: Annotated[int, typer.Option(help="Max nodes to show.")] = 50,
) -> None:
    """Parse a document and show its node hierarchy."""
    with reported_errors():
        tree = parse_document(file, fmt)
    rows = []
    for node in tree.iter_preorder():
        if len(rows) >= limit:
            break
        rows.append(("  " * node.level + node.name, node.type.value, node.path, node.id, node.line))
    render_table(["name", "type", "path", "id", "line"], rows, title=f"{tree.format}: {len(tree.nodes)} nodes")


@app.command("index")
def index(
    file: FileArg,
    index_dir: IndexDirOption = None,
    force: Annotated[bool, typer.Option(help="Rebuild even if a fresh index exists.")] = False,
) -> None:
    """Build (or reuse) the persisted index of a document."""
    with reported_errors():
        outcome = index_document(file, index_dir, force=force)
    state = "[cyan]Reused[/cyan]" if outcome.cached else "[green]Indexed[/green]"
    console.print(
        f"{state} {escape(outcome.index.source)}: {outcome.index.total_nodes} nodes, max depth {outcome.index.max_depth}",
        soft_wrap=True,
    )
    console.print(f"Index: {escape(str(outcome.index_path))}", soft_wrap=True)


@app.command("shard")
def shard(
    file: FileArg,
    policy: Annotated[str, typer.Option(help="level, count or subtree.")] = "level",
    size: Annotated[int | None, typer.Option(help="Levels per shard, nodes per shard, or cut depth.")] = None,
    fmt: FormatOption = None,
) -> None:
    """Partition a document into shards."""
    with reported_errors():
        if policy == "level":
            shard_policy: LevelPolicy | CountPolicy | SubtreePolicy = LevelPolicy(levels_per_shard=size or 1)
        elif policy == "count":
            shard_policy = CountPolicy(max_nodes=size or 200)
        elif policy == "subtree":
            shard_policy = SubtreePolicy(depth=1 if size is None else size)
        else:
            raise ValueError(f"Unknown policy {policy!r}. Supported: level, count, subtree")
        shards = shard_hierarchy(parse_document(file, fmt), shard_policy)
    rows = [
        (item.shard_id, len(item.node_ids), json.dumps(item.boundary.model_dump(exclude_none=True)))
        for item in shards
    ]
    render_table(["shard", "nodes", "boundary"], rows)


@app.command("extract")
def extract(
    file: FileArg,
    query: Annotated[str, typer.Argument(help="jq path (.a.b[0]), XPath (/r/s[2]) or heading text.")],
    accelerate: Annotated[
        bool | None, typer.Option("--accelerate/--no-accelerate", help="Force external tools on or off.")
    ] = None,
) -> None:
    """Select nodes, using jq, yq or xmllint when worthwhile."""
    settings = get_settings()
    with reported_errors():
        outcome = run_extract(
            file, query, bridge=BashExecutorBridge(settings.tool_timeout), accelerate=accelerate, settings=settings
        )
    rows = [(node_id, path) for node_id, path in zip(outcome.node_ids, outcome.paths)]
    render_table(["id", "path"], rows)
    source = f"accelerated ({outcome.tool})" if outcome.accelerated else "in-process"
    console.print(f"Evaluated {source}")
    if outcome.fallback_reason:
        console.print(f"[yellow]Fallback:[/yellow] {escape(outcome.fallback_reason)}", soft_wrap=True)


@app.command("read")
def read(
    file: FileArg,
    chunk: Annotated[int, typer.Option(help="Chunk number (1-based).")] = 1,
    chunk_size: Annotated[int, typer.Option(help="Lines per chunk (max 500).")] = DEFAULT_CHUNK_SIZE,
) -> None:
    """Print one line-window of a document."""
    with reported_errors():
        result = read_chunk(file, chunk, chunk_size)
    console.print(
        f"[bold]{escape(result.source)}[/bold] chunk {result.chunk}/{result.total_chunks} "
        f"(lines {result.start_line}-{result.end_line} of {result.total_lines})",
        highlight=False,
        soft_wrap=True,
    )
    console.out(result.content, highlight=False)


@app.command("overview")
def overview(file: FileArg, fmt: FormatOption = None) -> None:
    """Summarize a document's size and structure."""
    with reported_errors():
        summary = document_overview(file, fmt)
    console.print(f"[bold]{escape(summary.source)}[/bold] ({summary.format})", highlight=False, soft_wrap=True)
    console.print(
        f"{summary.size_bytes} bytes, {summary.line_count} lines, {summary.node_count} nodes, "
        f"max depth {summary.max_depth}"
    )
    console.print(f"Recommended chunk size: {summary.recommended_chunk_size} ({summary.estimated_chunks} chunks)")
    if summary.headings:
        render_table(
            ["line", "rank", "heading"], [(h["line"], h["rank"], h["text"]) for h in summary.headings], title="Headings"
        )
    else:
        render_table(
            ["name", "type", "path", "line"],
            [(n["name"], n["type"], n["path"], n["line"]) for n in summary.top_level],
            title="Top level",
        )


@app.command("tools")
def tools() -> None:
    """Show which external extraction tools are installed."""
    availability = BashExecutorBridge().probe()
    rows = [
        (name, "yes" if value is True else "no" if value is False else value)
        for name, value in availability.as_dict().items()
    ]
    render_table(["tool", "available"], rows)


app.add_typer(query_app, name="query")
app.add_typer(indexes_app, name="indexes")
app.command("watch")(watch)
app.command("serve")(serve)


def main() -> None:
    app()
