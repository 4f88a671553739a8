import asyncio
from pathlib import Path
from typing import Annotated

import typer

from doc_shard.cli.common import console, err_console


def serve(
    transport: Annotated[str, typer.Option(help="MCP transport (stdio, sse, http).")] = "stdio",
) -> None:
    """Start the MCP server."""
    from doc_shard.mcp.server import create_mcp_server

    server = create_mcp_server()
    err_console.print(f"[green]Starting MCP server (transport: {transport})[/green]", highlight=False)
    server.run(transport=transport)  # type: ignore[arg-type]


def watch(
    directory: Annotated[Path, typer.Argument(help="Directory to watch.")] = Path("."),
    index_dir: Annotated[Path | None, typer.Option("--index-dir", help="Index directory (default: $DOC_SHARD_INDEX_DIR).")] = None,
) -> None:
    """Re-index documents under a directory whenever they change."""
    from doc_shard.watcher.watchfiles_adapter import IndexRefresher, WatchfilesWatcher

    refresher = IndexRefresher(index_dir)
    watcher = WatchfilesWatcher(directory, refresher, ignore=[refresher.index_dir])

    async def _run() -> None:
        await watcher.start()
        try:
            await asyncio.Event().wait()
        finally:
            await watcher.stop()

    console.print(f"[green]Watching[/green] {directory} (Ctrl+C to stop)")
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("Stopped.")
