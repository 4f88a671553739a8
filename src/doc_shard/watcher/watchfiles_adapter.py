from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable
from pathlib import Path

from watchfiles import awatch

from doc_shard.core.chunker import index_document
from doc_shard.core.errors import DocShardError
from doc_shard.core.formats import SUPPORTED_EXTENSIONS
from doc_shard.core.index import clear_index
from doc_shard.core.ports.watcher import ChangeCallback
from doc_shard.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 400


def _is_supported_file(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_EXTENSIONS


def _is_within(path: Path, directory: Path) -> bool:
    return path == directory or directory in path.parents


class WatchfilesWatcher:
    """Watch a directory tree for document changes and hand them to a callback.

    Files under ``ignore`` are dropped, so a watcher whose index directory lives
    inside the watched tree does not react to its own index writes.
    """

    def __init__(
        self,
        directory: str | Path,
        on_change: ChangeCallback,
        ignore: Iterable[str | Path] = (),
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ) -> None:
        self._directory = Path(directory)
        self._on_change = on_change
        self._ignore = tuple(Path(p).resolve() for p in ignore)
        self._debounce_ms = debounce_ms
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._watch())
        logger.info("Watching %s for document changes", self._directory)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Stopped watching %s", self._directory)

    def _relevant(self, raw_path: str) -> bool:
        path = Path(raw_path)
        if not _is_supported_file(path):
            return False
        resolved = path.resolve()
        return not any(_is_within(resolved, ignored) for ignored in self._ignore)

    async def _watch(self) -> None:
        async for changes in awatch(self._directory, debounce=self._debounce_ms):
            paths = {Path(p) for _, p in changes if self._relevant(p)}
            if not paths:
                continue
            logger.info("Detected changes in %d document(s)", len(paths))
            try:
                await self._on_change(paths)
            except Exception:
                logger.exception("Re-indexing callback failed for %d document(s)", len(paths))


class IndexRefresher:
    """Watcher callback that rebuilds indexes of changed documents and drops those of deleted ones."""

    def __init__(self, index_dir: str | Path | None = None, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.index_dir = Path(index_dir) if index_dir is not None else self.settings.index_dir

    async def __call__(self, paths: set[Path]) -> None:
        for path in sorted(paths):
            if not path.exists():
                await asyncio.to_thread(clear_index, path, self.index_dir)
                continue
            try:
                outcome = await asyncio.to_thread(index_document, path, self.index_dir, False, self.settings)
            except DocShardError as exc:
                logger.warning("Could not index %s: %s", path, exc)
                continue
            if not outcome.cached:
                logger.info("Re-indexed %s (%d nodes)", path, outcome.index.total_nodes)
