"""FastMCP server exposing doc-shard tools."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastmcp import FastMCP

from doc_shard.core.bridge import BashExecutorBridge
from doc_shard.core.chunker import extract as _extract
from doc_shard.core.chunker import index_document, parse_document, parse_text
from doc_shard.core.chunker import read_chunk as _read_chunk
from doc_shard.core.chunker import overview as _overview
from doc_shard.core.errors import DocShardError
from doc_shard.core.query import query as _query
from doc_shard.core.settings import DEFAULT_CHUNK_SIZE, Settings, get_settings
from doc_shard.core.sharding import shard_hierarchy
from doc_shard.models import CountPolicy, HierarchyNode, LevelPolicy, SubtreePolicy

logger = logging.getLogger(__name__)

_RECOVERABLE = (DocShardError, FileNotFoundError, ValueError)


def _node_summary(node: HierarchyNode, preview_chars: int) -> dict[str, Any]:
    content = node.content or ""
    return {
        "id": node.id,
        "type": node.type.value,
        "name": node.name,
        "path": node.path,
        "level": node.level,
        "parent_id": node.parent_id,
        "children": len(node.child_ids),
        "line": node.line,
        "preview": content[:preview_chars],
    }


def _error(exc: Exception) -> dict[str, Any]:
    logger.info("Tool call failed: %s", exc)
    return {"error": str(exc)}


class DocShardTools:
    """The operations served over MCP; each returns a JSON-ready dict."""

    def __init__(self, settings: Settings | None = None, bridge: BashExecutorBridge | None = None) -> None:
        self.settings = settings or get_settings()
        self.bridge = bridge or BashExecutorBridge(timeout=self.settings.tool_timeout)

    def parse_hierarchy(
        self,
        path: str | None = None,
        content: str | None = None,
        format: str | None = None,
        max_nodes: int = 200,
    ) -> dict[str, Any]:
        """Parse a file or an inline document into its node hierarchy."""
        if path is None and content is None:
            return {"error": "either 'path' or 'content' must be provided."}
        try:
            tree = parse_text(content, format) if content is not None else parse_document(path, format)
        except _RECOVERABLE as exc:
            return _error(exc)
        nodes = []
        for node in tree.iter_preorder():
            if len(nodes) >= max_nodes:
                break
            nodes.append(_node_summary(node, self.settings.preview_chars))
        return {
            "source": tree.source,
            "format": tree.format,
            "root_id": tree.root_id,
            "total_nodes": len(tree.nodes),
            "max_depth": tree.max_depth,
            "truncated": len(tree.nodes) > len(nodes),
            "nodes": nodes,
        }

    def shard(self, path: str, policy: str = "level", size: int | None = None) -> dict[str, Any]:
        """Partition a document into shards by level band, node count or subtree depth."""
        try:
            if policy == "level":
                shard_policy: LevelPolicy | CountPolicy | SubtreePolicy = LevelPolicy(levels_per_shard=size or 1)
            elif policy == "count":
                shard_policy = CountPolicy(max_nodes=size or 200)
            elif policy == "subtree":
                shard_policy = SubtreePolicy(depth=1 if size is None else size)
            else:
                return {"error": f"Unknown policy {policy!r}. Supported: level, count, subtree"}
            shards = shard_hierarchy(parse_document(path), shard_policy)
        except _RECOVERABLE as exc:
            return _error(exc)
        return {
            "source": shards.source,
            "policy": shard_policy.model_dump(),
            "shards": [
                {
                    "shard_id": item.shard_id,
                    "nodes": len(item.node_ids),
                    "boundary": item.boundary.model_dump(exclude_none=True),
                    "node_ids": item.node_ids,
                }
                for item in shards
            ],
        }

    def index(self, path: str, force: bool = False) -> dict[str, Any]:
        """Build (or reuse) the persisted index for a document."""
        try:
            outcome = index_document(path, force=force, settings=self.settings)
        except _RECOVERABLE as exc:
            return _error(exc)
        return {
            "source": outcome.index.source,
            "index_path": str(outcome.index_path),
            "cached": outcome.cached,
            "total_nodes": outcome.index.total_nodes,
            "max_depth": outcome.index.max_depth,
        }

    def query(
        self,
        path: str,
        kind: str,
        value: str | None = None,
        match: str = "exact",
        regex: bool = False,
        limit: int = 50,
    ) -> dict[str, Any]:
        """Query a document's index: id, path, type, level, content, children, ancestors or descendants."""
        args: dict[str, Any] = {}
        if kind in ("id", "children", "ancestors", "descendants"):
            args["node_id"] = value
        elif kind == "path":
            args.update(path=value, match=match)
        elif kind == "type":
            args["node_type"] = value
        elif kind == "level":
            args["level"] = value
        elif kind == "content":
            args.update(pattern=value, regex=regex)
        if any(arg is None for arg in args.values()):
            return {"error": f"'value' is required for {kind} queries"}
        try:
            outcome = index_document(path, settings=self.settings)
            entries = _query(outcome.index, kind, **args)
        except _RECOVERABLE as exc:
            return _error(exc)
        return {
            "source": outcome.index.source,
            "total": len(entries),
            "entries": [_node_summary(entry, self.settings.preview_chars) for entry in entries[:limit]],
        }

    def extract(self, path: str, query: str, accelerate: bool | None = None) -> dict[str, Any]:
        """Select nodes with a jq / XPath / heading query, using jq, yq or xmllint when available."""
        try:
            outcome = _extract(path, query, bridge=self.bridge, accelerate=accelerate, settings=self.settings)
        except _RECOVERABLE as exc:
            return _error(exc)
        result: dict[str, Any] = {
            "node_ids": outcome.node_ids,
            "paths": outcome.paths,
            "tool": outcome.tool,
            "accelerated": outcome.accelerated,
            "fallback_reason": outcome.fallback_reason,
        }
        if outcome.tree is not None:
            result["nodes"] = [
                _node_summary(outcome.tree.nodes[node_id], self.settings.preview_chars) for node_id in outcome.node_ids
            ]
        return result

    def read_chunk(self, path: str, chunk: int = 1, chunk_size: int = DEFAULT_CHUNK_SIZE) -> dict[str, Any]:
        """Read a long document in sequential line chunks (max 500 lines each)."""
        try:
            result = _read_chunk(path, chunk, chunk_size, bridge=self.bridge, settings=self.settings)
        except _RECOVERABLE as exc:
            return _error(exc)
        return {**asdict(result), "has_more": result.has_more}

    def overview(self, path: str) -> dict[str, Any]:
        """Document metadata and structure without its full content."""
        try:
            return asdict(_overview(path))
        except _RECOVERABLE as exc:
            return _error(exc)

    def tools(self) -> dict[str, Any]:
        """Report which external extraction tools are installed."""
        return self.bridge.probe().as_dict()


def create_mcp_server(settings: Settings | None = None, bridge: BashExecutorBridge | None = None) -> FastMCP:
    """Create a FastMCP server wired to the given settings and bridge."""

    tools = DocShardTools(settings, bridge)
    mcp = FastMCP(
        "doc-shard",
        instructions="Parse, index, shard and query large XML, YAML, JSON and Markdown documents.",
    )
    for handler in (
        tools.parse_hierarchy,
        tools.shard,
        tools.index,
        tools.query,
        tools.extract,
        tools.read_chunk,
        tools.overview,
        tools.tools,
    ):
        mcp.tool(handler)
    return mcp
