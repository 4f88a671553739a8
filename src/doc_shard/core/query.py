import re
from enum import Enum
from typing import Any

from doc_shard.core.errors import QueryError
from doc_shard.core.helpers import compile_path_glob
from doc_shard.models import HierarchyIndex, IndexEntry, NodeType


class QueryKind(str, Enum):
    ID = "id"
    PATH = "path"
    TYPE = "type"
    LEVEL = "level"
    CONTENT = "content"
    CHILDREN = "children"
    ANCESTORS = "ancestors"
    DESCENDANTS = "descendants"


class PathMatch(str, Enum):
    EXACT = "exact"
    PREFIX = "prefix"
    GLOB = "glob"


def _entries(index: HierarchyIndex, ids: list[str]) -> list[IndexEntry]:
    return [index.entries[entry_id] for entry_id in ids]


def query_by_id(index: HierarchyIndex, node_id: str) -> IndexEntry:
    entry = index.entries.get(node_id)
    if entry is None:
        raise QueryError(f"Unknown node id {node_id!r}", index.source)
    return entry


def _is_under(path: str, prefix: str) -> bool:
    if path == prefix:
        return True
    if prefix.endswith("/"):
        return path.startswith(prefix)
    return path.startswith(prefix + "/") or path.startswith(prefix + "[")


def query_by_path(index: HierarchyIndex, path: str, match: PathMatch | str = PathMatch.EXACT) -> list[IndexEntry]:
    """Exact lookup, subtree prefix (``/a`` covers ``/a/b`` and ``/a[0]``) or ``*``/``**`` glob."""
    try:
        mode = PathMatch(match)
    except ValueError:
        raise QueryError(f"Unknown path match {match!r}. Supported: {[m.value for m in PathMatch]}") from None
    if mode is PathMatch.EXACT:
        entry_id = index.by_path.get(path)
        return [index.entries[entry_id]] if entry_id is not None else []
    if mode is PathMatch.PREFIX:
        return [index.entries[entry_id] for node_path, entry_id in index.by_path.items() if _is_under(node_path, path)]
    pattern = compile_path_glob(path)
    return [index.entries[entry_id] for node_path, entry_id in index.by_path.items() if pattern.match(node_path)]


def query_by_type(index: HierarchyIndex, node_type: NodeType | str) -> list[IndexEntry]:
    key = node_type.value if isinstance(node_type, NodeType) else node_type
    return _entries(index, index.by_type.get(key, []))


def query_by_level(index: HierarchyIndex, level: int) -> list[IndexEntry]:
    return _entries(index, index.by_level.get(level, []))


def query_by_content(index: HierarchyIndex, pattern: str, regex: bool = False) -> list[IndexEntry]:
    """Case-insensitive substring match over content, or a regular expression search."""
    if regex:
        try:
            compiled = re.compile(pattern)
        except re.error as exc:
            raise QueryError(f"Invalid pattern {pattern!r}: {exc}", index.source) from exc
        return [entry for entry in index.entries.values() if entry.content is not None and compiled.search(entry.content)]
    needle = pattern.lower()
    return [entry for entry in index.entries.values() if entry.content is not None and needle in entry.content.lower()]


def get_children(index: HierarchyIndex, node_id: str) -> list[IndexEntry]:
    return _entries(index, query_by_id(index, node_id).child_ids)


def get_ancestors(index: HierarchyIndex, node_id: str) -> list[IndexEntry]:
    """Parent first, up to and including the root."""
    ancestors = []
    parent_id = query_by_id(index, node_id).parent_id
    while parent_id is not None:
        parent = index.entries[parent_id]
        ancestors.append(parent)
        parent_id = parent.parent_id
    return ancestors


def get_descendants(index: HierarchyIndex, node_id: str) -> list[IndexEntry]:
    """All nodes below ``node_id`` in pre-order, excluding the node itself."""
    descendants = []
    stack = list(reversed(query_by_id(index, node_id).child_ids))
    while stack:
        entry = index.entries[stack.pop()]
        descendants.append(entry)
        stack.extend(reversed(entry.child_ids))
    return descendants


def query(index: HierarchyIndex, kind: QueryKind | str, **args: Any) -> list[IndexEntry]:
    """Dispatch one of the fixed query shapes; always returns a list of entries."""
    try:
        query_kind = QueryKind(kind)
    except ValueError:
        raise QueryError(f"Unknown query kind {kind!r}. Supported: {[k.value for k in QueryKind]}") from None
    try:
        if query_kind is QueryKind.ID:
            return [query_by_id(index, args["node_id"])]
        if query_kind is QueryKind.PATH:
            return query_by_path(index, args["path"], args.get("match", PathMatch.EXACT))
        if query_kind is QueryKind.TYPE:
            return query_by_type(index, args["node_type"])
        if query_kind is QueryKind.LEVEL:
            try:
                level = int(args["level"])
            except (TypeError, ValueError):
                raise QueryError(f"Invalid level {args['level']!r}: expected an integer") from None
            return query_by_level(index, level)
        if query_kind is QueryKind.CONTENT:
            return query_by_content(index, args["pattern"], bool(args.get("regex", False)))
        if query_kind is QueryKind.CHILDREN:
            return get_children(index, args["node_id"])
        if query_kind is QueryKind.ANCESTORS:
            return get_ancestors(index, args["node_id"])
        return get_descendants(index, args["node_id"])
    except KeyError as exc:
        raise QueryError(f"Missing argument {exc.args[0]!r} for {query_kind.value} query") from None
