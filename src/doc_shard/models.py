from collections.abc import Iterator
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class NodeType(str, Enum):
    DOCUMENT = "document"
    ELEMENT = "element"
    ATTRIBUTE = "attribute"
    OBJECT = "object"
    ARRAY = "array"
    SCALAR = "scalar"
    KEY = "key"
    ARRAY_ITEM = "array-item"
    FRONTMATTER = "frontmatter"
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    LIST_ITEM = "list-item"
    CODE = "code"
    BLOCKQUOTE = "blockquote"
    TABLE = "table"
    HTML = "html"
    THEMATIC_BREAK = "thematic-break"


class HierarchyNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: NodeType
    name: str
    path: str
    level: int
    parent_id: str | None = None
    child_ids: list[str] = Field(default_factory=list)
    content: str | None = None
    value_type: str | None = None
    rank: int | None = None
    line: int | None = None
    end_line: int | None = None
    offset: int | None = None


class DocumentTree(BaseModel):
    """A parsed document: nodes keyed by id, in document pre-order."""

    model_config = ConfigDict(frozen=True)

    source: str
    format: str
    root_id: str
    nodes: dict[str, HierarchyNode]
    content_hash: str
    mtime_ns: int | None = None
    size_bytes: int = 0
    line_count: int = 0

    @property
    def root(self) -> HierarchyNode:
        return self.nodes[self.root_id]

    def get(self, node_id: str) -> HierarchyNode | None:
        return self.nodes.get(node_id)

    def children(self, node_id: str) -> list[HierarchyNode]:
        return [self.nodes[child_id] for child_id in self.nodes[node_id].child_ids]

    def iter_preorder(self) -> Iterator[HierarchyNode]:
        stack = [self.root_id]
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.child_ids))

    def node_ids(self) -> list[str]:
        return list(self.nodes)

    @property
    def max_depth(self) -> int:
        return max(node.level for node in self.nodes.values())


class IndexEntry(HierarchyNode):
    source: str
    content_hash: str | None = None
    preview: str = ""


class SourceSignature(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    mtime_ns: int | None = None
    content_hash: str


class HierarchyIndex(BaseModel):
    version: str = "1"
    created: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    format: str
    root_id: str
    source_signature: SourceSignature
    total_nodes: int
    max_depth: int
    entries: dict[str, IndexEntry]

    _by_path: dict[str, str] = PrivateAttr(default_factory=dict)
    _by_type: dict[str, list[str]] = PrivateAttr(default_factory=dict)
    _by_level: dict[int, list[str]] = PrivateAttr(default_factory=dict)

    def model_post_init(self, context: object, /) -> None:
        by_path: dict[str, str] = {}
        by_type: dict[str, list[str]] = {}
        by_level: dict[int, list[str]] = {}
        for entry_id, entry in self.entries.items():
            by_path[entry.path] = entry_id
            by_type.setdefault(entry.type.value, []).append(entry_id)
            by_level.setdefault(entry.level, []).append(entry_id)
        self._by_path = by_path
        self._by_type = by_type
        self._by_level = by_level

    @property
    def source(self) -> str:
        return self.source_signature.path

    @property
    def by_path(self) -> dict[str, str]:
        return self._by_path

    @property
    def by_type(self) -> dict[str, list[str]]:
        return self._by_type

    @property
    def by_level(self) -> dict[int, list[str]]:
        return self._by_level


class LevelPolicy(BaseModel):
    kind: Literal["level"] = "level"
    levels_per_shard: int = Field(default=1, ge=1)


class CountPolicy(BaseModel):
    kind: Literal["count"] = "count"
    max_nodes: int = Field(default=200, ge=1)


class SubtreePolicy(BaseModel):
    kind: Literal["subtree"] = "subtree"
    depth: int = Field(default=1, ge=0)


ShardPolicy = Annotated[LevelPolicy | CountPolicy | SubtreePolicy, Field(discriminator="kind")]


class ShardBoundary(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["level", "count", "subtree"]
    level_start: int | None = None
    level_end: int | None = None
    block: int | None = None
    root_id: str | None = None


class Shard(BaseModel):
    model_config = ConfigDict(frozen=True)

    shard_id: str
    node_ids: list[str]
    boundary: ShardBoundary
