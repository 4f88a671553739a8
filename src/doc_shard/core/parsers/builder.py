from collections import Counter
from dataclasses import dataclass, field

from doc_shard.core.errors import ParseError
from doc_shard.core.helpers import ROOT_PATH, compute_content_hash, join_path, make_node_id
from doc_shard.models import DocumentTree, HierarchyNode, NodeType


@dataclass
class PendingNode:
    type: NodeType
    name: str
    step: str | None
    content: str | None = None
    value_type: str | None = None
    rank: int | None = None
    line: int | None = None
    end_line: int | None = None
    offset: int | None = None
    children: list["PendingNode"] = field(default_factory=list)


class TreeBuilder:
    """Collects nodes in document order and assigns paths, levels and ids at the end.

    Paths are only known once all siblings are known (XML and Markdown steps get
    an ``[k]`` suffix when siblings share a name), so ids are derived in
    :meth:`finish` with an explicit stack rather than while parsing.
    """

    def __init__(self, source: str, text: str, fmt: str, disambiguate: bool = False) -> None:
        self.source = source
        self.text = text
        self.format = fmt
        self.disambiguate = disambiguate
        self.root: PendingNode | None = None

    def set_root(self, node: PendingNode) -> PendingNode:
        self.root = node
        return node

    def add(self, parent: PendingNode, node: PendingNode) -> PendingNode:
        parent.children.append(node)
        return node

    def replace(self, parent: PendingNode, old: PendingNode, new: PendingNode) -> PendingNode:
        """Swap a child in place, keeping its position among its siblings."""
        parent.children[parent.children.index(old)] = new
        return new

    def finish(self, mtime_ns: int | None = None, line_count: int = 0) -> DocumentTree:
        if self.root is None:
            raise ValueError("TreeBuilder.finish() called before a root was set")

        root_path = ROOT_PATH if self.root.step is None else ROOT_PATH + self.root.step
        root_id = make_node_id(self.source, root_path)
        nodes: dict[str, HierarchyNode] = {}
        # (pending, path, id, parent_id, level)
        stack: list[tuple[PendingNode, str, str, str | None, int]] = [(self.root, root_path, root_id, None, 0)]
        while stack:
            pending, path, node_id, parent_id, level = stack.pop()
            child_paths = self._child_paths(pending, path)
            child_ids = [make_node_id(self.source, child_path) for child_path in child_paths]
            nodes[node_id] = HierarchyNode(
                id=node_id,
                type=pending.type,
                name=pending.name,
                path=path,
                level=level,
                parent_id=parent_id,
                child_ids=child_ids,
                content=pending.content,
                value_type=pending.value_type,
                rank=pending.rank,
                line=pending.line,
                end_line=pending.end_line,
                offset=pending.offset,
            )
            for child, child_path, child_id in reversed(list(zip(pending.children, child_paths, child_ids))):
                stack.append((child, child_path, child_id, node_id, level + 1))

        if len(nodes) != _count(self.root):
            raise ParseError(self.source, 0, "duplicate structural paths produced while building the tree")

        encoded = self.text.encode("utf-8")
        return DocumentTree(
            source=self.source,
            format=self.format,
            root_id=root_id,
            nodes=nodes,
            content_hash=compute_content_hash(encoded),
            mtime_ns=mtime_ns,
            size_bytes=len(encoded),
            line_count=line_count,
        )

    def _child_paths(self, pending: PendingNode, path: str) -> list[str]:
        steps = [child.step or "" for child in pending.children]
        if self.disambiguate:
            totals = Counter(steps)
            seen: Counter[str] = Counter()
            disambiguated = []
            for step in steps:
                if totals[step] > 1:
                    seen[step] += 1
                    disambiguated.append(f"{step}[{seen[step]}]")
                else:
                    disambiguated.append(step)
            steps = disambiguated
        return [join_path(path, step) for step in steps]


def _count(root: PendingNode) -> int:
    total = 0
    stack = [root]
    while stack:
        node = stack.pop()
        total += 1
        stack.extend(node.children)
    return total
