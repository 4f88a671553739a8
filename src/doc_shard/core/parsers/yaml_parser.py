import yaml

from doc_shard.core.errors import ParseError
from doc_shard.core.helpers import ROOT_NAME, LineTable, escape_key
from doc_shard.core.parsers.builder import PendingNode, TreeBuilder
from doc_shard.models import DocumentTree, NodeType

_TAG_PREFIX = "tag:yaml.org,2002:"
_MERGE_TAG = _TAG_PREFIX + "merge"

_SCALAR_VALUE_TYPES = {
    _TAG_PREFIX + "int": "number",
    _TAG_PREFIX + "float": "number",
    _TAG_PREFIX + "bool": "boolean",
    _TAG_PREFIX + "null": "null",
}


def _value_type(node: yaml.Node) -> str:
    if isinstance(node, yaml.MappingNode):
        return "object"
    if isinstance(node, yaml.SequenceNode):
        return "array"
    return _SCALAR_VALUE_TYPES.get(node.tag, "string")


def _key_text(key: yaml.Node, text: str) -> str:
    if isinstance(key, yaml.ScalarNode):
        return key.value
    return text[key.start_mark.index : key.end_mark.index].strip()


def _members(node: yaml.MappingNode, text: str, seen: frozenset[int] = frozenset()) -> list[tuple[str, yaml.Node]]:
    """Mapping pairs with ``<<`` merge keys applied ahead of the node's own keys."""
    seen = seen | {id(node)}
    merged: list[tuple[str, yaml.Node]] = []
    own: list[tuple[str, yaml.Node]] = []
    for key, value in node.value:
        if key.tag == _MERGE_TAG:
            sources = value.value if isinstance(value, yaml.SequenceNode) else [value]
            for source in sources:
                if isinstance(source, yaml.MappingNode) and id(source) not in seen:
                    merged.extend(_members(source, text, seen))
            continue
        own.append((_key_text(key, text), value))
    return merged + own


def _make_pending(node: yaml.Node, node_type: NodeType, name: str, step: str | None, lines: LineTable) -> PendingNode:
    value_type = _value_type(node)
    if node_type is NodeType.SCALAR and value_type in ("object", "array"):
        node_type = NodeType.OBJECT if value_type == "object" else NodeType.ARRAY
    line, offset = lines.locate(node.start_mark.index)
    return PendingNode(
        type=node_type,
        name=name,
        step=step,
        content=node.value if isinstance(node, yaml.ScalarNode) else None,
        value_type=value_type,
        line=line,
        end_line=lines.line_of(max(node.end_mark.index - 1, node.start_mark.index)),
        offset=offset,
    )


def parse_yaml(text: str, source: str = "<string>", mtime_ns: int | None = None) -> DocumentTree:
    """Parse YAML (one or more documents) into the same node shapes as JSON.

    Aliases are expanded in place; an alias that refers back to one of its own
    ancestors raises :class:`ParseError`.
    """
    lines = LineTable(text)
    try:
        documents = list(yaml.compose_all(text, Loader=yaml.SafeLoader))
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark or exc.context_mark
        reason = exc.problem or str(exc)
        if mark is None:
            raise ParseError(source, 0, reason) from exc
        raise ParseError(source, lines.byte_offset(min(mark.index, len(text))), reason, line=mark.line + 1) from exc
    except yaml.YAMLError as exc:
        raise ParseError(source, 0, str(exc)) from exc

    builder = TreeBuilder(source, text, "yaml")
    # (yaml node, pending node, ids of yaml ancestors)
    stack: list[tuple[yaml.Node, PendingNode, frozenset[int]]] = []

    if not documents:
        builder.set_root(PendingNode(type=NodeType.SCALAR, name=ROOT_NAME, step=None, value_type="null"))
    elif len(documents) == 1:
        root = builder.set_root(_make_pending(documents[0], NodeType.SCALAR, ROOT_NAME, None, lines))
        stack.append((documents[0], root, frozenset()))
    else:
        root = builder.set_root(
            PendingNode(
                type=NodeType.DOCUMENT,
                name=ROOT_NAME,
                step=None,
                value_type="array",
                line=1,
                end_line=lines.line_count,
                offset=0,
            )
        )
        for position, document in enumerate(documents):
            step = f"[{position}]"
            item = builder.add(root, _make_pending(document, NodeType.ARRAY_ITEM, step, step, lines))
            stack.append((document, item, frozenset()))

    while stack:
        node, pending, ancestors = stack.pop()
        if isinstance(node, yaml.ScalarNode):
            continue
        if id(node) in ancestors:
            raise ParseError(
                source,
                lines.byte_offset(node.start_mark.index),
                "recursive alias",
                line=node.start_mark.line + 1,
            )
        inner = ancestors | {id(node)}
        if isinstance(node, yaml.MappingNode):
            members: dict[str, PendingNode] = {}
            for key, value in _members(node, text):
                child = _make_pending(value, NodeType.KEY, key, escape_key(key), lines)
                if key in members:
                    builder.replace(pending, members[key], child)
                else:
                    builder.add(pending, child)
                members[key] = child
                stack.append((value, child, inner))
        else:
            for position, value in enumerate(node.value):
                step = f"[{position}]"
                child = builder.add(pending, _make_pending(value, NodeType.ARRAY_ITEM, step, step, lines))
                stack.append((value, child, inner))

    return builder.finish(mtime_ns=mtime_ns, line_count=lines.line_count)
