import json
import re
from dataclasses import dataclass, field

from doc_shard.core.errors import ParseError
from doc_shard.core.helpers import ROOT_NAME, LineTable, escape_key
from doc_shard.core.parsers.builder import PendingNode, TreeBuilder
from doc_shard.models import DocumentTree, NodeType

_WHITESPACE = re.compile(r"[ \t\n\r]*")
_DECODER = json.JSONDecoder()


@dataclass
class _Frame:
    node: PendingNode
    is_object: bool
    count: int = 0
    members: dict[str, PendingNode] = field(default_factory=dict)


def _value_type(value: object) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return "string"


def parse_json(text: str, source: str = "<string>", mtime_ns: int | None = None) -> DocumentTree:
    """Parse JSON into a tree whose root is the top-level value.

    The document is validated by ``json.loads`` first so errors carry the
    decoder's position; the structural scan afterwards only ever sees valid
    input and uses ``raw_decode`` for keys and scalars.
    """
    lines = LineTable(text)
    try:
        json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(source, lines.byte_offset(exc.pos), exc.msg, line=exc.lineno) from exc

    builder = TreeBuilder(source, text, "json")
    frames: list[_Frame] = []

    def skip_ws(pos: int) -> int:
        match = _WHITESPACE.match(text, pos)
        return match.end() if match else pos

    def open_value(pos: int, node_type: NodeType, name: str, step: str | None) -> tuple[PendingNode, int]:
        line, offset = lines.locate(pos)
        char = text[pos]
        if char in "{[":
            is_object = char == "{"
            if node_type in (NodeType.KEY, NodeType.ARRAY_ITEM):
                resolved_type = node_type
            else:
                resolved_type = NodeType.OBJECT if is_object else NodeType.ARRAY
            node = PendingNode(
                type=resolved_type,
                name=name,
                step=step,
                value_type="object" if is_object else "array",
                line=line,
                offset=offset,
            )
            return node, -(pos + 1)
        value, end = _DECODER.raw_decode(text, pos)
        content = value if isinstance(value, str) else text[pos:end]
        node = PendingNode(
            type=NodeType.SCALAR if node_type is NodeType.SCALAR else node_type,
            name=name,
            step=step,
            content=content,
            value_type=_value_type(value),
            line=line,
            end_line=lines.line_of(max(end - 1, pos)),
            offset=offset,
        )
        return node, end

    def place(node: PendingNode, marker: int) -> int:
        """Attach a freshly opened node; containers push a frame (marker < 0)."""
        if marker < 0:
            frames.append(_Frame(node=node, is_object=node.value_type == "object"))
            return -marker
        return marker

    pos = skip_ws(0)
    root, marker = open_value(pos, NodeType.SCALAR, ROOT_NAME, None)
    builder.set_root(root)
    pos = place(root, marker)

    while frames:
        frame = frames[-1]
        pos = skip_ws(pos)
        char = text[pos]
        if char in "}]":
            frame.node.end_line = lines.line_of(pos)
            frames.pop()
            pos += 1
            continue
        if frame.count:
            # separator
            pos = skip_ws(pos + 1)
        if frame.is_object:
            key, pos = _DECODER.raw_decode(text, pos)
            pos = skip_ws(pos)
            pos = skip_ws(pos + 1)
            child, marker = open_value(pos, NodeType.KEY, key, escape_key(key))
            previous = frame.members.get(key)
            if previous is None:
                builder.add(frame.node, child)
            else:
                builder.replace(frame.node, previous, child)
            frame.members[key] = child
        else:
            child, marker = open_value(pos, NodeType.ARRAY_ITEM, f"[{frame.count}]", f"[{frame.count}]")
            builder.add(frame.node, child)
        frame.count += 1
        pos = place(child, marker)

    return builder.finish(mtime_ns=mtime_ns, line_count=lines.line_count)
