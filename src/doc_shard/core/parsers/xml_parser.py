from xml.parsers import expat

from doc_shard.core.errors import ParseError
from doc_shard.core.helpers import LineTable
from doc_shard.core.parsers.builder import PendingNode, TreeBuilder
from doc_shard.models import DocumentTree, NodeType


def parse_xml(text: str, source: str = "<string>", mtime_ns: int | None = None) -> DocumentTree:
    """Parse XML into a tree rooted at the document element.

    Attributes become ``attribute`` children ahead of child elements; direct
    character data is stripped and joined into the element's content. Paths
    follow libxml2's node-path form (``/r/s[2]/@id``).
    """
    lines = LineTable(text)
    builder = TreeBuilder(source, text, "xml", disambiguate=True)
    parser = expat.ParserCreate()
    parser.ordered_attributes = True

    open_elements: list[PendingNode] = []
    text_parts: list[list[str]] = []

    def start_element(name: str, attrs: list[str]) -> None:
        line = parser.CurrentLineNumber
        if text_parts:
            # a child element ends the parent's current text run
            text_parts[-1].append("\n")
        node = PendingNode(
            type=NodeType.ELEMENT,
            name=name,
            step=name,
            line=line,
            offset=parser.CurrentByteIndex,
        )
        if open_elements:
            builder.add(open_elements[-1], node)
        else:
            builder.set_root(node)
        for attr_name, attr_value in zip(attrs[::2], attrs[1::2]):
            builder.add(
                node,
                PendingNode(
                    type=NodeType.ATTRIBUTE,
                    name=attr_name,
                    step=f"@{attr_name}",
                    content=attr_value,
                    line=line,
                    end_line=line,
                    offset=parser.CurrentByteIndex,
                ),
            )
        open_elements.append(node)
        text_parts.append([])

    def end_element(name: str) -> None:
        node = open_elements.pop()
        parts = [part.strip() for part in "".join(text_parts.pop()).split("\n")]
        joined = " ".join(part for part in parts if part)
        node.content = joined or None
        node.end_line = parser.CurrentLineNumber

    def character_data(data: str) -> None:
        if text_parts:
            text_parts[-1].append(data)

    parser.StartElementHandler = start_element
    parser.EndElementHandler = end_element
    parser.CharacterDataHandler = character_data

    try:
        parser.Parse(text, True)
    except expat.ExpatError as exc:
        reason = expat.ErrorString(exc.code) if exc.code else str(exc)
        index = lines.index_of_line(exc.lineno) + exc.offset
        raise ParseError(source, lines.byte_offset(min(index, len(text))), reason, line=exc.lineno) from exc

    if builder.root is None:
        raise ParseError(source, 0, "no root element", line=1)
    return builder.finish(mtime_ns=mtime_ns, line_count=lines.line_count)
