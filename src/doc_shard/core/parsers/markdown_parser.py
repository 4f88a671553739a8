import re

from markdown_it import MarkdownIt
from markdown_it.token import Token

from doc_shard.core.helpers import ROOT_NAME, LineTable
from doc_shard.core.parsers.builder import PendingNode, TreeBuilder
from doc_shard.models import DocumentTree, NodeType

_FRONTMATTER_OPEN = "---"
_FRONTMATTER_CLOSE = ("---", "...")
_SLUG_STRIP = re.compile(r"[^\w\s-]")
_SLUG_SPACE = re.compile(r"[\s_]+")

_CONTAINER_OPEN = {
    "bullet_list_open": NodeType.LIST,
    "ordered_list_open": NodeType.LIST,
    "list_item_open": NodeType.LIST_ITEM,
    "blockquote_open": NodeType.BLOCKQUOTE,
}
_CONTAINER_CLOSE = {"bullet_list_close", "ordered_list_close", "list_item_close", "blockquote_close"}
_FOLDING_CONTAINERS = {NodeType.LIST_ITEM, NodeType.BLOCKQUOTE}


def _markdown() -> MarkdownIt:
    return MarkdownIt("commonmark").enable("table")


def slugify(text: str) -> str:
    slug = _SLUG_SPACE.sub("-", _SLUG_STRIP.sub("", text).strip().lower()).strip("-")
    return slug or "heading"


def split_frontmatter(text: str) -> tuple[str | None, int]:
    """Return the frontmatter body and the number of lines it spans (fences included)."""
    source_lines = text.split("\n")
    if not source_lines or source_lines[0].rstrip("\r") != _FRONTMATTER_OPEN:
        return None, 0
    for number, line in enumerate(source_lines[1:], start=1):
        if line.rstrip("\r") in _FRONTMATTER_CLOSE:
            return "\n".join(source_lines[1:number]), number + 1
    return None, 0


def _section_text(source_lines: list[str], start: int, end: int) -> str | None:
    body = "\n".join(source_lines[start:end]).strip()
    return body or None


def parse_markdown(text: str, source: str = "<string>", mtime_ns: int | None = None) -> DocumentTree:
    """Parse Markdown into a heading tree.

    Headings nest by rank, so a node's level equals its depth. Block-level
    content hangs off the nearest open heading; paragraph text inside list
    items and block quotes is folded into that container's content.
    """
    lines = LineTable(text)
    source_lines = text.split("\n")
    builder = TreeBuilder(source, text, "markdown", disambiguate=True)
    root = builder.set_root(
        PendingNode(
            type=NodeType.DOCUMENT,
            name=ROOT_NAME,
            step=None,
            line=1,
            end_line=lines.line_count,
            offset=0,
        )
    )

    frontmatter, skipped = split_frontmatter(text)
    body = text
    if frontmatter is not None:
        builder.add(
            root,
            PendingNode(
                type=NodeType.FRONTMATTER,
                name="frontmatter",
                step="frontmatter",
                content=frontmatter,
                line=1,
                end_line=skipped,
                offset=0,
            ),
        )
        # blank the fences so token line maps stay aligned with the source
        body = "\n" * skipped + "\n".join(source_lines[skipped:])

    tokens = _markdown().parse(body)
    headings: list[PendingNode] = []
    containers: list[PendingNode] = []
    # heading whose section text is still being collected, and where its body starts
    open_section: tuple[PendingNode, int] | None = None

    def parent() -> PendingNode:
        if containers:
            return containers[-1]
        return headings[-1] if headings else root

    def block(node_type: NodeType, token: Token, content: str | None = None) -> PendingNode:
        start, end = token.map if token.map else (0, 0)
        return builder.add(
            parent(),
            PendingNode(
                type=node_type,
                name=node_type.value,
                step=node_type.value,
                content=content,
                line=start + 1,
                end_line=end,
                offset=lines.line_start(start + 1),
            ),
        )

    position = 0
    while position < len(tokens):
        token = tokens[position]
        kind = token.type

        if kind == "heading_open" and not containers:
            rank = int(token.tag[1:])
            title = tokens[position + 1].content.strip()
            start, end = token.map if token.map else (0, 0)
            if open_section is not None:
                section, body_start = open_section
                section.content = _section_text(source_lines, body_start, start)
            while headings and (headings[-1].rank or 0) >= rank:
                headings.pop().end_line = start
            heading = builder.add(
                parent(),
                PendingNode(
                    type=NodeType.HEADING,
                    name=title,
                    step=slugify(title),
                    rank=rank,
                    line=start + 1,
                    offset=lines.line_start(start + 1),
                ),
            )
            headings.append(heading)
            open_section = (heading, end)
            position += 3
            continue

        if kind in ("heading_open", "paragraph_open"):
            content = tokens[position + 1].content.strip()
            if containers and containers[-1].type in _FOLDING_CONTAINERS:
                folded = containers[-1]
                folded.content = f"{folded.content}\n{content}" if folded.content else content
            else:
                block(NodeType.PARAGRAPH, token, content)
            position += 3
            continue

        if kind in _CONTAINER_OPEN:
            containers.append(block(_CONTAINER_OPEN[kind], token))
        elif kind in _CONTAINER_CLOSE:
            containers.pop()
        elif kind in ("fence", "code_block"):
            block(NodeType.CODE, token, token.content.rstrip("\n"))
        elif kind == "html_block":
            block(NodeType.HTML, token, token.content.strip())
        elif kind == "hr":
            block(NodeType.THEMATIC_BREAK, token)
        elif kind == "table_open":
            start, end = token.map if token.map else (0, 0)
            block(NodeType.TABLE, token, "\n".join(source_lines[start:end]).strip())
            while tokens[position].type != "table_close":
                position += 1
        position += 1

    if open_section is not None:
        section, body_start = open_section
        section.content = _section_text(source_lines, body_start, len(source_lines))
    for heading in headings:
        heading.end_line = lines.line_count

    return builder.finish(mtime_ns=mtime_ns, line_count=lines.line_count)
