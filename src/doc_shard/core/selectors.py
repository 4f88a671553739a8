"""In-process evaluation of the query shapes the external tools accept.

Only a fixed subset is supported:

* JSON / YAML (jq style): ``.``, ``.key``, ``."quoted key"``, ``["key"]``,
  ``[n]`` (negative counts from the end), ``[]``, chained.
* XML (XPath style): absolute location paths with ``/`` and ``//``, name tests,
  ``*``, ``@name``, ``@*`` and a positional ``[n]`` predicate.
* Markdown: a path glob when the query starts with ``/``, otherwise a
  case-insensitive match on heading text.
"""

import json
import re
from dataclasses import dataclass

from doc_shard.core.errors import QueryError
from doc_shard.core.helpers import compile_path_glob
from doc_shard.models import DocumentTree, HierarchyNode, NodeType

_JQ_TOKEN = re.compile(
    r"""
    \.(?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    | \.?"(?P<quoted>(?:[^"\\]|\\.)*)"
    | \.?\[\s*(?:
        "(?P<bracket_key>(?:[^"\\]|\\.)*)"
        | (?P<index>-?\d+)
        | (?P<iterate>)
      )\s*\]
    """,
    re.VERBOSE,
)
_XPATH_STEP = re.compile(r"(?P<test>@?(?:\*|[A-Za-z_][\w.:-]*))(?:\[(?P<position>\d+)\])?")

_ELEMENT_TYPES = (NodeType.ELEMENT,)


@dataclass(frozen=True)
class _JqStep:
    kind: str
    key: str | None = None
    index: int | None = None


@dataclass(frozen=True)
class _XPathStep:
    descendant: bool
    test: str
    position: int | None


def parse_jq(query: str) -> list[_JqStep]:
    text = query.strip()
    if not text.startswith("."):
        raise QueryError(f"Unsupported query {query!r}: must start with '.'")
    if text == ".":
        return []
    steps: list[_JqStep] = []
    position = 0
    while position < len(text):
        match = _JQ_TOKEN.match(text, position)
        if match is None or match.end() == position:
            raise QueryError(f"Unsupported query {query!r} at column {position}")
        if match.group("ident") is not None:
            steps.append(_JqStep("key", key=match.group("ident")))
        elif match.group("quoted") is not None:
            steps.append(_JqStep("key", key=json.loads(f'"{match.group("quoted")}"')))
        elif match.group("bracket_key") is not None:
            steps.append(_JqStep("key", key=json.loads(f'"{match.group("bracket_key")}"')))
        elif match.group("index") is not None:
            steps.append(_JqStep("index", index=int(match.group("index"))))
        elif match.group("iterate") is not None:
            steps.append(_JqStep("iterate"))
        position = match.end()
    return steps


def parse_xpath(query: str) -> list[_XPathStep]:
    text = query.strip()
    if not text.startswith("/"):
        raise QueryError(f"Unsupported XPath {query!r}: only absolute paths are supported")
    steps: list[_XPathStep] = []
    position = 0
    while position < len(text):
        if text[position] != "/":
            raise QueryError(f"Unsupported XPath {query!r} at column {position}")
        descendant = text.startswith("//", position)
        position += 2 if descendant else 1
        match = _XPATH_STEP.match(text, position)
        if match is None:
            raise QueryError(f"Unsupported XPath {query!r} at column {position}")
        raw_position = match.group("position")
        steps.append(_XPathStep(descendant, match.group("test"), int(raw_position) if raw_position else None))
        position = match.end()
    if not steps:
        raise QueryError(f"Unsupported XPath {query!r}")
    return steps


def _data_roots(tree: DocumentTree) -> list[HierarchyNode]:
    # multi-document YAML: each document is queried on its own
    root = tree.root
    if root.type is NodeType.DOCUMENT and tree.format == "yaml":
        return tree.children(root.id)
    return [root]


def select_jq(tree: DocumentTree, query: str) -> list[str]:
    steps = parse_jq(query)
    current = _data_roots(tree)
    for step in steps:
        matched: list[HierarchyNode] = []
        for node in current:
            children = tree.children(node.id)
            if step.kind == "key":
                if node.value_type == "object":
                    matched.extend(child for child in children if child.name == step.key)
            elif step.kind == "index":
                if node.value_type == "array":
                    index = step.index + len(children) if step.index < 0 else step.index
                    if 0 <= index < len(children):
                        matched.append(children[index])
            elif node.value_type in ("object", "array"):
                matched.extend(children)
        current = matched
    return [node.id for node in current]


def _descendant_or_self(tree: DocumentTree, node: HierarchyNode) -> list[HierarchyNode]:
    found = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type in _ELEMENT_TYPES:
            found.append(current)
            stack.extend(reversed(tree.children(current.id)))
    return found


def _xpath_children(tree: DocumentTree, context: HierarchyNode | None, test: str) -> list[HierarchyNode]:
    candidates = [tree.root] if context is None else tree.children(context.id)
    if test.startswith("@"):
        name = test[1:]
        return [node for node in candidates if node.type is NodeType.ATTRIBUTE and name in ("*", node.name)]
    return [node for node in candidates if node.type is NodeType.ELEMENT and test in ("*", node.name)]


def select_xpath(tree: DocumentTree, query: str) -> list[str]:
    steps = parse_xpath(query)
    # None stands for the document node above the root element
    contexts: list[HierarchyNode | None] = [None]
    for step in steps:
        if step.descendant:
            expanded: list[HierarchyNode | None] = []
            for context in contexts:
                if context is None:
                    expanded.append(None)
                    expanded.extend(_descendant_or_self(tree, tree.root))
                else:
                    expanded.extend(_descendant_or_self(tree, context))
            contexts = expanded
        matched: list[HierarchyNode] = []
        for context in contexts:
            candidates = _xpath_children(tree, context, step.test)
            if step.position is not None:
                candidates = candidates[step.position - 1 : step.position] if step.position >= 1 else []
            matched.extend(candidates)
        contexts = list(_document_order(tree, matched))
    return [node.id for node in contexts if node is not None]


def _document_order(tree: DocumentTree, nodes: list[HierarchyNode]) -> list[HierarchyNode]:
    wanted = {node.id for node in nodes}
    return [node for node in tree.iter_preorder() if node.id in wanted]


def select_markdown(tree: DocumentTree, query: str) -> list[str]:
    text = query.strip()
    if not text:
        raise QueryError("Empty Markdown query")
    if text.startswith("/"):
        pattern = compile_path_glob(text)
        return [node.id for node in tree.iter_preorder() if pattern.match(node.path)]
    needle = text.lstrip("#").strip().lower()
    return [
        node.id
        for node in tree.iter_preorder()
        if node.type is NodeType.HEADING and needle in node.name.lower()
    ]


def validate_query(fmt: str, query: str) -> None:
    """Raise :class:`QueryError` unless ``query`` is a shape the in-process selectors evaluate."""
    if fmt in ("json", "yaml"):
        parse_jq(query)
    elif fmt == "xml":
        parse_xpath(query)
    elif fmt == "markdown":
        if not query.strip():
            raise QueryError("Empty Markdown query")
    else:
        raise QueryError(f"No selector for format {fmt!r}")


def select(tree: DocumentTree, query: str) -> list[str]:
    """Evaluate ``query`` against ``tree`` and return matching node ids in document order."""
    if tree.format in ("json", "yaml"):
        return select_jq(tree, query)
    if tree.format == "xml":
        return select_xpath(tree, query)
    if tree.format == "markdown":
        return select_markdown(tree, query)
    raise QueryError(f"No selector for format {tree.format!r}", tree.source)
