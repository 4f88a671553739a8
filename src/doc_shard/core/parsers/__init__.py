from collections.abc import Callable

from doc_shard.core.formats import DocumentFormat
from doc_shard.core.parsers.json_parser import parse_json
from doc_shard.core.parsers.markdown_parser import parse_markdown
from doc_shard.core.parsers.xml_parser import parse_xml
from doc_shard.core.parsers.yaml_parser import parse_yaml
from doc_shard.models import DocumentTree

PARSERS: dict[DocumentFormat, Callable[..., DocumentTree]] = {
    DocumentFormat.XML: parse_xml,
    DocumentFormat.YAML: parse_yaml,
    DocumentFormat.JSON: parse_json,
    DocumentFormat.MARKDOWN: parse_markdown,
}


def parse_content(
    text: str,
    fmt: DocumentFormat,
    source: str = "<string>",
    mtime_ns: int | None = None,
) -> DocumentTree:
    return PARSERS[fmt](text, source, mtime_ns)


__all__ = [
    "PARSERS",
    "parse_content",
    "parse_json",
    "parse_markdown",
    "parse_xml",
    "parse_yaml",
]
