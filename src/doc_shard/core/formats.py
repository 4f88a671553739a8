import re
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from doc_shard.core.errors import UnrecognizedFormat

if TYPE_CHECKING:
    from doc_shard.models import DocumentTree

SNIFF_PREFIX_BYTES = 4096


class DocumentFormat(str, Enum):
    XML = "xml"
    YAML = "yaml"
    JSON = "json"
    MARKDOWN = "markdown"

    @property
    def parser(self) -> Callable[[str, str], "DocumentTree"]:
        from doc_shard.core.parsers import PARSERS

        return PARSERS[self]

    @property
    def tool(self) -> str | None:
        """External binary able to accelerate extraction for this format."""
        return _FORMAT_TOOLS.get(self)

    def parse(self, text: str, source: str = "<string>") -> "DocumentTree":
        return self.parser(text, source)


_FORMAT_TOOLS = {
    DocumentFormat.XML: "xmllint",
    DocumentFormat.YAML: "yq",
    DocumentFormat.JSON: "jq",
}

_FORMAT_ALIASES = {
    "xml": DocumentFormat.XML,
    "yaml": DocumentFormat.YAML,
    "yml": DocumentFormat.YAML,
    "json": DocumentFormat.JSON,
    "md": DocumentFormat.MARKDOWN,
    "markdown": DocumentFormat.MARKDOWN,
}

_EXTENSION_FORMAT_MAP = {
    ".xml": DocumentFormat.XML,
    ".yaml": DocumentFormat.YAML,
    ".yml": DocumentFormat.YAML,
    ".json": DocumentFormat.JSON,
    ".md": DocumentFormat.MARKDOWN,
    ".markdown": DocumentFormat.MARKDOWN,
}

_FORMAT_DEFAULT_EXTENSIONS = {
    DocumentFormat.XML: ".xml",
    DocumentFormat.YAML: ".yml",
    DocumentFormat.JSON: ".json",
    DocumentFormat.MARKDOWN: ".md",
}

_YAML_KEY_RE = re.compile(r"^[\w\"'][\w .\"'-]*:(\s|$)", re.MULTILINE)

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(_EXTENSION_FORMAT_MAP)


def normalize_format(name: str) -> DocumentFormat | None:
    """Resolve a user-facing format name; ``auto`` means detect."""
    normalized = name.strip().lower()
    if normalized == "auto":
        return None
    if normalized not in _FORMAT_ALIASES:
        raise UnrecognizedFormat(f"Unsupported format '{name}'. Supported: {sorted(_FORMAT_ALIASES)}")
    return _FORMAT_ALIASES[normalized]


def format_from_extension(path: Path) -> DocumentFormat | None:
    return _EXTENSION_FORMAT_MAP.get(path.suffix.lower())


def default_extension(fmt: DocumentFormat) -> str:
    return _FORMAT_DEFAULT_EXTENSIONS[fmt]


def read_prefix(path: Path, limit: int = SNIFF_PREFIX_BYTES) -> str:
    with path.open("rb") as handle:
        raw = handle.read(limit)
    if b"\x00" in raw:
        raise UnrecognizedFormat("binary content", str(path))
    return raw.decode("utf-8", errors="ignore")


def sniff_format(prefix: str, source: str | None = None) -> DocumentFormat:
    trimmed = prefix.lstrip("\ufeff \t\r\n")
    if not trimmed:
        raise UnrecognizedFormat("empty content, cannot detect format", source)
    if "\x00" in trimmed:
        raise UnrecognizedFormat("binary content", source)
    if trimmed.startswith("<"):
        return DocumentFormat.XML
    if trimmed[0] in "{[":
        return DocumentFormat.JSON
    if trimmed.startswith("---") or _YAML_KEY_RE.match(trimmed):
        return DocumentFormat.YAML
    return DocumentFormat.MARKDOWN


def detect_format(path: str | Path | None = None, prefix: str | None = None) -> DocumentFormat:
    """Extension first, then a bounded look at the leading characters."""
    file_path = Path(path) if path is not None else None
    if file_path is not None:
        by_extension = format_from_extension(file_path)
        if by_extension is not None:
            return by_extension
    if prefix is None and file_path is not None:
        try:
            prefix = read_prefix(file_path)
        except FileNotFoundError:
            raise FileNotFoundError(f"File not found: {file_path}") from None
    if prefix is None:
        raise UnrecognizedFormat("no path extension or content to inspect")
    return sniff_format(prefix[:SNIFF_PREFIX_BYTES], str(file_path) if file_path else None)


def resolve_format(fmt: str | DocumentFormat | None, path: str | Path | None, prefix: str | None = None) -> DocumentFormat:
    if isinstance(fmt, DocumentFormat):
        return fmt
    if fmt:
        resolved = normalize_format(fmt)
        if resolved is not None:
            return resolved
    return detect_format(path, prefix)
