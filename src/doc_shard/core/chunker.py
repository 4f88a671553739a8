import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from doc_shard.core.bridge import BashExecutorBridge, get_bridge
from doc_shard.core.errors import ParseError
from doc_shard.core.formats import SNIFF_PREFIX_BYTES, DocumentFormat, resolve_format
from doc_shard.core.helpers import make_node_id
from doc_shard.core.index import create_index, get_valid_index, index_path_for, save_index
from doc_shard.core.parsers import parse_content
from doc_shard.core.selectors import select, validate_query
from doc_shard.core.settings import DEFAULT_CHUNK_SIZE, MAX_CHUNK_SIZE, Settings, get_settings
from doc_shard.core.sharding import ShardSet, shard_hierarchy
from doc_shard.models import DocumentTree, HierarchyIndex, NodeType, ShardPolicy

logger = logging.getLogger(__name__)

_YAML_DOCUMENT_MARKER = re.compile(rb"^---(\s|$)", re.MULTILINE)
_READ_BLOCK = 1024 * 1024


@dataclass(frozen=True)
class IndexOutcome:
    index: HierarchyIndex
    index_path: Path
    cached: bool


@dataclass(frozen=True)
class ExtractionOutcome:
    node_ids: list[str]
    paths: list[str]
    tool: str | None
    accelerated: bool
    fallback_reason: str | None = None
    tree: DocumentTree | None = field(default=None, repr=False)


@dataclass(frozen=True)
class ChunkResult:
    source: str
    chunk: int
    total_chunks: int
    start_line: int
    end_line: int
    total_lines: int
    content: str
    tool: str | None = None

    @property
    def has_more(self) -> bool:
        return self.chunk < self.total_chunks


@dataclass(frozen=True)
class DocumentOverview:
    source: str
    format: str
    size_bytes: int
    line_count: int
    modified: str | None
    node_count: int
    max_depth: int
    top_level: list[dict[str, object]]
    headings: list[dict[str, object]]
    frontmatter: str | None
    recommended_chunk_size: int
    estimated_chunks: int


def source_key(path: str | Path) -> str:
    """Identity a file's node ids are derived from: its absolute path."""
    return str(Path(path).resolve())


def parse_text(text: str, fmt: DocumentFormat | str | None = None, source: str = "<string>") -> DocumentTree:
    resolved = resolve_format(fmt, None, prefix=text[:SNIFF_PREFIX_BYTES])
    return parse_content(text, resolved, source)


def parse_document(path: str | Path, fmt: DocumentFormat | str | None = None) -> DocumentTree:
    file_path = Path(path)
    resolved = resolve_format(fmt, file_path)
    stat = file_path.stat()
    raw = file_path.read_bytes()
    source = source_key(file_path)
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(source, exc.start, "invalid UTF-8") from exc
    return parse_content(text, resolved, source, mtime_ns=stat.st_mtime_ns)


def index_document(
    path: str | Path,
    index_dir: str | Path | None = None,
    force: bool = False,
    settings: Settings | None = None,
) -> IndexOutcome:
    """Reuse a fresh persisted index for ``path`` or parse and persist a new one."""
    settings = settings or get_settings()
    directory = Path(index_dir) if index_dir is not None else settings.index_dir
    destination = index_path_for(path, directory)
    if not force:
        cached = get_valid_index(path, directory)
        if cached is not None:
            logger.debug("Using cached index %s", destination)
            return IndexOutcome(index=cached, index_path=destination, cached=True)
    tree = parse_document(path)
    index = create_index(tree, preview_chars=settings.preview_chars)
    save_index(index, destination)
    logger.info("Indexed %s: %d nodes, max depth %d", tree.source, index.total_nodes, index.max_depth)
    return IndexOutcome(index=index, index_path=destination, cached=False)


def shard_document(path: str | Path, policy: ShardPolicy, fmt: DocumentFormat | str | None = None) -> ShardSet:
    return shard_hierarchy(parse_document(path, fmt), policy)


def _has_multiple_yaml_documents(path: Path) -> bool:
    data = path.read_bytes()
    markers = len(_YAML_DOCUMENT_MARKER.findall(data))
    return markers > 1 or (markers == 1 and not data.lstrip().startswith(b"---"))


def extract(
    path: str | Path,
    query: str,
    bridge: BashExecutorBridge | None = None,
    accelerate: bool | None = None,
    settings: Settings | None = None,
    fmt: DocumentFormat | str | None = None,
) -> ExtractionOutcome:
    """Answer ``query`` with an external tool when worthwhile, else by parsing in-process.

    Acceleration defaults to on for files above the configured size threshold.
    Any tool failure falls back to a full parse, so the node ids returned are
    the same either way. Queries outside the supported shapes raise
    :class:`QueryError` before any tool runs.
    """
    settings = settings or get_settings()
    file_path = Path(path)
    resolved = resolve_format(fmt, file_path)
    if accelerate is None:
        accelerate = file_path.stat().st_size > settings.accelerate_min_bytes

    validate_query(resolved.value, query)
    fallback_reason = None
    if accelerate:
        if resolved is DocumentFormat.YAML and _has_multiple_yaml_documents(file_path):
            fallback_reason = "multi-document YAML is queried per document by yq"
        else:
            result = (bridge or get_bridge()).extract(resolved, file_path, query)
            if result.success:
                source = source_key(file_path)
                paths = list(result.paths)
                return ExtractionOutcome(
                    node_ids=[make_node_id(source, node_path) for node_path in paths],
                    paths=paths,
                    tool=result.tool,
                    accelerated=True,
                )
            fallback_reason = str(result.error)
        logger.info("Falling back to in-process parsing for %s: %s", file_path, fallback_reason)

    tree = parse_document(file_path, resolved)
    node_ids = select(tree, query)
    return ExtractionOutcome(
        node_ids=node_ids,
        paths=[tree.nodes[node_id].path for node_id in node_ids],
        tool=None,
        accelerated=False,
        fallback_reason=fallback_reason,
        tree=tree,
    )


def count_lines(path: Path) -> int:
    total = 0
    last = b""
    with path.open("rb") as handle:
        while block := handle.read(_READ_BLOCK):
            total += block.count(b"\n")
            last = block[-1:]
    if last and last != b"\n":
        total += 1
    return total


def _read_lines(path: Path, start: int, end: int) -> str:
    selected = []
    with path.open("rb") as handle:
        for number, line in enumerate(handle, start=1):
            if number > end:
                break
            if number >= start:
                selected.append(line)
    return b"".join(selected).decode("utf-8", errors="replace")


def read_chunk(
    path: str | Path,
    chunk: int = 1,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    bridge: BashExecutorBridge | None = None,
    accelerate: bool | None = None,
    settings: Settings | None = None,
) -> ChunkResult:
    """Return one window of ``chunk_size`` lines (1-based ``chunk``); sizes above the cap are clamped."""
    settings = settings or get_settings()
    file_path = Path(path)
    if chunk_size < 1:
        raise ValueError(f"Invalid chunk size: {chunk_size}")
    size = min(chunk_size, MAX_CHUNK_SIZE)
    total_lines = count_lines(file_path)
    total_chunks = max(1, -(-total_lines // size))
    if chunk < 1 or chunk > total_chunks:
        raise ValueError(f"Invalid chunk number: {chunk}. Valid range: 1-{total_chunks}")

    start = (chunk - 1) * size + 1
    end = min(start + size - 1, total_lines)
    if accelerate is None:
        accelerate = file_path.stat().st_size > settings.accelerate_min_bytes

    tool = None
    text = None
    if accelerate and total_lines:
        result = (bridge or get_bridge()).extract_lines(file_path, start, end)
        if result.success:
            text, tool = result.text, result.tool
        else:
            logger.info("Reading %s in-process: %s", file_path, result.error)
    if text is None:
        text = _read_lines(file_path, start, end) if total_lines else ""
    if text.endswith("\n"):
        text = text[:-1]

    return ChunkResult(
        source=str(file_path),
        chunk=chunk,
        total_chunks=total_chunks,
        start_line=start if total_lines else 0,
        end_line=end,
        total_lines=total_lines,
        content=text,
        tool=tool,
    )


def recommended_chunk_size(line_count: int) -> int:
    if line_count > 500:
        return 100
    if line_count > 200:
        return 50
    return line_count or DEFAULT_CHUNK_SIZE


def overview(path: str | Path, fmt: DocumentFormat | str | None = None) -> DocumentOverview:
    """Size, structure and chunking advice for a document, without returning its content."""
    tree = parse_document(path, fmt)
    root = tree.root
    headings = [
        {"line": node.line, "rank": node.rank, "text": node.name}
        for node in tree.iter_preorder()
        if node.type is NodeType.HEADING
    ]
    frontmatter = next(
        (node.content for node in tree.children(root.id) if node.type is NodeType.FRONTMATTER),
        None,
    )
    top_level = [
        {"name": node.name, "type": node.type.value, "path": node.path, "line": node.line}
        for node in tree.children(root.id)
    ]
    chunk_size = recommended_chunk_size(tree.line_count)
    modified = (
        datetime.fromtimestamp(tree.mtime_ns / 1e9, tz=timezone.utc).isoformat() if tree.mtime_ns is not None else None
    )
    return DocumentOverview(
        source=tree.source,
        format=tree.format,
        size_bytes=tree.size_bytes,
        line_count=tree.line_count,
        modified=modified,
        node_count=len(tree.nodes),
        max_depth=tree.max_depth,
        top_level=top_level,
        headings=headings,
        frontmatter=frontmatter,
        recommended_chunk_size=chunk_size,
        estimated_chunks=-(-tree.line_count // chunk_size),
    )
