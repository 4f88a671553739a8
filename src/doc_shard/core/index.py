import hashlib
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from doc_shard.core.errors import CorruptIndex, StaleIndex
from doc_shard.core.helpers import compute_content_hash
from doc_shard.core.settings import DEFAULT_PREVIEW_CHARS
from doc_shard.models import DocumentTree, HierarchyIndex, IndexEntry, SourceSignature

logger = logging.getLogger(__name__)

INDEX_SUFFIX = ".index.json"
SOURCE_KEY_LENGTH = 12


def create_index(tree: DocumentTree, preview_chars: int = DEFAULT_PREVIEW_CHARS) -> HierarchyIndex:
    entries: dict[str, IndexEntry] = {}
    for node in tree.iter_preorder():
        content = node.content
        entries[node.id] = IndexEntry(
            **node.model_dump(),
            source=tree.source,
            content_hash=compute_content_hash(content) if content is not None else None,
            preview=content[:preview_chars] if content else "",
        )
    return HierarchyIndex(
        format=tree.format,
        root_id=tree.root_id,
        source_signature=SourceSignature(path=tree.source, mtime_ns=tree.mtime_ns, content_hash=tree.content_hash),
        total_nodes=len(entries),
        max_depth=tree.max_depth,
        entries=entries,
    )


def index_path_for(source: str | Path, index_dir: str | Path) -> Path:
    """Fixed per-source location: ``<index_dir>/<basename>.<sha256(abs path)[:12]>.index.json``."""
    absolute = Path(source).resolve()
    key = hashlib.sha256(str(absolute).encode("utf-8")).hexdigest()[:SOURCE_KEY_LENGTH]
    return Path(index_dir) / f"{absolute.name}.{key}{INDEX_SUFFIX}"


def save_index(index: HierarchyIndex, destination: str | Path) -> Path:
    """Serialize the whole index, then atomically move it onto ``destination``."""
    target = Path(destination)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = index.model_dump_json()
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.debug("Saved index for %s to %s (%d nodes)", index.source, target, index.total_nodes)
    return target


def _verify_references(index: HierarchyIndex, destination: Path) -> None:
    entries = index.entries
    if index.root_id not in entries:
        raise CorruptIndex(f"root {index.root_id} missing from entries", str(destination))
    if index.total_nodes != len(entries):
        raise CorruptIndex(f"expected {index.total_nodes} entries, found {len(entries)}", str(destination))
    for entry_id, entry in entries.items():
        if entry.id != entry_id:
            raise CorruptIndex(f"entry key {entry_id} does not match node id {entry.id}", str(destination))
        if entry.parent_id is None:
            if entry_id != index.root_id:
                raise CorruptIndex(f"node {entry_id} has no parent but is not the root", str(destination))
        elif entry.parent_id not in entries:
            raise CorruptIndex(f"node {entry_id} references missing parent {entry.parent_id}", str(destination))
        for child_id in entry.child_ids:
            child = entries.get(child_id)
            if child is None:
                raise CorruptIndex(f"node {entry_id} references missing child {child_id}", str(destination))
            if child.parent_id != entry_id or child.level != entry.level + 1:
                raise CorruptIndex(f"child {child_id} is inconsistent with parent {entry_id}", str(destination))


def load_index(destination: str | Path) -> HierarchyIndex | None:
    """Load a persisted index; ``None`` when absent, :class:`CorruptIndex` when unusable."""
    path = Path(destination)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except UnicodeDecodeError as exc:
        raise CorruptIndex(f"index is not valid UTF-8: {exc}", str(path)) from exc
    try:
        index = HierarchyIndex.model_validate_json(raw)
    except ValidationError as exc:
        raise CorruptIndex(f"invalid index file: {exc.error_count()} validation error(s)", str(path)) from exc
    _verify_references(index, path)
    return index


def check_freshness(index: HierarchyIndex) -> None:
    """Raise :class:`StaleIndex` unless the source file still matches the recorded signature."""
    signature = index.source_signature
    source = Path(signature.path)
    try:
        stat = source.stat()
    except FileNotFoundError:
        raise StaleIndex(signature.path, "source file no longer exists") from None
    if signature.mtime_ns is None or stat.st_mtime_ns != signature.mtime_ns:
        raise StaleIndex(signature.path, "modification time changed")
    if compute_content_hash(source.read_bytes()) != signature.content_hash:
        raise StaleIndex(signature.path, "content hash changed")


def is_index_stale(index: HierarchyIndex) -> bool:
    try:
        check_freshness(index)
    except StaleIndex:
        return True
    return False


def get_valid_index(source: str | Path, index_dir: str | Path) -> HierarchyIndex | None:
    """Return the persisted index for ``source`` if it is present and fresh."""
    destination = index_path_for(source, index_dir)
    index = load_index(destination)
    if index is None:
        logger.debug("No index for %s at %s", source, destination)
        return None
    try:
        check_freshness(index)
    except StaleIndex as exc:
        logger.info("Discarding stale index for %s: %s", source, exc.reason)
        return None
    return index


def list_indexes(index_dir: str | Path) -> list[Path]:
    directory = Path(index_dir)
    if not directory.is_dir():
        return []
    return sorted(directory.glob(f"*{INDEX_SUFFIX}"))


def clear_index(source: str | Path, index_dir: str | Path) -> bool:
    destination = index_path_for(source, index_dir)
    try:
        destination.unlink()
    except FileNotFoundError:
        return False
    logger.info("Removed index %s", destination)
    return True
