from doc_shard.core.bridge import BashExecutorBridge, ExtractionResult, extract_accelerated
from doc_shard.core.chunker import parse_document as parse
from doc_shard.core.formats import DocumentFormat, detect_format
from doc_shard.core.index import create_index as build_index
from doc_shard.core.index import get_valid_index, load_index, save_index
from doc_shard.core.query import QueryKind, query
from doc_shard.core.sharding import ShardSet
from doc_shard.core.sharding import shard_hierarchy as shard
from doc_shard.models import (
    CountPolicy,
    DocumentTree,
    HierarchyIndex,
    HierarchyNode,
    IndexEntry,
    LevelPolicy,
    Shard,
    SubtreePolicy,
)

__all__ = [
    "BashExecutorBridge",
    "CountPolicy",
    "DocumentFormat",
    "DocumentTree",
    "ExtractionResult",
    "HierarchyIndex",
    "HierarchyNode",
    "IndexEntry",
    "LevelPolicy",
    "QueryKind",
    "Shard",
    "ShardSet",
    "SubtreePolicy",
    "build_index",
    "detect_format",
    "extract_accelerated",
    "get_valid_index",
    "load_index",
    "parse",
    "query",
    "save_index",
    "shard",
]
