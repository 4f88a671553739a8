import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_INDEX_DIR = ".doc_shard/indexes"
DEFAULT_TOOL_TIMEOUT = 10.0
DEFAULT_ACCELERATE_MIN_BYTES = 100 * 1024
DEFAULT_PREVIEW_CHARS = 100
DEFAULT_CHUNK_SIZE = 100
MAX_CHUNK_SIZE = 500


@dataclass(frozen=True)
class Settings:
    index_dir: Path
    tool_timeout: float
    accelerate_min_bytes: int
    preview_chars: int


def get_settings() -> Settings:
    return Settings(
        index_dir=Path(os.getenv("DOC_SHARD_INDEX_DIR", DEFAULT_INDEX_DIR)),
        tool_timeout=float(os.getenv("DOC_SHARD_TOOL_TIMEOUT", str(DEFAULT_TOOL_TIMEOUT))),
        accelerate_min_bytes=int(os.getenv("DOC_SHARD_ACCELERATE_MIN_BYTES", str(DEFAULT_ACCELERATE_MIN_BYTES))),
        preview_chars=int(os.getenv("DOC_SHARD_PREVIEW_CHARS", str(DEFAULT_PREVIEW_CHARS))),
    )
