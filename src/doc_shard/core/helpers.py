import hashlib
import re
from bisect import bisect_right

ROOT_PATH = "/"
ROOT_NAME = "root"
NODE_ID_LENGTH = 16
EMPTY_KEY_STEP = "~3"


def make_node_id(source: str, path: str) -> str:
    h = hashlib.sha256()
    h.update(source.encode("utf-8"))
    h.update(b"\x00")
    h.update(path.encode("utf-8"))
    return h.hexdigest()[:NODE_ID_LENGTH]


def compute_content_hash(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def escape_key(key: str) -> str:
    # the empty key needs a step of its own or it would collapse onto its parent
    if key == "":
        return EMPTY_KEY_STEP
    return key.replace("~", "~0").replace("/", "~1").replace("[", "~2")


def unescape_key(step: str) -> str:
    if step == EMPTY_KEY_STEP:
        return ""
    return step.replace("~2", "[").replace("~1", "/").replace("~0", "~")


def join_path(parent: str, step: str) -> str:
    """Append a step; array-index steps (``[i]``) attach without a slash."""
    if step.startswith("["):
        return parent + step
    if parent == ROOT_PATH:
        return ROOT_PATH + step
    return f"{parent}/{step}"


def path_from_steps(steps: list[str | int]) -> str:
    """Convert a jq-style path array (``["a", 0]``) into a structural path."""
    path = ROOT_PATH
    for step in steps:
        if isinstance(step, bool):
            raise TypeError(f"Invalid path step: {step!r}")
        if isinstance(step, int):
            path = join_path(path, f"[{step}]")
        else:
            path = join_path(path, escape_key(step))
    return path


class LineTable:
    """Maps character indices of a text to 1-based lines and UTF-8 byte offsets."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._ascii = text.isascii()
        self._line_starts = [0]
        self._byte_starts = [0]
        byte_pos = 0
        prev = 0
        newline = text.find("\n")
        while newline != -1:
            segment = text[prev : newline + 1]
            byte_pos += len(segment) if self._ascii else len(segment.encode("utf-8"))
            self._line_starts.append(newline + 1)
            self._byte_starts.append(byte_pos)
            prev = newline + 1
            newline = text.find("\n", prev)

    @property
    def line_count(self) -> int:
        if self._text.endswith("\n"):
            return len(self._line_starts) - 1
        return len(self._line_starts) if self._text else 0

    def line_of(self, index: int) -> int:
        return bisect_right(self._line_starts, index)

    def byte_offset(self, index: int) -> int:
        if self._ascii:
            return index
        line_idx = bisect_right(self._line_starts, index) - 1
        start = self._line_starts[line_idx]
        return self._byte_starts[line_idx] + len(self._text[start:index].encode("utf-8"))

    def locate(self, index: int) -> tuple[int, int]:
        """Return ``(line, byte_offset)`` for a character index."""
        return self.line_of(index), self.byte_offset(index)

    def line_start(self, line: int) -> int:
        """Byte offset of the start of a 1-based line."""
        line_idx = min(max(line, 1), len(self._line_starts)) - 1
        return self._byte_starts[line_idx]

    def index_of_line(self, line: int) -> int:
        """Character index of the start of a 1-based line."""
        line_idx = min(max(line, 1), len(self._line_starts)) - 1
        return self._line_starts[line_idx]


def compile_path_glob(pattern: str) -> re.Pattern[str]:
    """``*`` matches within one step, ``**`` across steps; everything else is literal."""
    parts = []
    for index, chunk in enumerate(pattern.split("**")):
        if index:
            parts.append(".*")
        parts.append("[^/]*".join(re.escape(piece) for piece in chunk.split("*")))
    return re.compile("".join(parts) + r"\Z")
