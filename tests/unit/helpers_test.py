"""Tests for node ids, path steps, line tables and globs."""

import pytest

from doc_shard.core.helpers import (
    LineTable,
    compile_path_glob,
    compute_content_hash,
    escape_key,
    join_path,
    make_node_id,
    path_from_steps,
    unescape_key,
)


def test_node_id_is_stable_and_short() -> None:
    assert make_node_id("a.json", "/x") == make_node_id("a.json", "/x")
    assert make_node_id("a.json", "/x") != make_node_id("b.json", "/x")
    assert len(make_node_id("a.json", "/x")) == 16


def test_node_id_separates_source_and_path() -> None:
    assert make_node_id("ab", "/c") != make_node_id("a", "b/c")


def test_content_hash_accepts_text_and_bytes() -> None:
    assert compute_content_hash("é") == compute_content_hash("é".encode())


@pytest.mark.parametrize(
    ("key", "escaped"),
    [("plain", "plain"), ("a/b", "a~1b"), ("~x", "~0x"), ("[0]", "~20]"), ("~1", "~01"), ("", "~3"), ("~3", "~03")],
)
def test_escape_round_trip(key: str, escaped: str) -> None:
    assert escape_key(key) == escaped
    assert unescape_key(escaped) == key


def test_join_path() -> None:
    assert join_path("/", "a") == "/a"
    assert join_path("/a", "b") == "/a/b"
    assert join_path("/a", "[0]") == "/a[0]"
    assert join_path("/", "[1]") == "/[1]"


def test_path_from_steps() -> None:
    assert path_from_steps([]) == "/"
    assert path_from_steps(["a", 0, "b/c"]) == "/a[0]/b~1c"
    assert path_from_steps([""]) == "/~3"
    assert path_from_steps(["a", ""]) == "/a/~3"


def test_path_from_steps_rejects_booleans() -> None:
    with pytest.raises(TypeError):
        path_from_steps([True])


class TestLineTable:
    def test_lines_and_offsets(self) -> None:
        table = LineTable("ab\ncd\nef")
        assert table.line_count == 3
        assert table.locate(0) == (1, 0)
        assert table.locate(4) == (2, 4)
        assert table.line_start(3) == 6

    def test_trailing_newline(self) -> None:
        assert LineTable("a\nb\n").line_count == 2
        assert LineTable("").line_count == 0

    def test_multibyte_offsets(self) -> None:
        table = LineTable("é\nx")
        assert table.byte_offset(2) == 3
        assert table.line_start(2) == 3
        assert table.index_of_line(2) == 2


@pytest.mark.parametrize(
    ("pattern", "path", "matches"),
    [
        ("/a/*", "/a/b", True),
        ("/a/*", "/a/b/c", False),
        ("/a/**", "/a/b/c", True),
        ("/a[0]", "/a[0]", True),
        ("/a[0]", "/a0", False),
        ("/a/*/c", "/a/b/c", True),
        ("/a", "/ab", False),
    ],
)
def test_path_glob(pattern: str, path: str, matches: bool) -> None:
    assert bool(compile_path_glob(pattern).match(path)) is matches
