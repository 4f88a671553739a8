"""Tests for index creation, persistence, validation and staleness."""

import json
import os
from pathlib import Path

import pytest

from doc_shard.core.chunker import parse_document
from doc_shard.core.errors import CorruptIndex, StaleIndex
from doc_shard.core.index import (
    INDEX_SUFFIX,
    check_freshness,
    clear_index,
    create_index,
    get_valid_index,
    index_path_for,
    is_index_stale,
    list_indexes,
    load_index,
    save_index,
)


def _saved(source: Path, index_dir: Path) -> Path:
    tree = parse_document(source)
    return save_index(create_index(tree), index_path_for(source, index_dir))


class TestCreateIndex:
    def test_entries_mirror_tree(self, json_file: Path) -> None:
        tree = parse_document(json_file)
        index = create_index(tree, preview_chars=3)
        assert index.total_nodes == len(tree.nodes)
        assert list(index.entries) == list(tree.nodes)
        assert index.root_id == tree.root_id
        assert index.max_depth == tree.max_depth
        entry = index.entries[index.by_path["/name"]]
        assert entry.preview == "cat"
        assert entry.source == tree.source
        assert entry.content_hash is not None

    def test_views(self, xml_file: Path) -> None:
        index = create_index(parse_document(xml_file))
        assert len(index.by_type["attribute"]) == 2
        assert len(index.by_level[1]) == 2
        assert index.by_path["/library"] == index.root_id

    def test_signature(self, markdown_file: Path) -> None:
        tree = parse_document(markdown_file)
        index = create_index(tree)
        assert index.source == str(markdown_file.resolve())
        assert index.source_signature.mtime_ns == markdown_file.stat().st_mtime_ns
        assert index.source_signature.content_hash == tree.content_hash


class TestIndexPath:
    def test_fixed_location(self, tmp_path: Path) -> None:
        first = index_path_for(tmp_path / "a.json", tmp_path / "idx")
        second = index_path_for(tmp_path / "a.json", tmp_path / "idx")
        assert first == second
        assert first.name.startswith("a.json.")
        assert first.name.endswith(INDEX_SUFFIX)

    def test_same_basename_different_directories(self, tmp_path: Path) -> None:
        first = index_path_for(tmp_path / "x" / "a.json", tmp_path / "idx")
        second = index_path_for(tmp_path / "y" / "a.json", tmp_path / "idx")
        assert first != second


class TestPersistence:
    def test_round_trip(self, yaml_file: Path, tmp_path: Path) -> None:
        index = create_index(parse_document(yaml_file))
        destination = save_index(index, index_path_for(yaml_file, tmp_path / "idx"))
        loaded = load_index(destination)
        assert loaded is not None
        assert loaded.entries == index.entries
        assert loaded.source_signature == index.source_signature
        assert loaded.by_path == index.by_path

    def test_no_temporary_files_left(self, json_file: Path, tmp_path: Path) -> None:
        destination = _saved(json_file, tmp_path / "idx")
        assert [path.name for path in destination.parent.iterdir()] == [destination.name]

    def test_missing_index_is_none(self, tmp_path: Path) -> None:
        assert load_index(tmp_path / "nope.index.json") is None

    def test_truncated_file_is_corrupt(self, json_file: Path, tmp_path: Path) -> None:
        destination = _saved(json_file, tmp_path / "idx")
        destination.write_text(destination.read_text()[:50])
        with pytest.raises(CorruptIndex):
            load_index(destination)

    def test_missing_child_is_corrupt(self, json_file: Path, tmp_path: Path) -> None:
        destination = _saved(json_file, tmp_path / "idx")
        payload = json.loads(destination.read_text())
        root = payload["entries"][payload["root_id"]]
        child_id = root["child_ids"][0]
        del payload["entries"][child_id]
        payload["total_nodes"] -= 1
        destination.write_text(json.dumps(payload))
        with pytest.raises(CorruptIndex, match="missing"):
            load_index(destination)

    def test_wrong_total_is_corrupt(self, json_file: Path, tmp_path: Path) -> None:
        destination = _saved(json_file, tmp_path / "idx")
        payload = json.loads(destination.read_text())
        payload["total_nodes"] += 1
        destination.write_text(json.dumps(payload))
        with pytest.raises(CorruptIndex, match="expected"):
            load_index(destination)

    def test_invalid_utf8_is_corrupt(self, tmp_path: Path) -> None:
        destination = tmp_path / "bad.index.json"
        destination.write_bytes(b"\xff\xfe\x00")
        with pytest.raises(CorruptIndex):
            load_index(destination)


class TestFreshness:
    def test_fresh_index_is_returned(self, json_file: Path, tmp_path: Path) -> None:
        _saved(json_file, tmp_path / "idx")
        index = get_valid_index(json_file, tmp_path / "idx")
        assert index is not None
        assert not is_index_stale(index)

    def test_modified_source_is_stale(self, json_file: Path, tmp_path: Path) -> None:
        destination = _saved(json_file, tmp_path / "idx")
        stat = json_file.stat()
        json_file.write_text('{"changed": true}\n')
        os.utime(json_file, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
        index = load_index(destination)
        assert index is not None
        with pytest.raises(StaleIndex, match="modification time"):
            check_freshness(index)
        assert get_valid_index(json_file, tmp_path / "idx") is None

    def test_same_mtime_different_content_is_stale(self, json_file: Path, tmp_path: Path) -> None:
        destination = _saved(json_file, tmp_path / "idx")
        stat = json_file.stat()
        json_file.write_text('{"other": 1}\n')
        os.utime(json_file, ns=(stat.st_atime_ns, stat.st_mtime_ns))
        index = load_index(destination)
        assert index is not None
        with pytest.raises(StaleIndex, match="content hash"):
            check_freshness(index)

    def test_deleted_source_is_stale(self, json_file: Path, tmp_path: Path) -> None:
        destination = _saved(json_file, tmp_path / "idx")
        json_file.unlink()
        index = load_index(destination)
        assert index is not None
        assert is_index_stale(index)

    def test_no_index_yet(self, json_file: Path, tmp_path: Path) -> None:
        assert get_valid_index(json_file, tmp_path / "idx") is None


class TestListAndClear:
    def test_list_indexes(self, json_file: Path, xml_file: Path, tmp_path: Path) -> None:
        first = _saved(json_file, tmp_path / "idx")
        second = _saved(xml_file, tmp_path / "idx")
        assert list_indexes(tmp_path / "idx") == sorted([first, second])

    def test_list_missing_directory(self, tmp_path: Path) -> None:
        assert list_indexes(tmp_path / "none") == []

    def test_clear_index(self, json_file: Path, tmp_path: Path) -> None:
        destination = _saved(json_file, tmp_path / "idx")
        assert clear_index(json_file, tmp_path / "idx") is True
        assert not destination.exists()
        assert clear_index(json_file, tmp_path / "idx") is False
