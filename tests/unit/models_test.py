"""Unit tests for Pydantic models."""

import pytest
from pydantic import ValidationError

from doc_shard.core.parsers import parse_json
from doc_shard.models import HierarchyIndex, HierarchyNode, IndexEntry, NodeType, SourceSignature


class TestHierarchyNodeModel:
    """Tests for the HierarchyNode model."""

    def test_creates_node_with_defaults(self) -> None:
        """Test creating a node with only the required fields."""
        node = HierarchyNode(id="abc", type=NodeType.KEY, name="a", path="/a", level=1)
        assert node.parent_id is None
        assert node.child_ids == []
        assert node.content is None

    def test_node_is_frozen(self) -> None:
        """Test that nodes cannot be mutated after construction."""
        node = HierarchyNode(id="abc", type=NodeType.KEY, name="a", path="/a", level=1)
        with pytest.raises(ValidationError):
            node.name = "b"  # type: ignore[misc]

    def test_type_accepts_string_value(self) -> None:
        """Test that the node type validates from its string value."""
        node = HierarchyNode.model_validate({"id": "x", "type": "array-item", "name": "[0]", "path": "/[0]", "level": 1})
        assert node.type is NodeType.ARRAY_ITEM

    def test_rejects_unknown_type(self) -> None:
        """Test that an unknown node type is rejected."""
        with pytest.raises(ValidationError):
            HierarchyNode.model_validate({"id": "x", "type": "widget", "name": "w", "path": "/w", "level": 1})

    def test_serializes_type_as_value(self) -> None:
        """Test that dumping in JSON mode writes the enum value."""
        node = HierarchyNode(id="abc", type=NodeType.THEMATIC_BREAK, name="hr", path="/hr", level=1)
        assert node.model_dump(mode="json")["type"] == "thematic-break"


class TestDocumentTreeModel:
    """Tests for the DocumentTree model."""

    def test_root_and_lookup(self) -> None:
        """Test root access, lookup and children."""
        tree = parse_json('{"a": {"b": 1}}', "mem")
        assert tree.root.path == "/"
        assert tree.get("missing") is None
        child = tree.children(tree.root_id)[0]
        assert tree.get(child.id) == child

    def test_preorder_and_depth(self) -> None:
        """Test pre-order iteration and maximum depth."""
        tree = parse_json('{"a": {"b": 1}, "c": 2}', "mem")
        assert [node.path for node in tree.iter_preorder()] == ["/", "/a", "/a/b", "/c"]
        assert tree.max_depth == 2

    def test_records_document_metadata(self) -> None:
        """Test that size, line count and hash are recorded."""
        tree = parse_json('{"a": 1}\n', "mem")
        assert tree.size_bytes == 9
        assert tree.line_count == 1
        assert len(tree.content_hash) == 64


class TestHierarchyIndexModel:
    """Tests for the HierarchyIndex model."""

    def _index(self) -> HierarchyIndex:
        entry = IndexEntry(id="r", type=NodeType.OBJECT, name="root", path="/", level=0, source="s")
        return HierarchyIndex(
            format="json",
            root_id="r",
            source_signature=SourceSignature(path="s", content_hash="h"),
            total_nodes=1,
            max_depth=0,
            entries={"r": entry},
        )

    def test_views_are_built(self) -> None:
        """Test that lookup views are derived from entries."""
        index = self._index()
        assert index.by_path == {"/": "r"}
        assert index.by_type == {"object": ["r"]}
        assert index.by_level == {0: ["r"]}
        assert index.source == "s"

    def test_views_survive_json_round_trip(self) -> None:
        """Test that views are rebuilt when loading from JSON."""
        index = self._index()
        loaded = HierarchyIndex.model_validate_json(index.model_dump_json())
        assert loaded.by_path == index.by_path
        assert loaded.version == "1"

    def test_views_are_not_serialized(self) -> None:
        """Test that private views stay out of the persisted form."""
        assert "_by_path" not in self._index().model_dump()
