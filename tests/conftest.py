"""Shared fixtures and helpers for tests."""

from pathlib import Path

import pytest

from doc_shard.core.settings import Settings

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Sample documents
# ---------------------------------------------------------------------------

SAMPLE_JSON = """{
  "name": "catalog",
  "items": [
    {"id": 1, "tags": ["a", "b"]},
    {"id": 2, "tags": []}
  ],
  "meta": {"owner": null, "active": true}
}
"""

SAMPLE_YAML = """name: catalog
items:
  - id: 1
    tags: [a, b]
  - id: 2
    tags: []
meta:
  owner: null
  active: true
"""

SAMPLE_XML = """<?xml version="1.0"?>
<library>
  <shelf id="s1">
    <book>First</book>
    <book>Second</book>
  </shelf>
  <shelf id="s2">
    <book>Third</book>
  </shelf>
</library>
"""

SAMPLE_MARKDOWN = """---
title: Guide
---
# Intro

Welcome text.

## Setup

- install
- configure

```bash
make build
```

# Usage

Run it.
"""


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with the index directory under the test's tmp_path."""
    return Settings(
        index_dir=tmp_path / "indexes",
        tool_timeout=5.0,
        accelerate_min_bytes=100 * 1024,
        preview_chars=40,
    )


@pytest.fixture
def json_file(tmp_path: Path) -> Path:
    path = tmp_path / "catalog.json"
    path.write_text(SAMPLE_JSON, encoding="utf-8")
    return path


@pytest.fixture
def yaml_file(tmp_path: Path) -> Path:
    path = tmp_path / "catalog.yaml"
    path.write_text(SAMPLE_YAML, encoding="utf-8")
    return path


@pytest.fixture
def xml_file(tmp_path: Path) -> Path:
    path = tmp_path / "library.xml"
    path.write_text(SAMPLE_XML, encoding="utf-8")
    return path


@pytest.fixture
def markdown_file(tmp_path: Path) -> Path:
    path = tmp_path / "guide.md"
    path.write_text(SAMPLE_MARKDOWN, encoding="utf-8")
    return path


@pytest.fixture
def samples() -> dict[str, str]:
    """Sample document text keyed by format name."""
    return {"json": SAMPLE_JSON, "yaml": SAMPLE_YAML, "xml": SAMPLE_XML, "markdown": SAMPLE_MARKDOWN}
