"""Fixtures for integration tests that run the real jq, yq, xmllint and sed binaries."""

import shutil
from collections.abc import Callable

import pytest

from doc_shard.core.bridge import BashExecutorBridge


@pytest.fixture
def require_tool() -> Callable[[str], None]:
    """Skip the calling test when a binary is not on PATH."""

    def _require(binary: str) -> None:
        if shutil.which(binary) is None:
            pytest.skip(f"{binary} is not installed")

    return _require


@pytest.fixture
def bridge() -> BashExecutorBridge:
    return BashExecutorBridge(timeout=30.0)
