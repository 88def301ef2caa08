"""Shared fixtures and helpers for tests."""

from collections.abc import Callable
from pathlib import Path

import pytest
from tree_sitter import Language, Parser
from tree_sitter_language_pack import get_language, get_parser

from zzgen.core.cache import Caches
from zzgen.core.source import SourceUnit, parse_source

_REPO_ROOT = Path(__file__).parent.parent

MODULE_NAME = "example.com/demo"


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
# Shared unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def caches() -> Caches:
    """Return a fresh, empty cache container."""
    return Caches()


@pytest.fixture
def go_parser() -> Parser:
    """Return a tree-sitter parser for Go."""
    return get_parser("go")


@pytest.fixture
def go_language() -> Language:
    """Return the tree-sitter Go language."""
    return get_language("go")


@pytest.fixture
def parse_go() -> Callable[[str], SourceUnit]:
    """Parse Go source text into a SourceUnit without touching the filesystem."""

    def _parse(source: str, path: str = "/virtual/x.go") -> SourceUnit:
        return parse_source(path, source.encode("utf-8"))

    return _parse


@pytest.fixture
def go_module(tmp_path: Path) -> Path:
    """Return the root of a temporary Go module named ``example.com/demo``."""
    root = tmp_path / "demo"
    root.mkdir()
    (root / "go.mod").write_text(f"module {MODULE_NAME}\n\ngo 1.21\n")
    return root


@pytest.fixture
def write_go() -> Callable[[Path, str], Path]:
    """Write a Go file, creating parent directories."""

    def _write(path: Path, source: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source)
        return path

    return _write
