"""Shared test fixtures."""
from __future__ import annotations

from pathlib import Path

import pytest

from funcs_builder.core.types import BuildRequest
from funcs_builder.daemon.mock import MockDaemon
from funcs_builder.progress.sinks import InMemoryProgressSink


@pytest.fixture
def mock_daemon() -> MockDaemon:
    return MockDaemon()


@pytest.fixture
def memory_sink() -> InMemoryProgressSink:
    return InMemoryProgressSink()


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """A function directory holding two files: ``Dockerfile`` and ``src/index.js``."""
    root = tmp_path / "func"
    (root / "src").mkdir(parents=True)
    (root / "Dockerfile").write_text("FROM node:16\nCOPY . /home/app\n")
    (root / "src" / "index.js").write_text("module.exports = () => 'ok'\n")
    return root


@pytest.fixture
def make_request(source_tree: Path):
    def _make(**overrides: object) -> BuildRequest:
        fields: dict[str, object] = {
            "base_image": "fonoster/base:latest",
            "image": "registry.example/fn:v1",
            "source_path": str(source_tree),
            "registry": "registry.example",
            "username": "alice",
            "secret": "s3cret",
        }
        fields.update(overrides)
        return BuildRequest(**fields)

    return _make
