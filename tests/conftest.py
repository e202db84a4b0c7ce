"""Shared pytest fixtures for mcp-cortex tests."""

import tempfile
from pathlib import Path

import pytest

from mcp_cortex.config import CortexConfig
from mcp_cortex.engine import CortexEngine
from mcp_cortex.store import CortexStore


@pytest.fixture
def temp_root():
    """Create a temporary storage root."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_root):
    """Create a test configuration."""
    return CortexConfig(
        storage_root=temp_root / "storage",
        default_project="test-project",
        default_author="tester",
        lock_timeout=2.0,
    )


@pytest.fixture
def store(config):
    return CortexStore(config)


@pytest.fixture
def engine(config):
    """Create a test engine."""
    return CortexEngine(config)


@pytest.fixture
def write_note(store):
    """Write raw branch note text for (project, branch)."""
    def _write(project, branch, text):
        path = store.resolve_path("branch_note", project, branch)
        store.write_text(path, text)
        return path

    return _write
