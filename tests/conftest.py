"""
Pytest configuration and fixtures for MemorySieve tests.
"""

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config_manager import ConfigManager
from memory_store import MemoryStore, MemoryUnit


def is_ci():
    """Check if running in CI environment."""
    return os.environ.get("CI") == "true" or os.environ.get("GITHUB_ACTIONS") == "true"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "local_only: mark test to run only locally (skipped in CI)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip local_only tests when running in CI."""
    if not is_ci():
        return

    skip_ci = pytest.mark.skip(reason="Test requires local resources (skipped in CI)")
    for item in items:
        if "local_only" in item.keywords:
            item.add_marker(skip_ci)


@pytest.fixture
def config(tmp_path):
    """Configuration rooted in a temp dir, embeddings off."""
    manager = ConfigManager(str(tmp_path / "config.json"))
    manager.set("embeddings.enabled", False)
    return manager


@pytest.fixture
def store(tmp_path):
    """Initialized SQLite store in a temp dir."""
    memory_store = MemoryStore(str(tmp_path / "memory.db"))
    memory_store.init()
    yield memory_store
    memory_store.close()


@pytest.fixture
def make_memory(store):
    """Factory that persists a memory unit with sensible defaults."""
    def _make(summary, classification="preference", store_name="stm", strength=0.5, **kwargs):
        return store.create_memory(MemoryUnit(
            id="",
            store=store_name,
            classification=classification,
            summary=summary,
            strength=strength,
            **kwargs
        ))
    return _make
