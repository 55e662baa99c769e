# Test configuration

import pytest
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture
def test_settings(tmp_path):
    """Override settings for testing"""
    from docport.config.settings import Settings
    return Settings(
        user_data_path=str(tmp_path / "userdata"),
        store_url="memory://",
        progress_interval_seconds=0.0,
        log_json=False,
    )


@pytest.fixture
def memory_store():
    """Fresh in-memory document store."""
    from docport.storage.memory import InMemoryDocumentStore
    return InMemoryDocumentStore()


@pytest.fixture
def write_file(tmp_path):
    """Write text (or bytes) to a file under tmp_path and return its path."""
    def _write(name, content):
        path = tmp_path / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return str(path)
    return _write
