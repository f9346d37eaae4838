"""
Pytest configuration and fixtures.
"""

import os
import sys
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "debug")

from core.config import ServerConfig  # noqa: E402
from core.storage import PluginRegistry  # noqa: E402
from core.storage.memory import InMemoryKVStorageFactory  # noqa: E402


INDEX_HTML = "<!doctype html><html><body>cockpit</body></html>"


@pytest.fixture
def index_html():
    return INDEX_HTML


@pytest.fixture
def www_root(tmp_path):
    """A minimal cockpit build: index.html plus one static asset."""
    root = tmp_path / "www"
    (root / "assets").mkdir(parents=True)
    (root / "index.html").write_text(INDEX_HTML)
    (root / "assets" / "app.js").write_text("console.log('cockpit');")
    return root


@pytest.fixture
def make_config(www_root):
    """Build a ServerConfig bound to free local ports, with overrides."""

    def _make(**overrides) -> ServerConfig:
        values = {
            "api_host": "127.0.0.1",
            "api_port": 0,
            "cockpit_host": "127.0.0.1",
            "cockpit_port": 0,
            "cockpit_www_root": str(www_root),
            "api_cors_domain_csv": "*",
            "storage_plugin_package": "memory",
            "storage_plugin_options_json": "{}",
            "log_level": "debug",
        }
        values.update(overrides)
        return ServerConfig(**values)

    return _make


@pytest.fixture
def registry():
    """Registry with only the in-memory plugin, no entry-point discovery."""
    registry = PluginRegistry()
    registry.register("memory", InMemoryKVStorageFactory)
    return registry
