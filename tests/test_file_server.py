"""
Tests for the cockpit static file server.
"""

import pytest
from fastapi.testclient import TestClient

from api.file_server import create_file_server_app


@pytest.fixture
def client(www_root):
    return TestClient(create_file_server_app(str(www_root)))


def test_serves_index_at_root(client, index_html):
    response = client.get("/")

    assert response.status_code == 200
    assert response.text == index_html


def test_serves_static_assets(client):
    response = client.get("/assets/app.js")

    assert response.status_code == 200
    assert response.text == "console.log('cockpit');"


@pytest.mark.parametrize("path", ["/consortium/42", "/settings", "/assets/missing.js"])
def test_unknown_paths_fall_back_to_index(client, path, index_html):
    """Test single-page-app routing fallback."""
    response = client.get(path)

    assert response.status_code == 200
    assert response.text == index_html


def test_missing_document_root(tmp_path):
    """Test that a missing document root fails at construction."""
    with pytest.raises(RuntimeError):
        create_file_server_app(str(tmp_path / "does-not-exist"))
