from http import HTTPStatus

import pytest
from starlette.applications import Starlette
from starlette.routing import Route
from starlette.testclient import TestClient

from viperclient.swagger import NO_CACHE_HEADERS, swagger_ui

INDEX = "<html>swagger index</html>"
SCRIPT = "console.log('swagger');"


@pytest.fixture
def client(tmp_path):
    (tmp_path / "index.html").write_text(INDEX)
    (tmp_path / "app.js").write_text(SCRIPT)
    app = Starlette(routes=[Route("/swagger/{path:path}", swagger_ui(tmp_path))])
    return TestClient(app)


def test_empty_path_serves_index_without_caching(client):
    response = client.get("/swagger/")
    assert response.text == INDEX
    assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    assert response.headers["pragma"] == NO_CACHE_HEADERS["Pragma"]


def test_any_index_serves_root_index(client):
    assert client.get("/swagger/index.html").text == INDEX
    assert client.get("/swagger/docs/index.html").text == INDEX


def test_static_file_is_served_with_normal_caching(client):
    response = client.get("/swagger/app.js")
    assert response.text == SCRIPT
    assert "no-store" not in response.headers.get("cache-control", "")


def test_missing_file_is_not_found(client):
    assert client.get("/swagger/missing.js").status_code == HTTPStatus.NOT_FOUND