import dataclasses

import pytest
from fastapi.testclient import TestClient
from typer.testing import CliRunner

from library_desk.api import app, get_service
from library_desk.config import settings
from library_desk.lending import open_service
from library_desk.main import app as cli_app
from library_desk.ui_helpers import OUTPUT_MODE_ENV

pytestmark = pytest.mark.integration

runner = CliRunner()
HEADERS = {"X-API-Key": settings.api_key}


@pytest.fixture(params=["sqlite", "file"])
def config(request, db_file, data_file, monkeypatch):
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    return dataclasses.replace(settings, storage_backend=request.param,
                               database_file=db_file, data_file=data_file)


def _cli(config, *args):
    base = ["--storage", config.storage_backend, "--db", config.database_file, "--data-file", config.data_file]
    result = runner.invoke(cli_app, base + list(args))
    assert result.exit_code == 0, result.stdout
    return result.stdout


def test_cli_state_is_served_by_api_and_back(config):
    """Loans written by the CLI are visible to a freshly opened API service and vice versa."""
    _cli(config, "add-book", "B1", "Clean Code", "Robert C. Martin", "--copies", "2")
    _cli(config, "add-user", "U1", "Asha Rao", "--email", "asha@example.com")
    _cli(config, "issue", "U1", "B1", "--date", "01/03/2025")

    service = open_service(config)
    app.dependency_overrides[get_service] = lambda: service
    try:
        client = TestClient(app)
        borrows = client.get("/users/U1/borrows").json()
        assert [(r["book_id"], r["borrow_date"]) for r in borrows] == [("B1", "2025-03-01")]

        response = client.post("/loans/return", headers=HEADERS,
                               json={"user_id": "U1", "book_id": "B1", "date": "20/03/2025"})
        assert response.json()["fine"] == 10.0
    finally:
        app.dependency_overrides.clear()
        service.close()

    assert "No active borrowed books." in _cli(config, "borrowed", "U1")
    stats = _cli(config, "stats")
    assert "Total Available Copies: 2" in stats
    assert "Total Borrowed Copies: 0" in stats


def test_full_book_lifecycle_over_api(config):
    service = open_service(config)
    app.dependency_overrides[get_service] = lambda: service
    try:
        client = TestClient(app)
        response = client.post("/books", headers=HEADERS,
                               json={"book_id": "B9", "title": "Refactoring", "author": "Martin Fowler"})
        assert response.status_code == 201

        response = client.put("/books/B9", headers=HEADERS, json={"title": "Refactoring 2e"})
        assert response.json()["title"] == "Refactoring 2e"

        assert client.delete("/books/B9", headers=HEADERS).status_code == 200
        assert client.get("/books/B9").status_code == 404
    finally:
        app.dependency_overrides.clear()
        service.close()

    assert "No books in the library." in _cli(config, "list-books")
