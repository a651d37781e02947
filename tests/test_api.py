from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from library_desk.api import app, get_service
from library_desk.config import settings
from library_desk.exceptions import PersistenceError

HEADERS = {"X-API-Key": settings.api_key}


@pytest.fixture
def client(stocked):
    # Route every request to the per-test service instead of the configured store
    app.dependency_overrides[get_service] = lambda: stocked
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _issue(client, user_id="U1", book_id="B1", date="01/03/2025"):
    return client.post("/loans/issue", headers=HEADERS,
                       json={"user_id": user_id, "book_id": book_id, "date": date})


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["total_titles"] == 2


def test_get_books(client):
    response = client.get("/books")
    assert response.status_code == 200
    assert [b["book_id"] for b in response.json()] == ["B1", "B2"]


def test_search_books(client):
    response = client.get("/books", params={"q": "GAMMA"})
    assert [b["book_id"] for b in response.json()] == ["B2"]


def test_get_book_not_found(client):
    response = client.get("/books/nope")
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_add_book_with_valid_api_key(client):
    payload = {"book_id": "B3", "title": "Refactoring", "author": "Martin Fowler", "total_copies": 2}
    response = client.post("/books", headers=HEADERS, json=payload)
    assert response.status_code == 201
    body = response.json()
    assert body["book_id"] == "B3"
    assert body["available_copies"] == 2
    assert body["download_link"] is None


def test_add_book_with_invalid_api_key(client):
    payload = {"book_id": "B3", "title": "Refactoring"}
    response = client.post("/books", headers={"X-API-Key": "invalid-key"}, json=payload)
    assert response.status_code == 403
    assert client.get("/books/B3").status_code == 404


def test_add_book_rejects_zero_copies(client):
    payload = {"book_id": "B3", "title": "Nothing", "total_copies": 0}
    assert client.post("/books", headers=HEADERS, json=payload).status_code == 422


def test_add_duplicate_book_conflicts(client):
    response = client.post("/books", headers=HEADERS, json={"book_id": "B1", "title": "Again"})
    assert response.status_code == 409
    assert response.json()["code"] == "duplicate_key"


def test_invalid_book_id_is_bad_request(client):
    response = client.post("/books", headers=HEADERS, json={"book_id": "has space", "title": "T"})
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_input"


def test_update_book(client):
    response = client.put("/books/B1", headers=HEADERS, json={"total_copies": 5})
    assert response.status_code == 200
    assert response.json()["available_copies"] == 5


def test_book_status_blocks_issue(client):
    response = client.put("/books/B2/status", headers=HEADERS, json={"active": False})
    assert response.json()["active"] is False
    assert _issue(client, book_id="B2").status_code == 404


def test_issue_and_return_flow(client):
    issued = _issue(client)
    assert issued.status_code == 201
    record = issued.json()
    assert record["borrow_date"] == "2025-03-01"
    assert record["due_date"] == "2025-03-15"
    assert record["returned"] is False

    assert _issue(client).json()["code"] == "already_borrowed"

    returned = client.post("/loans/return", headers=HEADERS,
                           json={"user_id": "U1", "book_id": "B1", "date": "2025-03-17"})
    assert returned.status_code == 200
    body = returned.json()
    assert body["fine"] == 4.0
    assert body["overdue_days"] == 2
    assert body["record"]["return_date"] == "2025-03-17"

    assert client.get("/books/B1").json()["available_copies"] == 2


def test_issue_conflicts_map_to_409(client):
    assert _issue(client, "U1", "B2").status_code == 201
    response = _issue(client, "U2", "B2")
    assert response.status_code == 409
    assert response.json()["code"] == "not_available"


def test_return_not_borrowed_is_conflict(client):
    response = client.post("/loans/return", headers=HEADERS, json={"user_id": "U1", "book_id": "B1"})
    assert response.status_code == 409
    assert response.json()["code"] == "not_borrowed"


def test_return_before_issue_date_is_bad_request(client):
    _issue(client, date="10/03/2025")
    response = client.post("/loans/return", headers=HEADERS,
                           json={"user_id": "U1", "book_id": "B1", "date": "09/03/2025"})
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_date_range"


def test_invalid_date_is_bad_request(client):
    response = _issue(client, date="31/02/2025")
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_date"


def test_delete_book_with_loan_is_busy(client):
    _issue(client)
    response = client.delete("/books/B1", headers=HEADERS)
    assert response.status_code == 409
    assert response.json()["code"] == "resource_busy"
    assert client.delete("/books/B2", headers=HEADERS).status_code == 200


def test_users_and_borrows(client):
    response = client.post("/users", headers=HEADERS,
                           json={"user_id": "U4", "name": "Dana Cruz", "email": "dana@example.com"})
    assert response.status_code == 201
    assert response.json()["active_borrow_count"] == 0

    _issue(client, "U4", "B1")
    client.post("/loans/return", headers=HEADERS, json={"user_id": "U4", "book_id": "B1", "date": "02/03/2025"})
    _issue(client, "U4", "B2", "03/03/2025")

    active = client.get("/users/U4/borrows").json()
    assert [r["book_id"] for r in active] == ["B2"]
    history = client.get("/users/U4/borrows", params={"include_returned": True}).json()
    assert [r["book_id"] for r in history] == ["B1", "B2"]
    assert client.get("/users/U4").json()["active_borrow_count"] == 1


def test_user_status_and_delete(client):
    response = client.put("/users/U3/status", headers=HEADERS, json={"active": False})
    assert response.json()["active"] is False
    assert client.delete("/users/U3", headers=HEADERS).status_code == 200
    assert client.get("/users/U3").status_code == 404


def test_stats(client):
    _issue(client)
    response = client.get("/stats")
    assert response.status_code == 200
    assert response.json() == {
        "total_titles": 2,
        "total_available_copies": 2,
        "total_borrowed_copies": 1,
        "total_users": 3,
    }


def test_persistence_failure_is_service_unavailable(client, stocked, monkeypatch):
    monkeypatch.setattr(stocked.store, "save_all", MagicMock(side_effect=PersistenceError("disk full")))
    response = _issue(client)
    assert response.status_code == 503
    assert response.json()["code"] == "persistence_failure"
    assert client.get("/books/B1").json()["available_copies"] == 2
