import importlib
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from config import settings

HEADERS = {"X-API-Key": settings.api_key}


@pytest.fixture
def client(db_file):
    import api as api_module
    # Reload api so its global Library() instance uses the test-specific DB
    importlib.reload(api_module)
    return TestClient(api_module.app)


@pytest.fixture
def book_id(client):
    payload = {"title": "Networking Concepts", "author": "Andrew Tanenbaum", "category": "Technology",
               "total_copies": 1, "isbn": "ISBN008", "price": "44.99"}
    return client.post("/books", headers=HEADERS, json=payload).json()["book_id"]


@pytest.fixture
def member_id(client):
    payload = {"first_name": "Grace", "last_name": "Lee", "email": "grace@example.com",
               "phone": "01234567897", "membership_type": "Staff"}
    return client.post("/members", headers=HEADERS, json=payload).json()["member_id"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["loan_period_days"] == settings.loan_period_days


def test_get_books(client):
    response = client.get("/books")
    assert response.status_code == 200
    assert response.json() == []


def test_add_book_with_valid_api_key(client, book_id):
    response = client.get(f"/books/{book_id}")
    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "Networking Concepts"
    assert body["total_copies"] == body["available_copies"] == 1


def test_add_book_with_invalid_api_key(client):
    response = client.post("/books", headers={"X-API-Key": "invalid-key"}, json={"title": "Sneaky"})
    assert response.status_code == 403


def test_add_book_validation_error(client):
    response = client.post("/books", headers=HEADERS, json={"title": "1234", "author": "Nobody"})
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationFailure"


def test_add_duplicate_book(client, book_id):
    payload = {"title": "Networking Concepts", "author": "Andrew Tanenbaum", "isbn": "ISBN008"}
    response = client.post("/books", headers=HEADERS, json=payload)
    assert response.status_code == 422
    assert response.json()["detail"] == "Book with ISBN ISBN008 already exists."


def test_get_missing_book_and_member(client):
    assert client.get("/books/99").status_code == 404
    assert client.get("/members/99").status_code == 404


def test_add_member(client, member_id):
    response = client.get(f"/members/{member_id}")
    assert response.status_code == 200
    assert response.json()["membership_type"] == "Staff"
    assert [m["member_id"] for m in client.get("/members").json()] == [member_id]


def test_issue_book(client, book_id, member_id):
    response = client.post("/transactions", headers=HEADERS, json={"member_id": member_id, "book_id": book_id})

    assert response.status_code == 201
    body = response.json()
    assert body["transaction_id"] == 1
    assert body["message"] == "Book issued successfully. Transaction ID: 1"
    assert body["due_date"] == (date.today() + timedelta(days=settings.loan_period_days)).isoformat()
    assert client.get(f"/books/{book_id}").json()["available_copies"] == 0


def test_issue_unavailable_book(client, book_id, member_id):
    client.post("/transactions", headers=HEADERS, json={"member_id": member_id, "book_id": book_id})
    response = client.post("/transactions", headers=HEADERS, json={"member_id": member_id, "book_id": book_id})

    assert response.status_code == 409
    assert response.json()["error"] == "Unavailable"
    assert len(client.get("/transactions").json()) == 1


def test_issue_unknown_book(client, member_id):
    response = client.post("/transactions", headers=HEADERS, json={"member_id": member_id, "book_id": 99})
    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"


def test_issue_to_unknown_member(client, book_id):
    response = client.post("/transactions", headers=HEADERS, json={"member_id": 99, "book_id": book_id})
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationFailure"


def test_issue_requires_api_key(client, book_id, member_id):
    response = client.post("/transactions", headers={"X-API-Key": "nope"},
                           json={"member_id": member_id, "book_id": book_id})
    assert response.status_code == 403


def test_transaction_lifecycle(client, book_id, member_id):
    tx_id = client.post("/transactions", headers=HEADERS,
                        json={"member_id": member_id, "book_id": book_id}).json()["transaction_id"]

    tx = client.get(f"/transactions/{tx_id}").json()
    assert tx["status"] == "Pending"
    assert tx["return_date"] is None

    fine = client.get(f"/transactions/{tx_id}/fine").json()
    assert fine["fine_amount"] == "0.00"
    assert fine["currency"] == settings.fine_currency

    late = date.today() + timedelta(days=settings.loan_period_days + 3)
    response = client.post(f"/transactions/{tx_id}/return", headers=HEADERS, json={"return_date": late.isoformat()})
    assert response.status_code == 200
    returned = response.json()
    assert returned["status"] == "Returned"
    assert returned["return_date"] == late.isoformat()
    assert Decimal(returned["fine_amount"]) == settings.fine_per_day * 3
    assert client.get(f"/books/{book_id}").json()["available_copies"] == 1

    listed = client.get("/transactions", params={"status": "Returned"}).json()
    assert [t["transaction_id"] for t in listed] == [tx_id]


def test_missing_transaction(client):
    response = client.get("/transactions/404")
    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"
    assert client.get("/transactions/404/fine").status_code == 404
    assert client.post("/transactions/404/return", headers=HEADERS).status_code == 404


def test_mark_overdue(client, book_id, member_id):
    client.post("/transactions", headers=HEADERS, json={"member_id": member_id, "book_id": book_id})

    response = client.post("/transactions/mark-overdue", headers=HEADERS)

    assert response.status_code == 200
    # Loans issued today are not yet past due
    assert response.json()["marked_overdue"] == 0
