from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from libronova.api import create_app


@pytest.fixture
def client(ctx):
    return TestClient(create_app(ctx))


@pytest.fixture
def headers(settings):
    return {"X-API-Key": settings.api_key}


@pytest.fixture
def stocked(client, headers):
    payload = {"isbn": "9780307474728", "title": "Cien años de soledad",
               "author": "Gabriel García Márquez", "total_copies": 2}
    assert client.post("/books", headers=headers, json=payload).status_code == 201
    response = client.post("/members", headers=headers, json={"name": "Ana Torres", "email": "ana@example.com"})
    assert response.status_code == 201
    return response.json()["member_id"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_get_books(client):
    response = client.get("/books")
    assert response.status_code == 200
    assert response.json() == []


def test_add_book_with_valid_api_key(client, headers):
    payload = {"isbn": "9780321765723", "title": "Effective C++", "author": "Scott Meyers", "reference_price": "120.50"}
    response = client.post("/books", headers=headers, json=payload)
    assert response.status_code == 201
    body = response.json()
    assert body["isbn"] == "9780321765723"
    assert body["available_copies"] == 1
    assert Decimal(body["reference_price"]) == Decimal("120.50")


def test_add_book_with_invalid_api_key(client):
    payload = {"isbn": "9780321765723", "title": "T", "author": "A"}
    response = client.post("/books", headers={"X-API-Key": "invalid-key"}, json=payload)
    assert response.status_code == 403


def test_add_book_with_non_ascii_api_key(client):
    payload = {"isbn": "9780321765723", "title": "T", "author": "A"}
    response = client.post("/books", headers={"X-API-Key": "clé-secrète".encode("utf-8")}, json=payload)
    assert response.status_code == 403


def test_add_book_invalid_isbn(client, headers):
    response = client.post("/books", headers=headers, json={"isbn": "12", "title": "T", "author": "A"})
    assert response.status_code == 422


def test_add_duplicate_book(client, headers, stocked):
    payload = {"isbn": "9780307474728", "title": "Again", "author": "Someone"}
    assert client.post("/books", headers=headers, json=payload).status_code == 409


def test_update_and_delete_book(client, headers, stocked):
    response = client.put("/books/9780307474728", headers=headers, json={"total_copies": 4})
    assert response.status_code == 200
    assert response.json()["available_copies"] == 4

    assert client.put("/books/0000000000", headers=headers, json={"title": "x"}).status_code == 404
    assert client.delete("/books/9780307474728", headers=headers).status_code == 200
    assert client.get("/books/9780307474728").status_code == 404


def test_loan_lifecycle(client, headers, stocked, clock):
    today = clock.today
    clock.today = today - timedelta(days=10)
    response = client.post("/loans", headers=headers, json={"isbn": "9780307474728", "member_id": stocked})
    assert response.status_code == 201
    loan = response.json()
    assert loan["due_date"] == (today - timedelta(days=3)).isoformat()
    assert client.get("/books/9780307474728").json()["available_copies"] == 1

    clock.today = today
    fine = client.get(f"/loans/{loan['loan_id']}/fine").json()
    assert Decimal(fine["fine_amount"]) == Decimal("4500")
    assert [l["loan_id"] for l in client.get("/loans", params={"status": "overdue"}).json()] == [loan["loan_id"]]

    response = client.post(f"/loans/{loan['loan_id']}/return", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["days_overdue"] == 3
    assert body["loan"]["status"] == "RETURNED"
    assert client.get("/books/9780307474728").json()["available_copies"] == 2

    response = client.post(f"/loans/{loan['loan_id']}/return", headers=headers)
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "INVALID_OPERATION"


def test_loan_errors_map_to_status_codes(client, headers, stocked):
    response = client.post("/loans", headers=headers, json={"isbn": "9780000000000", "member_id": stocked})
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "NOT_FOUND"

    client.post(f"/members/{stocked}/deactivate", headers=headers)
    response = client.post("/loans", headers=headers, json={"isbn": "9780307474728", "member_id": stocked})
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "INACTIVE_MEMBER"

    assert client.get("/loans/999").status_code == 404
    assert client.get("/loans", params={"status": "lost"}).status_code == 400


def test_delete_member_with_loans_conflicts(client, headers, stocked):
    client.post("/loans", headers=headers, json={"isbn": "9780307474728", "member_id": stocked})
    assert client.delete(f"/members/{stocked}", headers=headers).status_code == 409


def test_duplicate_member_email(client, headers, stocked):
    response = client.post("/members", headers=headers, json={"name": "Other", "email": "ANA@example.com"})
    assert response.status_code == 409


def test_export_csv(client, headers, stocked):
    response = client.get("/export/books.csv")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=books_catalog_" in response.headers["content-disposition"]
    assert "9780307474728" in response.text

    assert client.get("/export/overdue.csv").text.startswith("Loan ID,ISBN,Member ID")


def test_stats(client, headers, stocked):
    client.post("/loans", headers=headers, json={"isbn": "9780307474728", "member_id": stocked})
    stats = client.get("/stats").json()
    assert stats["total_books"] == 1
    assert stats["available_copies"] == 1
    assert stats["active_loans"] == 1


def test_login(client, settings):
    ok = client.post("/auth/login", json={"username": settings.admin_username, "password": settings.admin_password})
    assert ok.status_code == 200
    assert ok.json()["role"] == "ADMIN"
    assert "password_hash" not in ok.json()

    bad = client.post("/auth/login", json={"username": settings.admin_username, "password": "wrong"})
    assert bad.status_code == 401


def test_create_user_requires_admin(client, headers, settings):
    admin_auth = (settings.admin_username, settings.admin_password)
    response = client.post("/users", headers=headers, auth=admin_auth,
                           json={"username": "clerk_1", "password": "pass1234"})
    assert response.status_code == 201
    assert response.json()["role"] == "ASSISTANT"

    response = client.post("/users", headers=headers, auth=("clerk_1", "pass1234"),
                           json={"username": "clerk_2", "password": "pass1234"})
    assert response.status_code == 403

    response = client.post("/users", headers=headers, auth=("clerk_1", "wrong"),
                           json={"username": "clerk_3", "password": "pass1234"})
    assert response.status_code == 401
