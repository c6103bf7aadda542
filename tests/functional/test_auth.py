import uuid

from fastapi.testclient import TestClient


def _register(client: TestClient, email: str, password: str = "Password123!"):
    return client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, "full_name": "Lector Nuevo"},
    )


# Tests para el endpoint de login (verifica login exitoso del admin embebido)
def test_admin_login_success(client: TestClient, admin_credentials):
    resp = client.post(
        "/api/v1/auth/login",
        data={"username": admin_credentials["email"], "password": admin_credentials["password"]},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"


def test_login_fail_wrong_password(client: TestClient, admin_credentials):
    resp = client.post(
        "/api/v1/auth/login",
        data={"username": admin_credentials["email"], "password": "wrong"},
    )
    assert resp.status_code == 401


#un patron registrado queda como member pendiente de aprobación
def test_register_creates_unapproved_member(client: TestClient):
    email = f"nuevo_{uuid.uuid4().hex[:8]}@example.com"

    resp = _register(client, email)

    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["email"] == email
    assert data["role"] == "member"
    assert data["is_approved"] is False

    login = client.post("/api/v1/auth/login", data={"username": email, "password": "Password123!"})
    assert login.status_code == 200


def test_register_duplicate_email_fails(client: TestClient):
    email = f"dup_{uuid.uuid4().hex[:8]}@example.com"
    assert _register(client, email).status_code == 201

    resp = _register(client, email)
    assert resp.status_code == 400, resp.text


def test_register_invalid_email_fails(client: TestClient):
    resp = _register(client, "correo-invalido")
    assert resp.status_code == 422   # error de validación de Pydantic


def test_login_unregistered_email_fails(client: TestClient):
    resp = client.post(
        "/api/v1/auth/login",
        data={"username": "no_existe@example.com", "password": "pass123"},
    )
    assert resp.status_code == 401


# PROTECCION DE ENDPOINTS

def test_access_protected_endpoint_without_token_returns_401(client: TestClient):
    resp = client.get("/api/v1/notifications/")
    assert resp.status_code == 401


def test_access_protected_endpoint_with_invalid_token_returns_401(client: TestClient):
    invalid_headers = {"Authorization": "Bearer INVALIDTOKEN123"}

    resp = client.get("/api/v1/notifications/", headers=invalid_headers)
    assert resp.status_code == 401


def test_only_librarian_creates_books(client: TestClient, member, librarian_headers):
    payload = {"title": "Pedro Páramo", "author": "Juan Rulfo", "isbn": f"ISBN-{uuid.uuid4().hex[:8]}", "total_copies": 2}

    assert client.post("/api/v1/books/", json=payload, headers=member["headers"]).status_code == 403

    resp = client.post("/api/v1/books/", json=payload, headers=librarian_headers)
    assert resp.status_code == 201, resp.text
    assert resp.json()["available_copies"] == 2

    # ISBN repetido
    assert client.post("/api/v1/books/", json=payload, headers=librarian_headers).status_code == 409
