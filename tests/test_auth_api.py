from syndata.auth import service as auth_service
from syndata.core.config import get_settings

API = "/api/v1"


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_register_returns_token_and_sets_cookie(client):
    r = client.post(
        f"{API}/auth/register",
        json={"email": "Ada@Example.com", "password": "correct-horse", "name": "Ada"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["is_new_user"] is True
    assert body["user"]["email"] == "ada@example.com"
    assert body["user"]["role"] == "user"
    assert "syndata_session" in r.cookies


def test_register_duplicate_email(client, make_user):
    make_user(email="dup@example.com")
    r = client.post(
        f"{API}/auth/register",
        json={"email": "DUP@example.com", "password": "correct-horse", "name": "Dup"},
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Email already registered"


def test_register_validates_password_length(client):
    r = client.post(f"{API}/auth/register", json={"email": "a@example.com", "password": "short", "name": "Al"})
    assert r.status_code == 422


def test_login(client, make_user):
    make_user(email="login@example.com", password="correct-horse")
    r = client.post(f"{API}/auth/login", json={"email": "login@example.com", "password": "correct-horse"})
    assert r.status_code == 200
    assert r.json()["access_token"]

    r = client.post(f"{API}/auth/login", json={"email": "login@example.com", "password": "wrong-horse"})
    assert r.status_code == 401


def test_me_with_bearer_token(client, make_user):
    user = make_user(email="me@example.com", name="Me Myself")
    r = client.get(f"{API}/auth/me", headers=user["headers"])
    assert r.status_code == 200
    assert r.json()["id"] == user["id"]
    assert r.json()["name"] == "Me Myself"


def test_me_with_session_cookie_then_logout(client):
    r = client.post(
        f"{API}/auth/register",
        json={"email": "cookie@example.com", "password": "correct-horse", "name": "Cookie"},
    )
    assert r.status_code == 200

    assert client.get(f"{API}/auth/me").status_code == 200

    r = client.post(f"{API}/auth/logout")
    assert r.json() == {"success": True}
    assert client.get(f"{API}/auth/me").status_code == 401


def test_me_requires_auth(client):
    assert client.get(f"{API}/auth/me").status_code == 401
    r = client.get(f"{API}/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_google_sign_in_disabled_without_client_id(client):
    r = client.post(f"{API}/auth/google", json={"id_token": "whatever"})
    assert r.status_code == 400


def test_user_linked_to_customer_by_email(client, admin_headers, make_user):
    r = client.post(f"{API}/customers", json={"name": "Acme", "email": "ops@acme.io"}, headers=admin_headers)
    customer_id = r.json()["id"]

    user = make_user(email="ops@acme.io")
    me = client.get(f"{API}/auth/me", headers=user["headers"]).json()
    assert me["customer_id"] == customer_id


def test_google_email_is_normalized(client, admin_headers, monkeypatch):
    r = client.post(f"{API}/customers", json={"name": "Acme", "email": "lead@acme.io"}, headers=admin_headers)
    customer_id = r.json()["id"]

    claims = {"iss": "accounts.google.com", "email": "Lead@ACME.io", "name": "Lead", "sub": "g-123"}
    monkeypatch.setattr(get_settings(), "GOOGLE_CLIENT_ID", "client-id.apps.googleusercontent.com")
    monkeypatch.setattr(auth_service.id_token, "verify_oauth2_token", lambda token, request, audience: claims)

    r = client.post(f"{API}/auth/google", json={"id_token": "token"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["is_new_user"] is True
    assert body["user"]["email"] == "lead@acme.io"
    assert body["user"]["customer_id"] == customer_id

    r = client.post(f"{API}/auth/google", json={"id_token": "token"})
    assert r.json()["is_new_user"] is False
    assert r.json()["user"]["id"] == body["user"]["id"]
