"""
Auth endpoint tests
"""
from datetime import datetime, timedelta, timezone

import jwt

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, auth, login


def test_login_returns_token_without_password(client):
    resp = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["token"]
    assert body["user"]["email"] == ADMIN_EMAIL
    assert body["user"]["role"] == "admin"
    assert "password" not in body["user"]


def test_login_is_case_insensitive_on_email(client):
    resp = client.post("/api/auth/login", json={"email": "ADMIN@agpcrm.com", "password": ADMIN_PASSWORD})
    assert resp.status_code == 200


def test_login_rejects_bad_format(client):
    resp = client.post("/api/auth/login", json={"email": "not-an-email", "password": ""})
    assert resp.status_code == 400


def test_login_rejects_wrong_password(client):
    resp = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": "nope"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid credentials"


def test_login_rejects_unknown_user(client):
    resp = client.post("/api/auth/login", json={"email": "ghost@agpcrm.com", "password": "whatever"})
    assert resp.status_code == 401


def test_deactivated_user_cannot_login(client, admin_token, employee):
    client.delete(f"/api/users/{employee['id']}", headers=auth(admin_token))
    resp = client.post("/api/auth/login", json={"email": employee["email"], "password": "secret123"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Account is deactivated"
    # tokens issued before deactivation stop working too
    assert client.get("/api/auth/verify", headers=auth(employee["token"])).status_code == 401


def test_missing_token(client):
    resp = client.get("/api/auth/profile")
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Access token required"


def test_invalid_token(client):
    resp = client.get("/api/auth/profile", headers=auth("garbage"))
    assert resp.status_code == 403


def test_expired_token(client, app):
    past = datetime.now(timezone.utc) - timedelta(hours=2)
    token = jwt.encode(
        {"userId": 1, "email": ADMIN_EMAIL, "role": "admin", "iat": past, "exp": past + timedelta(hours=1)},
        app.config["JWT_SECRET"],
        algorithm="HS256",
    )
    resp = client.get("/api/auth/profile", headers=auth(token))
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Token expired"


def test_profile_round_trip(client, admin_token):
    resp = client.put("/api/auth/profile", json={"name": "Chief Admin", "phone": "98765"}, headers=auth(admin_token))
    assert resp.status_code == 200
    assert resp.get_json()["user"]["name"] == "Chief Admin"

    profile = client.get("/api/auth/profile", headers=auth(admin_token)).get_json()["user"]
    assert profile["phone"] == "98765"
    assert "password" not in profile


def test_profile_update_requires_name(client, admin_token):
    resp = client.put("/api/auth/profile", json={"phone": "1"}, headers=auth(admin_token))
    assert resp.status_code == 400
    assert resp.get_json()["details"] == ["name is required"]


def test_profile_update_rejects_non_string_name(client, admin_token):
    resp = client.put("/api/auth/profile", json={"name": 123}, headers=auth(admin_token))
    assert resp.status_code == 400
    assert resp.get_json()["details"] == ["name must be a string"]


def test_change_password_rejects_non_string(client, admin_token):
    resp = client.put(
        "/api/auth/change-password",
        json={"currentPassword": 123456, "newPassword": "secret99"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Passwords must be strings"


def test_change_password(client, admin_token):
    resp = client.put(
        "/api/auth/change-password",
        json={"currentPassword": "wrong", "newPassword": "newpass1"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 400

    resp = client.put(
        "/api/auth/change-password",
        json={"currentPassword": ADMIN_PASSWORD, "newPassword": "newpass1"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 200
    assert login(client, ADMIN_EMAIL, "newpass1")


def test_change_password_too_short(client, admin_token):
    resp = client.put(
        "/api/auth/change-password",
        json={"currentPassword": ADMIN_PASSWORD, "newPassword": "abc"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 400


def test_verify(client, admin_token):
    body = client.get("/api/auth/verify", headers=auth(admin_token)).get_json()
    assert body["valid"] is True
    assert body["user"]["email"] == ADMIN_EMAIL
