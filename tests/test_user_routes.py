"""
User management endpoint tests
"""
from conftest import auth, create_employee


def test_employee_cannot_manage_users(client, employee):
    resp = client.get("/api/users", headers=auth(employee["token"]))
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "Admin access required"


def test_create_user_validation(client, admin_token):
    resp = client.post(
        "/api/users",
        json={"name": "A", "email": "bad", "password": "123", "role": "owner"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"] == "Validation failed"
    assert len(body["details"]) == 4


def test_create_user_rejects_duplicate_email(client, admin_token, employee):
    resp = client.post(
        "/api/users",
        json={"name": "Other", "email": employee["email"].upper(), "password": "secret123"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 400


def test_created_user_defaults(employee):
    assert employee["role"] == "employee"
    assert employee["department"] == "Audit"
    assert employee["is_active"] == 1
    assert "password" not in employee


def test_list_users_with_search_and_pagination(client, admin_token):
    create_employee(client, admin_token, "Meera Iyer", "meera@agpcrm.com")
    create_employee(client, admin_token, "Karan Mehta", "karan@agpcrm.com")

    body = client.get("/api/users?search=MEERA", headers=auth(admin_token)).get_json()
    assert [u["name"] for u in body["users"]] == ["Meera Iyer"]

    body = client.get("/api/users?limit=2&page=1", headers=auth(admin_token)).get_json()
    assert len(body["users"]) == 2
    assert body["pagination"] == {"current_page": 1, "total_pages": 2, "total_count": 3, "per_page": 2}

    body = client.get("/api/users?role=employee", headers=auth(admin_token)).get_json()
    assert {u["email"] for u in body["users"]} == {"meera@agpcrm.com", "karan@agpcrm.com"}


def test_get_user(client, admin_token, employee):
    resp = client.get(f"/api/users/{employee['id']}", headers=auth(admin_token))
    assert resp.status_code == 200
    assert resp.get_json()["user"]["email"] == employee["email"]
    assert client.get("/api/users/999", headers=auth(admin_token)).status_code == 404


def test_update_user(client, admin_token, employee):
    resp = client.put(
        f"/api/users/{employee['id']}",
        json={"name": "Priya S", "email": employee["email"], "role": "admin", "department": "Tax"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 200
    user = resp.get_json()["user"]
    assert user["role"] == "admin"
    assert user["department"] == "Tax"


def test_update_user_rejects_taken_email(client, admin_token, employee):
    resp = client.put(
        f"/api/users/{employee['id']}",
        json={"name": "Priya", "email": "admin@agpcrm.com"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 400


def test_reset_password(client, admin_token, employee):
    resp = client.put(
        f"/api/users/{employee['id']}/reset-password",
        json={"newPassword": "fresh123"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 200
    login = client.post("/api/auth/login", json={"email": employee["email"], "password": "fresh123"})
    assert login.status_code == 200
    missing = client.put("/api/users/999/reset-password", json={"newPassword": "fresh123"}, headers=auth(admin_token))
    assert missing.status_code == 404


def test_delete_is_soft_and_not_self(client, admin_token, employee):
    me = client.get("/api/auth/verify", headers=auth(admin_token)).get_json()["user"]
    assert client.delete(f"/api/users/{me['id']}", headers=auth(admin_token)).status_code == 400

    assert client.delete(f"/api/users/{employee['id']}", headers=auth(admin_token)).status_code == 200
    user = client.get(f"/api/users/{employee['id']}", headers=auth(admin_token)).get_json()["user"]
    assert user["is_active"] == 0


def test_user_stats(client, admin_token, employee):
    create_employee(client, admin_token, "Gone Soon", "gone@agpcrm.com")
    gone = client.get("/api/users?search=gone", headers=auth(admin_token)).get_json()["users"][0]
    client.delete(f"/api/users/{gone['id']}", headers=auth(admin_token))

    stats = client.get("/api/users/stats/summary", headers=auth(admin_token)).get_json()
    assert stats == {"total_active": 2, "total_admins": 1, "total_employees": 1, "total_inactive": 1}
