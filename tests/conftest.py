"""
Shared fixtures: a throwaway SQLite-backed app per test
"""
import os
import sys

import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app import create_app  # noqa: E402
from config import Config  # noqa: E402
from db_backend import SQLiteExecutor  # noqa: E402

ADMIN_EMAIL = "admin@agpcrm.com"
ADMIN_PASSWORD = "admin123"


def make_config(tmp_path, **overrides):
    attrs = {
        "APP_ENV": "test",
        "DEBUG": False,
        "TESTING": True,
        "DATABASE_URL": None,
        "DB_PATH": str(tmp_path / "crm.db"),
        "UPLOAD_PATH": str(tmp_path / "uploads"),
        "BCRYPT_ROUNDS": 4,
        "RATELIMIT_ENABLED": False,
        "JWT_SECRET": "test-secret",
        "ADMIN_EMAIL": ADMIN_EMAIL,
        "ADMIN_PASSWORD": ADMIN_PASSWORD,
        "SMTP_HOST": "",
        "LOG_LEVEL": "WARNING",
    }
    attrs.update(overrides)
    return type("TestConfig", (Config,), attrs)


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def test_config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def executor(test_config):
    db = SQLiteExecutor(test_config.DB_PATH)
    yield db
    if not db.closed:
        db.close()


@pytest.fixture
def app(test_config, executor):
    return create_app(test_config, executor=executor)


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email, password):
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["token"]


@pytest.fixture
def admin_token(client):
    return login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


def create_employee(client, admin_token, name="Priya Shah", email="priya@agpcrm.com", password="secret123"):
    resp = client.post(
        "/api/users",
        json={"name": name, "email": email, "password": password, "department": "Audit"},
        headers=auth(admin_token),
    )
    assert resp.status_code == 201, resp.get_json()
    user = resp.get_json()["user"]
    user["token"] = login(client, email, password)
    return user


@pytest.fixture
def employee(client, admin_token):
    return create_employee(client, admin_token)
