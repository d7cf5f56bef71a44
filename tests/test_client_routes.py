"""
Client and document endpoint tests
"""
import io
import os

import pytest

from conftest import auth, create_employee


def make_client(client, token, **fields):
    payload = {"name": "Sharma Traders", "company_name": "Sharma Pvt Ltd", "email": "acc@sharma.in"}
    payload.update(fields)
    resp = client.post("/api/clients", json=payload, headers=auth(token))
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["client"]


def upload(client, token, client_id, filename="return.pdf", data=b"%PDF-1.4 test", **form):
    form["document"] = (io.BytesIO(data), filename)
    return client.post(
        f"/api/clients/{client_id}/documents",
        data=form,
        content_type="multipart/form-data",
        headers=auth(token),
    )


def test_create_client_defaults(client, admin_token):
    created = make_client(client, admin_token)
    assert created["financial_year_end"] == "31-03"
    assert created["status"] == "active"
    assert created["assigned_user_name"] == "Admin User"


def test_create_client_requires_name(client, admin_token):
    resp = client.post("/api/clients", json={"company_name": "x"}, headers=auth(admin_token))
    assert resp.status_code == 400


def test_admin_can_assign_only_active_users(client, admin_token, employee):
    created = make_client(client, admin_token, assigned_to=employee["id"])
    assert created["assigned_to"] == employee["id"]

    resp = client.post("/api/clients", json={"name": "Ghost", "assigned_to": 999}, headers=auth(admin_token))
    assert resp.status_code == 400


def test_employee_clients_are_self_assigned(client, admin_token, employee):
    created = make_client(client, employee["token"], assigned_to=1)
    assert created["assigned_to"] == employee["id"]


def test_employee_sees_only_assigned_clients(client, admin_token, employee):
    mine = make_client(client, admin_token, name="Mine", assigned_to=employee["id"])
    other = make_client(client, admin_token, name="Other")

    body = client.get("/api/clients", headers=auth(employee["token"])).get_json()
    assert [c["id"] for c in body["clients"]] == [mine["id"]]
    assert body["pagination"]["total_count"] == 1

    assert client.get(f"/api/clients/{other['id']}", headers=auth(employee["token"])).status_code == 404
    assert client.get(f"/api/clients/{mine['id']}", headers=auth(employee["token"])).status_code == 200

    everything = client.get("/api/clients", headers=auth(admin_token)).get_json()
    assert everything["pagination"]["total_count"] == 2


def test_search_is_case_insensitive(client, admin_token):
    make_client(client, admin_token, name="Gupta & Sons", phone="99887")
    make_client(client, admin_token, name="Verma Exports")
    body = client.get("/api/clients?search=gupta", headers=auth(admin_token)).get_json()
    assert [c["name"] for c in body["clients"]] == ["Gupta & Sons"]
    body = client.get("/api/clients?search=998", headers=auth(admin_token)).get_json()
    assert len(body["clients"]) == 1


def test_update_client(client, admin_token, employee):
    created = make_client(client, admin_token, assigned_to=employee["id"])
    resp = client.put(
        f"/api/clients/{created['id']}",
        json={"name": "Sharma Traders LLP", "status": "inactive", "assigned_to": 1},
        headers=auth(employee["token"]),
    )
    assert resp.status_code == 200
    updated = resp.get_json()["client"]
    assert updated["name"] == "Sharma Traders LLP"
    assert updated["status"] == "inactive"
    # employees cannot reassign
    assert updated["assigned_to"] == employee["id"]


def test_update_missing_client(client, admin_token):
    resp = client.put("/api/clients/404", json={"name": "x"}, headers=auth(admin_token))
    assert resp.status_code == 404


def test_upload_list_download_and_delete_document(client, admin_token, app):
    created = make_client(client, admin_token)
    resp = upload(client, admin_token, created["id"], category="gst", description="Q1 return")
    assert resp.status_code == 201, resp.get_json()
    document = resp.get_json()["document"]
    assert document["original_name"] == "return.pdf"
    assert document["file_size"] == len(b"%PDF-1.4 test")
    assert document["category"] == "gst"
    assert document["uploaded_by_name"] == "Admin User"
    assert os.path.dirname(document["file_path"]) == os.path.join(app.config["UPLOAD_PATH"], "clients")
    assert os.path.exists(document["file_path"])

    detail = client.get(f"/api/clients/{created['id']}", headers=auth(admin_token)).get_json()
    assert [d["id"] for d in detail["documents"]] == [document["id"]]

    listing = client.get(f"/api/documents/clients/{created['id']}", headers=auth(admin_token)).get_json()
    assert listing["count"] == 1

    download = client.get(f"/api/documents/{document['id']}/download", headers=auth(admin_token))
    assert download.status_code == 200
    assert download.data == b"%PDF-1.4 test"
    download.close()

    resp = client.delete(f"/api/clients/{created['id']}/documents/{document['id']}", headers=auth(admin_token))
    assert resp.status_code == 200
    assert not os.path.exists(document["file_path"])
    assert client.get(f"/api/documents/{document['id']}/download", headers=auth(admin_token)).status_code == 404


def test_upload_rejects_disallowed_type(client, admin_token):
    created = make_client(client, admin_token)
    resp = upload(client, admin_token, created["id"], filename="script.exe")
    assert resp.status_code == 400


def test_upload_requires_file(client, admin_token):
    created = make_client(client, admin_token)
    resp = client.post(
        f"/api/clients/{created['id']}/documents",
        data={},
        content_type="multipart/form-data",
        headers=auth(admin_token),
    )
    assert resp.status_code == 400


def test_upload_too_large(client, admin_token, app):
    created = make_client(client, admin_token)
    payload = b"0" * (app.config["MAX_CONTENT_LENGTH"] + 1)
    resp = upload(client, admin_token, created["id"], data=payload)
    assert resp.status_code == 413


def test_download_missing_file(client, admin_token):
    created = make_client(client, admin_token)
    document = upload(client, admin_token, created["id"]).get_json()["document"]
    os.remove(document["file_path"])
    resp = client.get(f"/api/documents/{document['id']}/download", headers=auth(admin_token))
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "File not found on server"


def test_delete_client_removes_documents_and_unlinks_tasks(client, admin_token, employee, executor):
    created = make_client(client, admin_token)
    document = upload(client, admin_token, created["id"]).get_json()["document"]
    task = client.post(
        "/api/tasks",
        json={"title": "Audit", "assigned_to": employee["id"], "client_id": created["id"]},
        headers=auth(admin_token),
    ).get_json()["task"]

    assert client.delete(f"/api/clients/{created['id']}", headers=auth(employee["token"])).status_code == 403
    assert client.delete(f"/api/clients/{created['id']}", headers=auth(admin_token)).status_code == 200

    assert executor.fetch_one("SELECT id FROM clients WHERE id = ?", [created["id"]]) is None
    assert executor.fetch_all("SELECT id FROM client_documents WHERE client_id = ?", [created["id"]]) == []
    assert executor.fetch_one("SELECT client_id FROM tasks WHERE id = ?", [task["id"]]) == {"client_id": None}
    assert not os.path.exists(document["file_path"])


def test_client_stats_scoped_to_employee(client, admin_token, employee):
    make_client(client, admin_token, name="A", assigned_to=employee["id"])
    inactive = make_client(client, admin_token, name="B")
    client.put(f"/api/clients/{inactive['id']}", json={"name": "B", "status": "inactive"}, headers=auth(admin_token))

    admin_stats = client.get("/api/clients/stats/summary", headers=auth(admin_token)).get_json()
    assert admin_stats == {"total_clients": 2, "active_clients": 1, "inactive_clients": 1, "total_documents": 0}

    mine = client.get("/api/clients/stats/summary", headers=auth(employee["token"])).get_json()
    assert mine["total_clients"] == 1


@pytest.mark.parametrize("path", ["/api/clients", "/api/documents/clients/1"])
def test_client_routes_require_auth(client, path):
    assert client.get(path).status_code == 401


def test_second_employee_cannot_touch_documents(client, admin_token, employee):
    other = create_employee(client, admin_token, "Other Person", "other@agpcrm.com")
    created = make_client(client, admin_token, assigned_to=employee["id"])
    document = upload(client, employee["token"], created["id"]).get_json()["document"]

    assert client.get(f"/api/documents/{document['id']}/download", headers=auth(other["token"])).status_code == 404
    assert upload(client, other["token"], created["id"]).status_code == 404
