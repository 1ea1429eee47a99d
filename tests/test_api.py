import uuid
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

from api.routes_history import _content_disposition
from config import settings
from main import app


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        yield c


def signup(client, role, name=None, **credentials):
    email = f"{uuid.uuid4().hex[:10]}@x.com"
    credentials = credentials or {"password": "pw-123"}
    r = client.post("/identity/signup", json={"name": name or role.title(), "email": email, "role": role, **credentials})
    assert r.status_code == 201, r.text
    login = client.post("/identity/login", json={"email": email, **credentials})
    assert login.status_code == 200, login.text
    body = login.json()
    return body["user"], {"Authorization": f"Bearer {body['access_token']}"}


def test_status_endpoints(client):
    assert client.get("/").json()["status"] == "operational"
    assert client.get("/health-check").json() == {"api": "ok", "database": "ok", "crypto": "ok"}


def test_requests_without_token_are_rejected(client):
    assert client.get("/identity/me").status_code == 401
    assert client.get("/identity/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_signup_errors_map_to_statuses(client):
    user, _ = signup(client, "patient")
    r = client.post("/identity/signup", json={
        "name": "Again", "email": user["email"], "role": "patient", "password": "x",
    })
    assert r.status_code == 409
    assert r.json()["error"] == "DuplicateEmail"

    r = client.post("/identity/signup", json={"name": "No creds", "email": "nocreds@x.com", "role": "patient"})
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidCredentials"

    r = client.post("/identity/login", json={"email": user["email"], "password": "wrong"})
    assert r.status_code == 401


def test_credentials_never_leave_the_service(client):
    user, headers = signup(client, "patient")
    me = client.get("/identity/me", headers=headers).json()
    assert me["id"] == user["id"]
    assert "password_hash_hex" not in me and "salt_hex" not in me


def test_wallet_signup_and_login(client):
    user, headers = signup(client, "doctor", wallet_address="0xDeAdBeEf")
    assert user["auth_method"] == "wallet"
    assert client.get("/identity/me", headers=headers).json()["wallet_address"] == "0xDeAdBeEf"


def test_profile_and_directory(client):
    patient, headers = signup(client, "patient")
    r = client.patch("/identity/me/profile", headers=headers, json={"profile": {"weight": "70kg"}})
    assert r.status_code == 200
    assert r.json()["profile"] == {"weight": "70kg"}
    assert client.patch("/identity/me/profile", headers=headers, json={"profile": {"email": "x"}}).status_code == 422

    doctor, _ = signup(client, "doctor")
    listed = client.get("/identity/directory/doctor", headers=headers).json()
    assert doctor["id"] in {d["id"] for d in listed}


def test_full_flow_over_http(client):
    alice, alice_h = signup(client, "patient", name="Alice")
    bob, bob_h = signup(client, "doctor", name="Bob")
    pid = alice["id"]

    r = client.post(
        f"/history/{pid}/reports", headers=alice_h,
        data={"title": "MRI"}, files={"file": ("mri.txt", b"scan-bytes", "text/plain")},
    )
    assert r.status_code == 201, r.text
    report = r.json()
    assert report["has_file"] is True

    # no access yet
    assert client.get(f"/history/{pid}", headers=bob_h).json() == []
    r = client.post(f"/history/{pid}/notes", headers=bob_h, json={"text": "hello"})
    assert r.status_code == 403
    assert r.json()["error"] == "NoAccess"

    assert client.post("/permissions/grant", headers=alice_h, json={"grantee_id": bob["id"]}).status_code == 201
    assert client.post("/permissions/grant", headers=alice_h, json={"grantee_id": bob["id"]}).status_code == 409
    assert [p["id"] for p in client.get("/permissions/subjects", headers=bob_h).json()] == [pid]

    assert [e["title"] for e in client.get(f"/history/{pid}", headers=bob_h).json()] == ["MRI"]
    download = client.get(f"/history/entries/{report['id']}/file", headers=bob_h)
    assert download.status_code == 200
    assert download.content == b"scan-bytes"

    r = client.post(f"/prescriptions/{pid}", headers=bob_h, json={
        "medication": "Amoxicillin 500mg", "dosage": "1", "frequency": "3x daily", "duration": "7 days",
    })
    assert r.status_code == 201
    rx = r.json()
    assert [p["id"] for p in client.get(f"/prescriptions/{pid}", headers=alice_h).json()] == [rx["id"]]

    assert client.post("/permissions/revoke", headers=alice_h, json={"grantee_id": bob["id"]}).json() == {"status": "revoked"}
    assert client.post("/permissions/revoke", headers=alice_h, json={"grantee_id": bob["id"]}).json() == {"status": "not-granted"}
    assert client.get(f"/ledger/{pid}", headers=bob_h).status_code == 403

    verified = client.get(f"/ledger/{pid}/verify", headers=alice_h).json()
    assert [b["payload_type"] for b in verified["blocks"]] == [
        "genesis", "report", "access-granted", "prescription", "access-revoked",
    ]
    assert verified["ok"] is True
    assert verified["failures"] == []
    assert client.get(f"/ledger/{pid}", headers=alice_h).json() == verified["blocks"]


def test_prescription_delete_by_prescriber(client):
    alice, alice_h = signup(client, "patient")
    bob, bob_h = signup(client, "doctor")
    pid = alice["id"]
    client.post("/permissions/grant", headers=alice_h, json={"grantee_id": bob["id"]})
    rx = client.post(f"/prescriptions/{pid}", headers=bob_h, json={
        "medication": "Ibuprofen", "dosage": "200mg", "frequency": "2x", "duration": "3 days",
    }).json()

    assert client.delete(f"/prescriptions/{pid}/{rx['id']}", headers=alice_h).status_code == 403
    assert client.delete(f"/prescriptions/{pid}/{rx['id']}", headers=bob_h).status_code == 204
    assert client.delete(f"/prescriptions/{pid}/{rx['id']}", headers=bob_h).status_code == 404
    assert client.get(f"/prescriptions/{pid}", headers=alice_h).json() == []


def test_download_keeps_non_ascii_filenames(client):
    filename = "снимок.pdf"
    alice, alice_h = signup(client, "patient")
    r = client.post(
        f"/history/{alice['id']}/reports", headers=alice_h,
        data={"title": "Scan"}, files={"file": (filename, b"data", "application/pdf")},
    )
    assert r.status_code == 201, r.text

    download = client.get(f"/history/entries/{r.json()['id']}/file", headers=alice_h)
    assert download.status_code == 200
    assert download.content == b"data"
    assert download.headers["content-disposition"] == f"attachment; filename*=utf-8''{quote(filename)}"


@pytest.mark.parametrize("filename, header", [
    ("mri.txt", 'attachment; filename="mri.txt"'),
    ('scan "final".pdf', "attachment; filename*=utf-8''scan%20%22final%22.pdf"),
])
def test_content_disposition_quotes_what_it_must(filename, header):
    assert _content_disposition(filename) == header


def test_oversized_upload_is_refused(client, monkeypatch):
    alice, alice_h = signup(client, "patient")
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 4)
    r = client.post(
        f"/history/{alice['id']}/reports", headers=alice_h,
        data={"title": "Big"}, files={"file": ("big.bin", b"0123456789", "application/octet-stream")},
    )
    assert r.status_code == 422
    assert r.json()["error"] == "InvalidInput"
    assert client.get(f"/history/{alice['id']}", headers=alice_h).json() == []
