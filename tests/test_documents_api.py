import base64
import hashlib
import json

import pytest
from fastapi.testclient import TestClient

import database
from conftest import create_dummy_pdf_bytes, create_signature_png, token_from_link
from database import Base, SessionLocal
from main import app
from modules.audit.models.audit_log import AuditAction, AuditLog, AuditStatus
from modules.auth.services.auth_service import AuthService
from modules.documents.dependencies import get_file_storage
from modules.documents.services.file_storage import FileStorage

ADMIN = {"email": "admin@example.com", "password": "admin123"}


@pytest.fixture
def client(tmp_path):
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    with SessionLocal() as session:
        AuthService.seed_admin(session, ADMIN["email"], ADMIN["password"])

    app.dependency_overrides[get_file_storage] = lambda: FileStorage(str(tmp_path / "uploads"))
    yield TestClient(app)
    app.dependency_overrides.clear()


def get_token(client, login_data):
    resp = client.post("/auth/login", json=login_data)
    assert resp.status_code == 200, resp.text
    return resp.json()["access_token"]


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(client):
    return auth_headers(get_token(client, ADMIN))


def register(client, admin_headers, name, email, password="secret123"):
    resp = client.post(
        "/auth/register",
        json={"name": name, "email": email, "password": password, "role": "USER"},
        headers=admin_headers,
    )
    assert resp.status_code == 201, resp.text
    return auth_headers(get_token(client, {"email": email, "password": password}))


def upload(client, headers, signers=None, filename="contract.pdf", content=None):
    files = {"file": (filename, content or create_dummy_pdf_bytes(), "application/pdf")}
    data = {"title": "Lease agreement"}
    if signers is not None:
        data["signers"] = json.dumps(signers)
    return client.post("/documents", files=files, data=data, headers=headers)


def signature_body(page=1):
    png = create_signature_png()
    return {
        "signature_data": "data:image/png;base64," + base64.b64encode(png).decode(),
        "method": "drawn",
        "position": {"page_number": page, "x": 100, "y": 150},
    }


def test_login_failure_is_audited(client):
    resp = client.post("/auth/login", json={"email": ADMIN["email"], "password": "wrong"})
    assert resp.status_code == 401

    with SessionLocal() as session:
        entry = session.query(AuditLog).filter(AuditLog.action == AuditAction.LOGIN_FAILED).one()
        assert entry.status == AuditStatus.FAILURE


def test_requests_without_token_are_rejected(client):
    assert client.get("/documents").status_code in {401, 403}


def test_register_requires_admin(client, admin_headers):
    user_headers = register(client, admin_headers, "Alice", "alice@example.com")
    resp = client.post(
        "/auth/register",
        json={"name": "Eve", "email": "eve@example.com", "password": "secret123"},
        headers=user_headers,
    )
    assert resp.status_code == 403


def test_upload_non_pdf_rejected_with_structured_error(client, admin_headers):
    files = {"file": ("documento.docx", b"This is not a PDF docx",
                      "application/vnd.openxmlformats-officedocument.wordprocessingml.document")}
    resp = client.post("/documents", files=files, headers=admin_headers)

    assert resp.status_code == 400
    body = resp.json()
    assert body["status"] == "error"
    assert body["kind"] == "validation_error"
    assert "pdf" in body["message"].lower()


def test_upload_with_bad_signers_json(client, admin_headers):
    files = {"file": ("contract.pdf", create_dummy_pdf_bytes(), "application/pdf")}
    resp = client.post("/documents", files=files, data={"signers": "not json"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["kind"] == "validation_error"


def test_send_without_signers_is_validation_error(client, admin_headers):
    doc = upload(client, admin_headers).json()

    resp = client.post(f"/documents/{doc['id']}/send", headers=admin_headers)

    assert resp.status_code == 400
    assert resp.json()["kind"] == "validation_error"
    assert client.get(f"/documents/{doc['id']}", headers=admin_headers).json()["status"] == "draft"


def test_reject_draft_is_conflict(client, admin_headers):
    doc = upload(client, admin_headers).json()
    resp = client.post(f"/documents/{doc['id']}/reject", json={"reason": "nope"}, headers=admin_headers)
    assert resp.status_code == 409
    assert resp.json()["kind"] == "conflict"


def test_unknown_signing_link_is_not_found(client):
    resp = client.get(f"/sign/{'0' * 64}")
    assert resp.status_code == 404
    assert resp.json() == {"status": "error", "kind": "not_found", "message": "Invalid or expired signing link."}


def test_malformed_body_is_structured_422(client, admin_headers):
    resp = client.post(f"/sign/{'0' * 64}", json={"method": "drawn"})
    assert resp.status_code == 422
    assert resp.json()["kind"] == "validation_error"


def test_full_signing_flow(client, admin_headers):
    alice_headers = register(client, admin_headers, "Alice Signer", "alice@example.com")
    bob_headers = register(client, admin_headers, "Bob Signer", "bob@example.com")

    created = upload(client, admin_headers, signers=[
        {"name": "Alice Signer", "email": "alice@example.com"},
        {"name": "Bob Signer", "email": "bob@example.com"},
    ])
    assert created.status_code == 201, created.text
    doc = created.json()
    assert doc["status"] == "draft"
    assert [s["email"] for s in doc["signers"]] == ["alice@example.com", "bob@example.com"]

    sent = client.post(f"/documents/{doc['id']}/send", headers=admin_headers)
    assert sent.status_code == 200
    assert sent.json()["status"] == "sent"

    # Alice signs through the emailed link
    inbox = client.get("/notifications/me", headers=alice_headers).json()
    assert len(inbox) == 1
    assert inbox[0]["kind"] == "signing_request"
    token = token_from_link(inbox[0]["link"])

    context = client.get(f"/sign/{token}")
    assert context.status_code == 200
    assert context.json()["signer_email"] == "alice@example.com"
    assert context.json()["owner_name"] == "Administrator"

    signed_by_link = client.post(f"/sign/{token}", json=signature_body())
    assert signed_by_link.status_code == 201, signed_by_link.text
    assert signed_by_link.json()["all_signed"] is False
    assert signed_by_link.json()["document_status"] == "sent"

    reused = client.post(f"/sign/{token}", json=signature_body())
    assert reused.status_code == 404

    # Bob signs with his account
    signed_by_account = client.post(f"/documents/{doc['id']}/sign", json=signature_body(), headers=bob_headers)
    assert signed_by_account.status_code == 201, signed_by_account.text
    result = signed_by_account.json()
    assert result["all_signed"] is True
    assert result["completed"] is True
    assert result["document_status"] == "signed"

    owner_inbox = client.get("/notifications/me", headers=admin_headers).json()
    assert [n["kind"] for n in owner_inbox] == ["document_signed"]

    download = client.get(f"/documents/{doc['id']}/download", headers=admin_headers)
    assert download.status_code == 200
    assert download.headers["content-type"] == "application/pdf"
    assert download.headers["x-document-hash"] == hashlib.sha256(download.content).hexdigest()

    signatures = client.get(f"/documents/{doc['id']}/signatures", headers=alice_headers).json()
    assert [s["signer_email"] for s in signatures] == ["bob@example.com", "alice@example.com"]

    report = client.get(f"/signatures/{signatures[0]['id']}/verify", headers=admin_headers).json()
    assert report["is_valid"] is True
    assert report["checked_file"] == "signed"

    history = client.get(f"/documents/{doc['id']}/history", headers=admin_headers).json()
    actions = [entry["action"] for entry in history]
    assert actions[0] == "document_created"
    assert "document_sent" in actions
    assert "document_signed" in actions


def test_mark_notification_read(client, admin_headers):
    alice_headers = register(client, admin_headers, "Alice Signer", "alice@example.com")
    doc = upload(client, admin_headers, signers=[{"name": "Alice Signer", "email": "alice@example.com"}]).json()
    client.post(f"/documents/{doc['id']}/send", headers=admin_headers)

    notification = client.get("/notifications/me", headers=alice_headers).json()[0]
    assert notification["read"] is False

    resp = client.patch(f"/notifications/{notification['id']}/read", headers=alice_headers)
    assert resp.status_code == 200
    assert resp.json()["read"] is True

    other = client.patch(f"/notifications/{notification['id']}/read", headers=admin_headers)
    assert other.status_code == 404


def test_delete_draft_endpoint(client, admin_headers):
    doc = upload(client, admin_headers).json()

    resp = client.delete(f"/documents/{doc['id']}", headers=admin_headers)
    assert resp.status_code == 200
    assert client.get(f"/documents/{doc['id']}", headers=admin_headers).status_code == 404


def test_list_documents_paginates(client, admin_headers):
    for i in range(3):
        upload(client, admin_headers, filename=f"doc{i}.pdf")

    page = client.get("/documents", params={"page": 1, "limit": 2}, headers=admin_headers).json()
    assert page["total"] == 3
    assert len(page["documents"]) == 2

    drafts = client.get("/documents", params={"status": "draft"}, headers=admin_headers).json()
    assert drafts["total"] == 3


def send_to_alice(client, admin_headers):
    alice_headers = register(client, admin_headers, "Alice Signer", "alice@example.com")
    doc = upload(client, admin_headers, signers=[{"name": "Alice Signer", "email": "alice@example.com"}]).json()
    client.post(f"/documents/{doc['id']}/send", headers=admin_headers)
    link = client.get("/notifications/me", headers=alice_headers).json()[0]["link"]
    return doc, alice_headers, token_from_link(link)


@pytest.mark.parametrize("literal", ["Infinity", "-Infinity", "NaN"])
def test_non_finite_position_is_rejected_before_signing(client, admin_headers, literal):
    doc, _, token = send_to_alice(client, admin_headers)
    body = json.dumps(signature_body()).replace('"x": 100', f'"x": {literal}')

    resp = client.post(f"/sign/{token}", content=body, headers={"Content-Type": "application/json"})

    assert resp.status_code == 422
    assert resp.json()["kind"] == "validation_error"
    assert client.get(f"/sign/{token}").status_code == 200

    signed = client.post(f"/sign/{token}", json=signature_body())
    assert signed.status_code == 201
    assert signed.json()["document_status"] == "signed"


def test_sign_by_link_with_uploaded_image(client, admin_headers):
    doc, _, token = send_to_alice(client, admin_headers)

    resp = client.post(
        f"/sign/{token}/upload",
        files={"signature": ("firma.png", create_signature_png(), "image/png")},
        data={"page_number": "1", "x": "100", "y": "150", "signer_name": "Alice S."},
    )

    assert resp.status_code == 201, resp.text
    result = resp.json()
    assert result["signature"]["method"] == "uploaded"
    assert result["signature"]["signer_name"] == "Alice S."
    assert result["document_status"] == "signed"


def test_sign_with_account_and_uploaded_image(client, admin_headers):
    doc, alice_headers, _ = send_to_alice(client, admin_headers)

    resp = client.post(
        f"/documents/{doc['id']}/sign/upload",
        files={"signature": ("firma.png", create_signature_png(), "image/png")},
        data={"x": "72", "y": "72"},
        headers=alice_headers,
    )

    assert resp.status_code == 201, resp.text
    assert resp.json()["completed"] is True


def test_uploaded_signature_must_be_an_image(client, admin_headers):
    _, _, token = send_to_alice(client, admin_headers)

    resp = client.post(
        f"/sign/{token}/upload",
        files={"signature": ("firma.txt", b"hello", "text/plain")},
        data={"x": "100", "y": "150"},
    )

    assert resp.status_code == 400
    assert resp.json()["kind"] == "validation_error"
    assert client.get(f"/sign/{token}").status_code == 200


def test_uploaded_signature_with_infinite_position(client, admin_headers):
    _, _, token = send_to_alice(client, admin_headers)

    resp = client.post(
        f"/sign/{token}/upload",
        files={"signature": ("firma.png", create_signature_png(), "image/png")},
        data={"x": "inf", "y": "150"},
    )

    assert resp.status_code in {400, 422}
    assert resp.json()["kind"] == "validation_error"
    assert client.get(f"/sign/{token}").status_code == 200
