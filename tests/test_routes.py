import io
import zipfile

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from main import app
from kyc_workflow.core import create_access_token
from kyc_workflow.core.auth_dependencies import get_current_active_user
from kyc_workflow.core.errors import LoginBlockedError, NotFoundError
from kyc_workflow.services.audit_service import audit_service
from kyc_workflow.services.auth_service import auth_service
from kyc_workflow.services.document_registry_service import document_registry_service
from kyc_workflow.services.sequence_service import sequence_service
from kyc_workflow.services.verification_service import verification_service

USER = {"id": "user-1", "email": "asha@example.com", "role": "user", "is_active": True}
ADMIN = {"id": "admin-1", "email": "admin@example.com", "role": "admin", "is_active": True}
PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 32


@pytest.fixture
def as_user():
    app.dependency_overrides[get_current_active_user] = lambda: USER
    yield USER
    app.dependency_overrides = {}


@pytest.fixture
def as_admin():
    app.dependency_overrides[get_current_active_user] = lambda: ADMIN
    yield ADMIN
    app.dependency_overrides = {}


@pytest.fixture
def no_audit(monkeypatch):
    async def fake_record(**kwargs):
        return None
    monkeypatch.setattr(audit_service, "record", fake_record)


def test_health_has_security_headers():
    client = TestClient(app)
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_login_blocked_maps_to_403_with_reason(monkeypatch, no_audit):
    async def fake_login(email, password):
        raise LoginBlockedError("Your account is pending verification.", reason="verification_pending")
    monkeypatch.setattr(auth_service, "login_user", fake_login)

    client = TestClient(app)
    resp = client.post("/auth/login", data={"username": "asha@example.com", "password": "s3cret-pass"})

    assert resp.status_code == 403
    error = resp.json()["error"]
    assert error["code"] == "login_blocked"
    assert error["details"]["reason"] == "verification_pending"


def test_login_returns_bearer_token(monkeypatch, no_audit):
    async def fake_login(email, password):
        return {"access_token": "token-123", "token_type": "bearer", "user": {"id": "user-1"}}
    monkeypatch.setattr(auth_service, "login_user", fake_login)

    client = TestClient(app)
    resp = client.post("/auth/login", data={"username": "asha@example.com", "password": "s3cret-pass"})

    assert resp.status_code == 200
    assert resp.json() == {"access_token": "token-123", "token_type": "bearer"}


def test_missing_token_is_401():
    client = TestClient(app)
    resp = client.get("/documents/me")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "http_error"


def test_not_found_maps_to_404(monkeypatch, as_user):
    async def fake_get(document_number):
        raise NotFoundError("Verification record not found", details={"document_number": document_number})
    monkeypatch.setattr(verification_service, "get_by_number", fake_get)

    client = TestClient(app)
    resp = client.get("/verifications/by-number", params={"document_number": "001/15-10-2025"})

    assert resp.status_code == 404
    assert resp.json()["error"]["details"] == {"document_number": "001/15-10-2025"}


def test_admin_routes_reject_regular_users(as_user):
    client = TestClient(app)
    resp = client.get("/admin/users")
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "authorization_error"


def test_create_verification_requires_a_type(as_user):
    client = TestClient(app)
    resp = client.post("/verifications/", json={"verification_type": []})
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


def test_status_update_passes_admin_identity(monkeypatch, as_admin):
    calls = {}

    async def fake_update(document_number, status, actor_id, actor_role, verification_type=None, reason=None):
        calls.update(document_number=document_number, status=status, actor_id=actor_id, type=verification_type)
        raise NotFoundError("Verification record not found")
    monkeypatch.setattr(verification_service, "update_status", fake_update)

    client = TestClient(app)
    client.patch(
        "/verifications/status",
        params={"document_number": "002/15-10-2025"},
        json={"status": "VERIFIED", "verification_type": "OFFICE_VERIFICATION"},
    )

    assert calls == {
        "document_number": "002/15-10-2025",
        "status": "VERIFIED",
        "actor_id": "admin-1",
        "type": "OFFICE_VERIFICATION",
    }


def test_next_number_peek(monkeypatch, as_user):
    async def fake_peek():
        return "004/15-10-2025"
    monkeypatch.setattr(sequence_service, "peek", fake_peek)

    client = TestClient(app)
    assert client.get("/verifications/next-number").json() == {"document_number": "004/15-10-2025"}


def test_websocket_rejects_bad_token():
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/notifications?token=garbage") as ws:
            ws.receive_json()


def test_websocket_handshake_ping_and_subscribe(monkeypatch):
    async def fake_get_user(email):
        return dict(ADMIN)
    monkeypatch.setattr(auth_service, "get_user_by_email", fake_get_user)
    token = create_access_token({"sub": ADMIN["email"], "id": ADMIN["id"], "role": "admin"})

    client = TestClient(app)
    with client.websocket_connect(f"/ws/notifications?token={token}") as ws:
        hello = ws.receive_json()
        assert hello["type"] == "CONNECTION_ESTABLISHED"
        assert hello["data"]["role"] == "admin"

        ws.send_json({"type": "PING"})
        assert ws.receive_json() == {"type": "PONG"}

        ws.send_json({"type": "SUBSCRIBE_VERIFICATIONS"})
        assert ws.receive_json()["type"] == "SUBSCRIBED"


async def test_download_all_streams_a_zip(db, storage, as_user):
    await document_registry_service.upload_document(USER["id"], "personal", "PAN", PNG, "pan.png", "image/png")
    await document_registry_service.upload_document(USER["id"], "address", "UTILITY_BILL", PNG, "bill.png", "image/png")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get(f"/documents/{USER['id']}/download")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/zip"
    names = zipfile.ZipFile(io.BytesIO(resp.content)).namelist()
    assert len(names) == 2
    assert any(name.startswith("personal/") and name.endswith("pan.png") for name in names)


async def test_download_other_users_documents_is_forbidden(db, storage, as_user):
    await document_registry_service.upload_document("user-2", "personal", "PAN", PNG, "pan.png", "image/png")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/documents/user-2/download")

    assert resp.status_code == 403


async def test_upload_route_registers_document(db, storage, as_user):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/documents/upload/personal",
            files={"file": ("pan.png", PNG, "image/png")},
            data={"document_type": "PAN"},
        )

    assert resp.status_code == 201
    body = resp.json()
    assert body["user_id"] == USER["id"]
    assert len(body["personal_documents"]) == 1
    assert body["personal_documents"][0]["document_type"] == "PAN"
    assert len(storage.files) == 1


async def test_create_verification_route_allocates_number_and_links(db, storage, clock, as_user):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/verifications/",
            json={"verification_type": ["RESIDENCE_VERIFICATION"], "user_id": USER["id"]},
        )

    assert resp.status_code == 201
    body = resp.json()
    assert body["document_number"] == "001/15-10-2025"
    assert body["verification_type"] == ["RESIDENCE_VERIFICATION"]
    assert body["created_by"] == USER["id"]
    documents = await document_registry_service.get_record(USER["id"])
    assert documents.verifications == [body["id"]]
