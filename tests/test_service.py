from __future__ import annotations

import base64
from pathlib import Path
from typing import Iterator, List, Tuple

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from quicktalk.config import Settings
from quicktalk.database import Database
from quicktalk.errors import (
    AuthError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    NotificationError,
    StoreError,
    ValidationError,
    VerificationDeliveryError,
)
from quicktalk.service import create_app, status_for_error


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: List[Tuple[str, str]] = []
        self.fail = False

    def notify(self, address: str, code: str) -> None:
        if self.fail:
            raise NotificationError("smtp unavailable")
        self.sent.append((address, code))

    def last_code(self, address: str) -> str:
        for sent_address, code in reversed(self.sent):
            if sent_address == address:
                return code
        raise AssertionError(f"No code sent to {address}")


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def client(tmp_path: Path, notifier: RecordingNotifier) -> Iterator[TestClient]:
    settings = Settings(database_path=tmp_path / "quicktalk.sqlite3", cors_origins=())
    database = Database(settings.database_path)
    app = create_app(database=database, settings=settings, notifier=notifier)
    with TestClient(app) as test_client:
        yield test_client


def _register(client: TestClient, username: str, email: str, password: str = "pw1"):
    return client.post(
        "/api/auth/register",
        json={
            "username": username,
            "email": email,
            "password": password,
            "confirm_password": password,
        },
    )


def _login(client: TestClient, notifier: RecordingNotifier, username: str, email: str, password: str = "pw1") -> str:
    assert _register(client, username, email, password).status_code == 201
    verify = client.post(
        "/api/auth/verify-email",
        json={"email": email, "otp": notifier.last_code(email)},
    )
    assert verify.status_code == 200
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return response.json()["token"]


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.parametrize(
    "error, expected",
    [
        (ValidationError(), 400),
        (AuthError(), 401),
        (ForbiddenError(), 403),
        (NotFoundError(), 404),
        (ConflictError(field="handle"), 409),
        (StoreError(), 500),
        (VerificationDeliveryError(), 500),
    ],
)
def test_error_kinds_map_to_status_codes(error, expected) -> None:
    assert status_for_error(error) == expected


def test_health_and_ping(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/api/users/ping").json() == "ok"


def test_registration_verification_and_login(client: TestClient, notifier: RecordingNotifier) -> None:
    response = client.post(
        "/api/auth/register",
        json={
            "username": "usha",
            "email": "usha@x.com",
            "password": "pw1",
            "confirm_password": "pw1",
            "first_name": "Usha",
            "date_of_birth": "1999-04-02",
        },
    )
    assert response.status_code == 201

    blocked = client.post("/api/auth/login", json={"email": "usha@x.com", "password": "pw1"})
    assert blocked.status_code == 403

    wrong = client.post("/api/auth/verify-email", json={"email": "usha@x.com", "otp": "not-it"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid or expired OTP."

    code = notifier.last_code("usha@x.com")
    verified = client.post("/api/auth/verify-email", json={"email": "usha@x.com", "otp": code})
    assert verified.status_code == 200

    login = client.post("/api/auth/login", json={"email": "usha@x.com", "password": "pw1"})
    assert login.status_code == 200
    body = login.json()
    assert body["username"] == "usha"
    assert body["expires_in"] > 0

    me = client.get("/api/users/me", headers=_auth(body["token"]))
    assert me.status_code == 200
    assert me.json()["email"] == "usha@x.com"
    assert me.json()["first_name"] == "Usha"
    assert me.json()["date_of_birth"] == "1999-04-02"
    assert "password" not in me.text


def test_register_rejects_bad_input(client: TestClient) -> None:
    missing = client.post("/api/auth/register", json={"username": "usha"})
    assert missing.status_code == 400

    mismatch = client.post(
        "/api/auth/register",
        json={"username": "usha", "email": "usha@x.com", "password": "a", "confirm_password": "b"},
    )
    assert mismatch.status_code == 400


def test_register_conflict_reports_field(client: TestClient) -> None:
    assert _register(client, "usha", "usha@x.com").status_code == 201

    duplicate = _register(client, "other", "usha@x.com")
    assert duplicate.status_code == 409
    assert duplicate.json()["field"] == "address"

    taken = _register(client, "Usha", "other@x.com")
    assert taken.status_code == 409
    assert taken.json()["field"] == "handle"


def test_register_delivery_failure_keeps_account(client: TestClient, notifier: RecordingNotifier) -> None:
    notifier.fail = True
    assert _register(client, "usha", "usha@x.com").status_code == 500

    notifier.fail = False
    assert _register(client, "usha", "usha@x.com").status_code == 409

    resent = client.post("/api/auth/resend-verification", json={"email": "usha@x.com"})
    assert resent.status_code == 200
    code = notifier.last_code("usha@x.com")
    assert client.post("/api/auth/verify-email", json={"email": "usha@x.com", "otp": code}).status_code == 200


def test_login_with_wrong_password_is_unauthorised(client: TestClient, notifier: RecordingNotifier) -> None:
    _login(client, notifier, "usha", "usha@x.com")

    wrong = client.post("/api/auth/login", json={"email": "usha@x.com", "password": "nope"})
    unknown = client.post("/api/auth/login", json={"email": "ghost@x.com", "password": "pw1"})

    assert wrong.status_code == 401
    assert unknown.status_code == 401
    assert wrong.json()["detail"] == unknown.json()["detail"]


def test_reset_request_reply_is_generic(client: TestClient, notifier: RecordingNotifier) -> None:
    _login(client, notifier, "usha", "usha@x.com")
    sent_before = len(notifier.sent)

    known = client.post("/api/auth/request-password-reset", json={"email": "usha@x.com"})
    unknown = client.post("/api/auth/request-password-reset", json={"email": "ghost@x.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert len(notifier.sent) == sent_before + 1


def test_password_reset_revokes_sessions(client: TestClient, notifier: RecordingNotifier) -> None:
    token = _login(client, notifier, "usha", "usha@x.com")
    client.post("/api/auth/request-password-reset", json={"email": "usha@x.com"})
    code = notifier.last_code("usha@x.com")

    reset = client.post(
        "/api/auth/reset-password",
        json={"email": "usha@x.com", "otp": code, "new_password": "pw2", "confirm_password": "pw2"},
    )
    assert reset.status_code == 200

    assert client.get("/api/users/me", headers=_auth(token)).status_code == 401
    old = client.post("/api/auth/login", json={"email": "usha@x.com", "password": "pw1"})
    assert old.status_code == 401
    new = client.post("/api/auth/login", json={"email": "usha@x.com", "password": "pw2"})
    assert new.status_code == 200


def test_logout_ends_session(client: TestClient, notifier: RecordingNotifier) -> None:
    token = _login(client, notifier, "usha", "usha@x.com")

    assert client.post("/api/auth/logout", headers=_auth(token)).status_code == 204
    assert client.get("/api/users/me", headers=_auth(token)).status_code == 401


def test_protected_routes_require_bearer(client: TestClient) -> None:
    response = client.get("/api/messages/history")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"

    bogus = client.get("/api/users/me", headers=_auth("not-a-token"))
    assert bogus.status_code == 401


def test_keypair_returns_public_key(client: TestClient) -> None:
    first = client.get("/api/crypto/keypair")
    second = client.get("/api/crypto/keypair")

    assert first.status_code == 200
    decoded = base64.b64decode(first.json()["public_key"])
    assert len(decoded) > 0
    assert first.json()["public_key"] != second.json()["public_key"]


def test_messages_are_sent_and_listed(client: TestClient, notifier: RecordingNotifier) -> None:
    siri = _login(client, notifier, "siri", "siri@x.com")
    usha = _login(client, notifier, "usha", "usha@x.com")

    sent = client.post("/api/messages", json={"recipient": "usha", "content": "hi"}, headers=_auth(siri))
    assert sent.status_code == 201
    assert sent.json()["room"] == "siri|usha"
    assert sent.json()["sender"] == "siri"

    reply = client.post("/api/messages", json={"recipient": "siri", "content": "hey"}, headers=_auth(usha))
    assert reply.status_code == 201

    conversation = client.get("/api/messages/conversation/usha", headers=_auth(siri))
    assert [m["content"] for m in conversation.json()["messages"]] == ["hi", "hey"]

    history = client.get("/api/messages/history", headers=_auth(usha))
    assert [m["content"] for m in history.json()["messages"]] == ["hi", "hey"]


def test_blank_message_is_rejected(client: TestClient, notifier: RecordingNotifier) -> None:
    token = _login(client, notifier, "siri", "siri@x.com")

    response = client.post("/api/messages", json={"recipient": "usha", "content": "   "}, headers=_auth(token))

    assert response.status_code == 400
    history = client.get("/api/messages/history", headers=_auth(token))
    assert history.json()["messages"] == []


def test_websocket_requires_session(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect) as missing:
        with client.websocket_connect("/ws/chat"):
            pass
    assert missing.value.code == 4401

    with pytest.raises(WebSocketDisconnect) as invalid:
        with client.websocket_connect("/ws/chat?token=bogus"):
            pass
    assert invalid.value.code == 4403


def test_websocket_relays_between_participants(client: TestClient, notifier: RecordingNotifier) -> None:
    siri = _login(client, notifier, "siri", "siri@x.com")
    usha = _login(client, notifier, "usha", "usha@x.com")

    with client.websocket_connect("/ws/chat", headers=_auth(siri)) as siri_ws:
        assert siri_ws.receive_json() == {"type": "status", "status": "connected", "username": "siri"}
        with client.websocket_connect(f"/ws/chat?token={usha}") as usha_ws:
            assert usha_ws.receive_json()["username"] == "usha"

            siri_ws.send_json({"recipient": "usha", "content": "hi"})

            received = usha_ws.receive_json()
            echoed = siri_ws.receive_json()
            assert received["type"] == "message"
            assert received["message"]["content"] == "hi"
            assert received["message"]["sender"] == "siri"
            assert received["message"]["room"] == "siri|usha"
            assert echoed == received

            usha_ws.send_json({"type": "close"})

    conversation = client.get("/api/messages/conversation/siri", headers=_auth(usha))
    assert [m["content"] for m in conversation.json()["messages"]] == ["hi"]
