from datetime import datetime, timedelta, timezone

import jwt
import pytest
from bson import ObjectId
from starlette.websockets import WebSocketDisconnect

from auth import create_access_token, decode_access_token, hash_password, verify_password
from conftest import auth_headers
from errors import NotAuthenticated

PROTECTED = [
    ("GET", "/api/users/me", None),
    ("PATCH", "/api/users/me", {"bio": "hello"}),
    ("GET", "/api/contacts", None),
    ("GET", "/api/dashboard", None),
    ("GET", "/api/chats", None),
    ("POST", "/api/chats", {"contact_id": str(ObjectId())}),
    ("GET", "/api/messages/chat_a_b", None),
    ("POST", "/api/messages/chat_a_b", {"content": "hi"}),
]


def test_password_hash_roundtrip():
    encoded = hash_password("secret1")
    assert encoded.startswith("$2b$")
    assert verify_password("secret1", encoded)
    assert not verify_password("secret2", encoded)
    assert hash_password("secret1") != encoded


def test_verify_password_rejects_garbage():
    assert not verify_password("secret1", "")
    assert not verify_password("secret1", "md5$1$salt$abc")
    assert not verify_password("secret1", "pbkdf2_sha256$abc$salt$deadbeef")


def test_malformed_stored_hash_fails_login_cleanly(client, db, register):
    register("olive")
    db["user"].update_one({"username": "olive"}, {"$set": {"password_hash": "pbkdf2_sha256$abc$salt$deadbeef"}})
    resp = client.post("/api/users/login", json={"username": "olive", "password": "secret1"})
    assert resp.status_code == 400
    assert resp.json() == {"detail": "Invalid credentials"}


def test_overlong_password_is_rejected_at_registration(client, db):
    resp = client.post("/api/users/register", json={"username": "paula", "email": "p@x.com", "password": "x" * 73})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Password cannot exceed 72 bytes"
    assert db["user"].count_documents({}) == 0


def test_token_carries_subject_and_expiry(settings):
    token = create_access_token("abc123", settings)
    assert decode_access_token(token, settings) == "abc123"
    payload = jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    assert payload["exp"] - payload["iat"] == 60 * 60


def test_expired_token_is_rejected(settings):
    issued = datetime.now(timezone.utc) - timedelta(minutes=61)
    token = create_access_token("abc123", settings, now=issued)
    with pytest.raises(NotAuthenticated):
        decode_access_token(token, settings)


def test_token_signed_with_other_secret_is_rejected(settings):
    token = jwt.encode({"sub": "abc123", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}, "other-secret", algorithm="HS256")
    with pytest.raises(NotAuthenticated):
        decode_access_token(token, settings)


@pytest.mark.parametrize("method,path,body", PROTECTED)
def test_expired_token_rejected_everywhere(client, settings, register, method, path, body):
    user_id = register("mona")["user"]["id"]
    token = create_access_token(user_id, settings, now=datetime.now(timezone.utc) - timedelta(hours=2))
    resp = client.request(method, path, json=body, headers=auth_headers(token))
    assert resp.status_code == 401
    assert resp.json() == {"detail": "Please authenticate."}


@pytest.mark.parametrize("method,path,body", PROTECTED)
def test_missing_token_rejected_everywhere(client, method, path, body):
    resp = client.request(method, path, json=body)
    assert resp.status_code == 401


def test_malformed_header_and_unknown_subject(client, settings):
    resp = client.get("/api/users/me", headers={"Authorization": "Token abc"})
    assert resp.status_code == 401
    resp = client.get("/api/users/me", headers=auth_headers("not-a-jwt"))
    assert resp.status_code == 401
    ghost = create_access_token(str(ObjectId()), settings)
    resp = client.get("/api/users/me", headers=auth_headers(ghost))
    assert resp.status_code == 401


def test_websocket_requires_valid_token(client, settings, register):
    user_id = register("nate")["user"]["id"]
    expired = create_access_token(user_id, settings, now=datetime.now(timezone.utc) - timedelta(hours=2))
    for path in ("/ws", f"/ws?token={expired}"):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(path) as ws:
                ws.receive_json()
