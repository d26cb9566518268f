"""
Shared pytest fixtures: the API wired to an in-process mongomock database and
the in-memory broker.
"""
import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
from config import Settings
from main import create_app
from realtime import InMemoryBroker


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(auth, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", database_name="influencer_connect_test")


@pytest.fixture
def db():
    return mongomock.MongoClient()["influencer_connect_test"]


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def app(settings, db, broker):
    return create_app(settings, db=db, broker=broker)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register(client):
    """Register a user through the API and return the response body."""
    def _register(username, email=None, password="secret1"):
        resp = client.post("/api/users/register", json={
            "username": username,
            "email": email or f"{username}@brand.io",
            "password": password,
        })
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _register


@pytest.fixture
def chat_between(client):
    """Open the chat between the token's owner and a contact, returning its id."""
    def _open(token, contact_id):
        resp = client.post("/api/chats", json={"contact_id": contact_id}, headers=auth_headers(token))
        assert resp.status_code == 200, resp.text
        return resp.json()["id"]
    return _open
