import mongomock
import pytest
from fastapi.testclient import TestClient

from main import create_app


@pytest.fixture
def db():
    return mongomock.MongoClient()["keepup_test"]


@pytest.fixture
def client(db):
    return TestClient(create_app(db))


@pytest.fixture
def make_user(client):
    def _make(username, email=None, **extra):
        body = {"username": username, "email": email or f"{username}@example.com", **extra}
        response = client.post("/api/users", json=body)
        assert response.status_code == 201, response.text
        return response.json()
    return _make


@pytest.fixture
def make_post(client):
    def _make(author, content="hello", **extra):
        response = client.post("/api/posts", json={"author_id": author["id"], "content": content, **extra})
        assert response.status_code == 201, response.text
        return response.json()
    return _make
