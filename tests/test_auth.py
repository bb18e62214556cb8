from datetime import timedelta

from bson import ObjectId

from auth import create_access_token, get_password_hash, verify_password

ALICE = {"username": "alice", "email": "alice@example.com", "password": "wonderland"}


def register(client, **overrides):
    return client.post("/api/users/register", json={**ALICE, **overrides})


def test_register_returns_token(client, db):
    response = register(client)
    assert response.status_code == 201
    body = response.json()
    assert body["access_token"]
    assert body["token_type"] == "bearer"
    assert body["user"]["username"] == "alice"
    assert "password" not in body["user"]
    stored = db["user"].find_one({"username": "alice"})
    assert stored["password"] != "wonderland"


def test_register_duplicate_username_or_email(client):
    register(client)
    assert register(client, email="new@example.com").status_code == 400
    assert register(client, username="alice2").status_code == 400
    assert register(client, username="fresh", email="fresh@example.com").status_code == 201


def test_register_alias_route(client):
    assert client.post("/api/auth/register", json=ALICE).status_code == 201


def test_register_validates_email(client):
    assert register(client, email="not-an-email").status_code == 400


def test_login_by_email_and_username(client):
    register(client)
    by_email = client.post("/api/users/login", json={"email": "ALICE@example.com", "password": "wonderland"})
    assert by_email.status_code == 200
    assert by_email.json()["user"]["username"] == "alice"
    by_username = client.post("/api/auth/login", json={"username": "alice", "password": "wonderland"})
    assert by_username.status_code == 200


def test_login_rejects_bad_credentials(client, make_user):
    register(client)
    make_user("nopass")
    assert client.post("/api/users/login", json={"email": "alice@example.com", "password": "nope"}).status_code == 401
    assert client.post("/api/users/login", json={"email": "ghost@example.com", "password": "x"}).status_code == 401
    assert client.post("/api/users/login", json={"username": "nopass", "password": "x"}).status_code == 401
    assert client.post("/api/users/login", json={"password": "x"}).status_code == 400


def test_me_with_bearer_and_custom_header(client):
    token = register(client).json()["access_token"]
    bearer = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert bearer.status_code == 200
    assert bearer.json()["username"] == "alice"
    custom = client.get("/api/auth/me", headers={"x-auth-token": token})
    assert custom.json()["username"] == "alice"


def test_me_requires_valid_token(client):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_expired_token(client):
    user_id = register(client).json()["user"]["id"]
    token = create_access_token(user_id, expires_delta=timedelta(seconds=-5))
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_token_for_deleted_user(client):
    token = create_access_token(str(ObjectId()))
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "User not found"


def test_token_user_is_default_author(client):
    body = register(client).json()
    headers = {"Authorization": f"Bearer {body['access_token']}"}
    post = client.post("/api/posts", json={"content": "from token"}, headers=headers)
    assert post.status_code == 201
    assert post.json()["author_id"] == body["user"]["id"]

    liked = client.post(f"/api/posts/{post.json()['id']}/like", headers=headers)
    assert liked.json()["likes"] == [body["user"]["id"]]


def test_logout(client):
    token = register(client).json()["access_token"]
    response = client.post("/api/auth/logout", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert client.post("/api/auth/logout").status_code == 401


def test_password_hashing():
    hashed = get_password_hash("s3cret")
    assert hashed != "s3cret"
    assert verify_password("s3cret", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("s3cret", None)


def test_register_rejects_blank_username(client, db):
    assert register(client, username="   ").status_code == 400
    assert register(client, username=" a ").status_code == 400
    assert db["user"].count_documents({}) == 0
