from bson import ObjectId


def test_create_and_get_user(client, make_user):
    alice = make_user("alice", "Alice@Example.com", name="Alice")
    assert alice["email"] == "alice@example.com"
    assert alice["settings"]["theme"] == "system"
    assert alice["friends"] == [] and alice["groups"] == []

    fetched = client.get(f"/api/users/{alice['id']}").json()
    assert fetched["username"] == "alice"
    assert fetched["name"] == "Alice"
    assert "password" not in fetched


def test_duplicate_user(client, make_user):
    make_user("alice")
    response = client.post("/api/users", json={"username": "alice", "email": "other@example.com"})
    assert response.status_code == 400
    assert response.json()["detail"] == "User already exists"


def test_list_users_hides_passwords(client, make_user):
    make_user("alice")
    client.post("/api/users/register", json={"username": "bob", "email": "bob@example.com", "password": "secret123"})
    users = client.get("/api/users").json()
    assert {u["username"] for u in users} == {"alice", "bob"}
    assert all("password" not in u for u in users)


def test_missing_user(client):
    assert client.get(f"/api/users/{ObjectId()}").status_code == 404
    assert client.get("/api/users/garbage").status_code == 404


def test_update_profile(client, make_user):
    alice = make_user("alice")
    response = client.put(f"/api/users/{alice['id']}", json={"name": "Alice A.", "bio": "hi", "profile_picture": "https://p/a.png"})
    assert response.status_code == 200
    body = response.json()
    assert (body["name"], body["bio"], body["profile_picture"]) == ("Alice A.", "hi", "https://p/a.png")


def test_settings_are_merged(client, make_user):
    alice = make_user("alice")
    client.put(f"/api/users/{alice['id']}", json={"settings": {"theme": "dark"}})
    body = client.put(f"/api/users/{alice['id']}", json={"settings": {"notifications": {"daily_reminder": False}}}).json()
    assert body["settings"]["theme"] == "dark"
    assert body["settings"]["notifications"] == {
        "new_comments": True,
        "friend_requests": True,
        "group_invites": True,
        "daily_reminder": False,
    }
    assert body["settings"]["privacy"]["profile_visibility"] == "public"


def test_invalid_theme_is_rejected(client, make_user):
    alice = make_user("alice")
    response = client.put(f"/api/users/{alice['id']}", json={"settings": {"theme": "neon"}})
    assert response.status_code == 400


def test_update_missing_user(client):
    assert client.put(f"/api/users/{ObjectId()}", json={"name": "x"}).status_code == 404


def test_blank_username_is_rejected(client, db):
    for username in ("   ", " a "):
        response = client.post("/api/users", json={"username": username, "email": "blank@example.com"})
        assert response.status_code == 400
    assert db["user"].count_documents({}) == 0


def test_username_is_stripped(make_user):
    assert make_user("  alice ", "alice@example.com")["username"] == "alice"
