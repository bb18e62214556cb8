from bson import ObjectId


def test_add_and_list_comments(client, make_user, make_post):
    alice, bob = make_user("alice"), make_user("bob")
    post = make_post(alice)

    first = client.post(f"/api/posts/{post['id']}/comments", json={"author_id": bob["id"], "content": "nice"})
    assert first.status_code == 201
    assert first.json()["author"]["username"] == "bob"
    second = client.post(f"/api/posts/{post['id']}/comments", json={"author_id": alice["id"], "content": "thanks"})

    comments = client.get(f"/api/posts/{post['id']}/comments").json()
    assert [c["content"] for c in comments] == ["nice", "thanks"]
    assert client.get(f"/api/posts/{post['id']}").json()["comments"] == [first.json()["id"], second.json()["id"]]


def test_comment_requires_content(client, make_user, make_post):
    alice = make_user("alice")
    post = make_post(alice)
    response = client.post(f"/api/posts/{post['id']}/comments", json={"author_id": alice["id"], "content": ""})
    assert response.status_code == 400
    assert response.json()["detail"] == "Comment content is required"


def test_comment_on_missing_post(client, make_user):
    alice = make_user("alice")
    response = client.post(f"/api/posts/{ObjectId()}/comments", json={"author_id": alice["id"], "content": "hi"})
    assert response.status_code == 404


def test_delete_comment(client, make_user, make_post):
    alice = make_user("alice")
    post = make_post(alice)
    comment = client.post(f"/api/posts/{post['id']}/comments", json={"author_id": alice["id"], "content": "x"}).json()

    assert client.delete(f"/api/posts/{post['id']}/comments/{comment['id']}").status_code == 200
    assert client.get(f"/api/posts/{post['id']}/comments").json() == []
    assert client.get(f"/api/posts/{post['id']}").json()["comments"] == []


def test_comment_must_belong_to_post(client, make_user, make_post):
    alice = make_user("alice")
    post, other = make_post(alice), make_post(alice)
    comment = client.post(f"/api/posts/{post['id']}/comments", json={"author_id": alice["id"], "content": "x"}).json()
    response = client.delete(f"/api/posts/{other['id']}/comments/{comment['id']}")
    assert response.status_code == 404
    assert response.json()["detail"] == "Comment not found"


def test_like_comment_toggles(client, make_user, make_post):
    alice, bob = make_user("alice"), make_user("bob")
    post = make_post(alice)
    comment = client.post(f"/api/posts/{post['id']}/comments", json={"author_id": alice["id"], "content": "x"}).json()
    url = f"/api/posts/{post['id']}/comments/{comment['id']}/like"

    assert client.post(url, json={"user_id": bob["id"]}).json()["likes"] == [bob["id"]]
    assert client.post(url, json={"user_id": bob["id"]}).json()["likes"] == []


def test_deleting_post_removes_its_comments(client, db, make_user, make_post):
    alice = make_user("alice")
    post = make_post(alice)
    client.post(f"/api/posts/{post['id']}/comments", json={"author_id": alice["id"], "content": "x"})
    client.delete(f"/api/posts/{post['id']}")
    assert db["comment"].count_documents({"post_id": post["id"]}) == 0


def test_comment_with_malformed_author_id(client, db, make_user, make_post):
    post = make_post(make_user("alice"))
    response = client.post(f"/api/posts/{post['id']}/comments", json={"author_id": "bad", "content": "hi"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid user ID format"
    assert db["comment"].count_documents({}) == 0
