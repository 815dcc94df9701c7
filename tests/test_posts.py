"""Tests for posts, attachments, likes, comments, tags, follows and the feed"""
import os
from urllib.parse import unquote, urlsplit

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import PNG_BYTES, set_quota
from snapfeed.config import settings
from snapfeed.main import app


def _post(client: TestClient, headers: dict, content: str = "hello", files=None):
    return client.post("/v1/posts", data={"content": content}, files=files, headers=headers)


def _png(name: str = "photo.png"):
    return ("file", (name, PNG_BYTES, "image/png"))


def _relative(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.path}?{parts.query}"


# ===== Creating posts =====

def test_create_post_consumes_quota(client: TestClient, make_user):
    alice = make_user("alice")

    response = _post(client, alice["headers"], "first post")
    assert response.status_code == 201
    body = response.json()
    assert body["content"] == "first post"
    assert body["user_id"] == alice["id"]
    assert (body["like_count"], body["comment_count"], body["tags"], body["files"]) == (0, 0, [], [])

    me = client.get("/v1/users/me", headers=alice["headers"]).json()
    assert me["quota"]["create_post"] == settings.QUOTA_INITIAL_CREATE_POST - 1


def test_create_post_with_exhausted_quota(client: TestClient, db: Session, make_user):
    alice = make_user("alice")
    set_quota(db, alice["id"], create_post=0)
    blobs_before = len(os.listdir(settings.BLOB_STORAGE_DIR))

    response = _post(client, alice["headers"], files=[_png()])

    assert response.status_code == 403
    assert response.json()["error"] == "quota_exhausted"
    assert client.get(f"/v1/posts/users/{alice['id']}", headers=alice["headers"]).json() == []
    assert len(os.listdir(settings.BLOB_STORAGE_DIR)) == blobs_before


def test_create_post_requires_auth(client: TestClient):
    assert _post(client, {}).status_code == 401


def test_create_post_empty_content(client: TestClient, make_user):
    alice = make_user("alice")
    assert _post(client, alice["headers"], content="").status_code == 422


# ===== Attachments =====

def test_attachment_download_via_signed_link(client: TestClient, make_user):
    alice = make_user("alice")

    response = _post(client, alice["headers"], files=[_png("cat.png")])
    assert response.status_code == 201
    files = response.json()["files"]
    assert len(files) == 1
    assert files[0]["original_filename"] == "cat.png"

    download = client.get(_relative(files[0]["url"]))
    assert download.status_code == 200
    assert download.content == PNG_BYTES


def test_tampered_link_is_forbidden(client: TestClient, make_user):
    alice = make_user("alice")
    url = _post(client, alice["headers"], files=[_png()]).json()["files"][0]["url"]

    parts = urlsplit(url)
    assert client.get(f"{parts.path}?expires=9999999999&sig=deadbeef").status_code == 403
    assert client.get(parts.path).status_code == 403


def test_too_many_files(client: TestClient, make_user):
    alice = make_user("alice")
    files = [_png(f"p{i}.png") for i in range(settings.MAX_FILES_PER_POST + 1)]

    response = _post(client, alice["headers"], files=files)
    assert response.status_code == 400


def test_unsupported_extension(client: TestClient, make_user):
    alice = make_user("alice")
    response = _post(client, alice["headers"], files=[("file", ("notes.txt", b"plain text", "text/plain"))])
    assert response.status_code == 400


def test_content_must_be_an_image(client: TestClient, make_user):
    alice = make_user("alice")
    response = _post(client, alice["headers"], files=[("file", ("fake.png", b"not really a png", "image/png"))])
    assert response.status_code == 400


def test_update_replaces_attachments(client: TestClient, make_user):
    alice = make_user("alice")
    created = _post(client, alice["headers"], files=[_png("old.png")]).json()
    old_key = unquote(urlsplit(created["files"][0]["url"]).path.rsplit("/", 1)[-1])
    blob_store = app.state.blob_store

    response = client.patch(
        f"/v1/posts/{created['id']}",
        data={"content": "edited"},
        files=[_png("new.png")],
        headers=alice["headers"],
    )

    assert response.status_code == 200
    body = response.json()
    assert body["content"] == "edited"
    assert [f["original_filename"] for f in body["files"]] == ["new.png"]
    assert not blob_store.exists(old_key)


def test_delete_post_removes_blobs(client: TestClient, make_user):
    alice = make_user("alice")
    created = _post(client, alice["headers"], files=[_png()]).json()
    key = unquote(urlsplit(created["files"][0]["url"]).path.rsplit("/", 1)[-1])
    assert app.state.blob_store.exists(key)

    assert client.delete(f"/v1/posts/{created['id']}", headers=alice["headers"]).status_code == 204
    assert not app.state.blob_store.exists(key)


# ===== Likes =====

def test_like_once(client: TestClient, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    post_id = _post(client, alice["headers"]).json()["id"]

    assert client.post(f"/v1/posts/{post_id}/likes", headers=bob["headers"]).status_code == 201
    assert client.post(f"/v1/posts/{post_id}/likes", headers=bob["headers"]).status_code == 409
    assert client.get(f"/v1/posts/{post_id}").json()["like_count"] == 1

    assert client.delete(f"/v1/posts/{post_id}/likes", headers=bob["headers"]).status_code == 204
    assert client.delete(f"/v1/posts/{post_id}/likes", headers=bob["headers"]).status_code == 404


def test_like_quota(client: TestClient, db: Session, make_user):
    alice = make_user("alice")
    set_quota(db, alice["id"], like=0)
    post_id = _post(client, alice["headers"]).json()["id"]

    response = client.post(f"/v1/posts/{post_id}/likes", headers=alice["headers"])
    assert response.status_code == 403
    assert response.json()["error"] == "quota_exhausted"


def test_like_missing_post(client: TestClient, make_user):
    alice = make_user("alice")
    assert client.post("/v1/posts/9999/likes", headers=alice["headers"]).status_code == 404


# ===== Comments =====

def test_comments(client: TestClient, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    post_id = _post(client, alice["headers"]).json()["id"]

    created = client.post(f"/v1/posts/{post_id}/comments", json={"content": "first!"}, headers=bob["headers"])
    assert created.status_code == 201
    comment = created.json()
    assert comment["user_id"] == bob["id"]

    listed = client.get(f"/v1/posts/{post_id}/comments", headers=alice["headers"]).json()
    assert [c["content"] for c in listed] == ["first!"]

    fetched = client.get(f"/v1/posts/{post_id}/comments/{comment['id']}", headers=alice["headers"])
    assert fetched.status_code == 200

    edited = client.patch(
        f"/v1/posts/{post_id}/comments/{comment['id']}", json={"content": "second!"}, headers=bob["headers"]
    )
    assert edited.json()["content"] == "second!"

    assert client.delete(f"/v1/posts/{post_id}/comments/{comment['id']}", headers=bob["headers"]).status_code == 204
    assert client.get(f"/v1/posts/{post_id}/comments/{comment['id']}", headers=bob["headers"]).status_code == 404


def test_comment_quota(client: TestClient, db: Session, make_user):
    alice = make_user("alice")
    set_quota(db, alice["id"], comment=0)
    post_id = _post(client, alice["headers"]).json()["id"]

    response = client.post(f"/v1/posts/{post_id}/comments", json={"content": "hi"}, headers=alice["headers"])
    assert response.status_code == 403
    assert client.get(f"/v1/posts/{post_id}").json()["comment_count"] == 0


def test_comments_require_auth(client: TestClient, make_user):
    alice = make_user("alice")
    post_id = _post(client, alice["headers"]).json()["id"]
    assert client.get(f"/v1/posts/{post_id}/comments").status_code == 401


# ===== Tags =====

def test_tagging_flow(client: TestClient, make_user):
    alice = make_user("alice")
    mod = make_user("mod", role="moderator")
    post_id = _post(client, alice["headers"]).json()["id"]

    tag = client.post("/v1/tags", json={"name": "Cats"}, headers=mod["headers"])
    assert tag.status_code == 201
    assert tag.json()["name"] == "cats"
    assert client.post("/v1/tags", json={"name": "cats"}, headers=mod["headers"]).status_code == 409

    attached = client.post(f"/v1/posts/{post_id}/tags", json={"name": "cats"}, headers=alice["headers"])
    assert attached.status_code == 201
    again = client.post(f"/v1/posts/{post_id}/tags", json={"name": "cats"}, headers=alice["headers"])
    assert again.status_code == 409
    unknown = client.post(f"/v1/posts/{post_id}/tags", json={"name": "dogs"}, headers=alice["headers"])
    assert unknown.status_code == 404

    by_tag = client.get("/v1/tags/CATS/posts")
    assert [p["id"] for p in by_tag.json()] == [post_id]
    assert [t["name"] for t in client.get(f"/v1/posts/{post_id}").json()["tags"]] == ["cats"]

    tag_id = tag.json()["id"]
    assert client.delete(f"/v1/posts/{post_id}/tags/{tag_id}", headers=alice["headers"]).status_code == 204
    assert client.delete(f"/v1/posts/{post_id}/tags/{tag_id}", headers=alice["headers"]).status_code == 404


def test_invalid_tag_name(client: TestClient, make_user):
    mod = make_user("mod", role="moderator")
    assert client.post("/v1/tags", json={"name": "two words"}, headers=mod["headers"]).status_code == 422


def test_posts_by_unknown_tag(client: TestClient):
    assert client.get("/v1/tags/nothing/posts").status_code == 404


# ===== Follows =====

def test_follow_flow(client: TestClient, make_user):
    alice = make_user("alice")
    bob = make_user("bob")

    response = client.post(f"/v1/users/{bob['id']}/follow", headers=alice["headers"])
    assert response.status_code == 201
    assert response.json() == {"user_id": bob["id"], "following": True}

    assert client.post(f"/v1/users/{bob['id']}/follow", headers=alice["headers"]).status_code == 409

    profile = client.get(f"/v1/users/{bob['id']}", headers=alice["headers"]).json()
    assert profile["followers_count"] == 1
    assert profile["quota"] is None

    assert client.delete(f"/v1/users/{bob['id']}/follow", headers=alice["headers"]).status_code == 204
    assert client.delete(f"/v1/users/{bob['id']}/follow", headers=alice["headers"]).status_code == 404


def test_cannot_follow_self(client: TestClient, make_user):
    alice = make_user("alice")
    assert client.post(f"/v1/users/{alice['id']}/follow", headers=alice["headers"]).status_code == 400


def test_follow_unknown_user(client: TestClient, make_user):
    alice = make_user("alice")
    assert client.post("/v1/users/9999/follow", headers=alice["headers"]).status_code == 404


def test_follow_quota(client: TestClient, db: Session, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    set_quota(db, alice["id"], follow=0)

    response = client.post(f"/v1/users/{bob['id']}/follow", headers=alice["headers"])
    assert response.status_code == 403
    assert response.json()["error"] == "quota_exhausted"


# ===== Feed =====

def test_authenticated_feed_shows_self_and_followed(client: TestClient, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    carol = make_user("carol")
    client.post(f"/v1/users/{bob['id']}/follow", headers=alice["headers"])

    own = _post(client, alice["headers"], "alice post").json()["id"]
    followed = _post(client, bob["headers"], "bob post").json()["id"]
    _post(client, carol["headers"], "carol post")

    feed = client.get("/v1/feed", headers=alice["headers"]).json()
    assert feed["page"] == 1
    assert [p["id"] for p in feed["posts"]] == [followed, own]


def test_anonymous_feed_orders_by_likes(client: TestClient, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    carol = make_user("carol")

    popular = _post(client, alice["headers"], "popular").json()["id"]
    quiet = _post(client, bob["headers"], "quiet").json()["id"]
    newest = _post(client, carol["headers"], "newest").json()["id"]
    for user in (bob, carol):
        client.post(f"/v1/posts/{popular}/likes", headers=user["headers"])

    feed = client.get("/v1/feed").json()
    assert [p["id"] for p in feed["posts"]] == [popular, newest, quiet]


def test_feed_rejects_bad_page(client: TestClient):
    assert client.get("/v1/feed?page=0").status_code == 400
