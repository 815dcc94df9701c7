"""Tests for role precedence and the owner-or-role gates"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from snapfeed.errors import Forbidden, InternalError
from snapfeed.models.user import User
from snapfeed.utils.permissions import check_role_precedence, ensure_owner_or_role, load_role


def _post(client: TestClient, headers: dict, content: str = "hello") -> dict:
    response = client.post("/v1/posts", data={"content": content}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


# ===== Role precedence =====

@pytest.mark.parametrize("role,required,allowed", [
    ("user", "user", True),
    ("user", "moderator", False),
    ("moderator", "user", True),
    ("moderator", "moderator", True),
    ("moderator", "admin", False),
    ("admin", "moderator", True),
    ("admin", "admin", True),
])
def test_check_role_precedence(make_user, db: Session, role, required, allowed):
    created = make_user("person", role=role)
    user = db.query(User).filter(User.id == created["id"]).one()

    assert check_role_precedence(db, user, required) is allowed


def test_unknown_role_is_internal_error(db: Session):
    with pytest.raises(InternalError):
        load_role(db, "superuser")


def test_owner_passes_without_role(make_user, db: Session):
    created = make_user("alice")
    user = db.query(User).filter(User.id == created["id"]).one()

    ensure_owner_or_role(db, user, user.id, "admin")
    with pytest.raises(Forbidden):
        ensure_owner_or_role(db, user, user.id + 1, "admin")


# ===== Role assignment =====

def test_admin_assigns_role(client: TestClient, make_user):
    admin = make_user("root", role="admin")
    alice = make_user("alice")

    response = client.patch(f"/v1/users/{alice['id']}/role", json={"role_name": "moderator"}, headers=admin["headers"])

    assert response.status_code == 200
    assert response.json()["role"]["name"] == "moderator"


def test_non_admin_cannot_assign_role(client: TestClient, make_user):
    mod = make_user("mod", role="moderator")
    alice = make_user("alice")

    response = client.patch(f"/v1/users/{alice['id']}/role", json={"role_name": "admin"}, headers=mod["headers"])

    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


def test_assign_unknown_role(client: TestClient, make_user):
    admin = make_user("root", role="admin")

    response = client.patch(f"/v1/users/{admin['id']}/role", json={"role_name": "wizard"}, headers=admin["headers"])
    assert response.status_code == 404


# ===== Posts =====

def test_other_user_cannot_edit_post(client: TestClient, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    post = _post(client, alice["headers"])

    response = client.patch(f"/v1/posts/{post['id']}", data={"content": "defaced"}, headers=bob["headers"])
    assert response.status_code == 403


def test_moderator_edits_but_cannot_delete(client: TestClient, make_user):
    alice = make_user("alice")
    mod = make_user("mod", role="moderator")
    post = _post(client, alice["headers"])

    edited = client.patch(f"/v1/posts/{post['id']}", data={"content": "moderated"}, headers=mod["headers"])
    assert edited.status_code == 200
    assert edited.json()["content"] == "moderated"

    deleted = client.delete(f"/v1/posts/{post['id']}", headers=mod["headers"])
    assert deleted.status_code == 403


def test_admin_deletes_any_post(client: TestClient, make_user):
    alice = make_user("alice")
    admin = make_user("root", role="admin")
    post = _post(client, alice["headers"])

    assert client.delete(f"/v1/posts/{post['id']}", headers=admin["headers"]).status_code == 204
    assert client.get(f"/v1/posts/{post['id']}").status_code == 404


def test_owner_deletes_own_post(client: TestClient, make_user):
    alice = make_user("alice")
    post = _post(client, alice["headers"])

    assert client.delete(f"/v1/posts/{post['id']}", headers=alice["headers"]).status_code == 204


def test_missing_post_is_not_found_before_forbidden(client: TestClient, make_user):
    bob = make_user("bob")
    assert client.delete("/v1/posts/9999", headers=bob["headers"]).status_code == 404


# ===== Comments =====

def test_comment_gates(client: TestClient, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    mod = make_user("mod", role="moderator")
    admin = make_user("root", role="admin")
    post = _post(client, alice["headers"])

    comment = client.post(f"/v1/posts/{post['id']}/comments", json={"content": "nice"}, headers=bob["headers"])
    assert comment.status_code == 201
    url = f"/v1/posts/{post['id']}/comments/{comment.json()['id']}"

    assert client.patch(url, json={"content": "x"}, headers=alice["headers"]).status_code == 403
    assert client.patch(url, json={"content": "tidied"}, headers=mod["headers"]).status_code == 200
    assert client.delete(url, headers=mod["headers"]).status_code == 403
    assert client.delete(url, headers=admin["headers"]).status_code == 204


# ===== Tags =====

def test_only_moderators_create_tags(client: TestClient, make_user):
    alice = make_user("alice")
    mod = make_user("mod", role="moderator")

    assert client.post("/v1/tags", json={"name": "cats"}, headers=alice["headers"]).status_code == 403
    assert client.post("/v1/tags", json={"name": "cats"}, headers=mod["headers"]).status_code == 201


def test_role_gate_requires_authentication(client: TestClient):
    assert client.post("/v1/tags", json={"name": "cats"}).status_code == 401
