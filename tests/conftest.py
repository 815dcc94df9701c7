"""Pytest configuration and fixtures"""
import os
import tempfile
from typing import Callable, Dict, Generator

# Settings are read when snapfeed is first imported
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["ACCESS_TOKEN_SECRET"] = "test-access-secret"
os.environ["REFRESH_TOKEN_SECRET"] = "test-refresh-secret"
os.environ["BLOB_URL_SECRET"] = "test-blob-secret"
os.environ["BLOB_STORAGE_DIR"] = tempfile.mkdtemp(prefix="snapfeed-blobs-")
os.environ["COOKIE_SECURE"] = "false"  # TestClient talks plain http
os.environ["QUOTA_SWEEP_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("REDIS_URL", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from snapfeed.api.deps import get_session_registry
from snapfeed.database import Base, SessionLocal, engine, get_db
from snapfeed.main import app
from snapfeed.models.role import Role
from snapfeed.models.user import User, UserLimit
from snapfeed.seed import ensure_default_roles
from snapfeed.utils.sessions import InMemorySessionRegistry

DEFAULT_PASSWORD = "correct-horse-battery"

# 1x1 PNG
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00"
    b"\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00"
    b"\x00\x00IEND\xaeB`\x82"
)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database (with default roles) for each test"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    ensure_default_roles(db)
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def registry() -> InMemorySessionRegistry:
    return InMemorySessionRegistry()


@pytest.fixture(scope="function")
def client(db: Session, registry: InMemorySessionRegistry) -> Generator[TestClient, None, None]:
    """Create test client with database session and session registry overrides"""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_registry] = lambda: registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register(client: TestClient, name: str, password: str = DEFAULT_PASSWORD) -> dict:
    response = client.post(
        "/v1/auth/register",
        json={
            "name": name,
            "display_name": name.title(),
            "email": f"{name}@example.com",
            "password": password,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


def login(client: TestClient, name: str, password: str = DEFAULT_PASSWORD) -> dict:
    """Log in and return the token body. Cookies are dropped from the client."""
    response = client.post("/v1/auth/login", json={"email": f"{name}@example.com", "password": password})
    assert response.status_code == 200, response.text
    client.cookies.clear()
    return response.json()


def bearer(access_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def set_role(db: Session, user_id: int, role_name: str) -> None:
    role = db.query(Role).filter(Role.name == role_name).one()
    db.query(User).filter(User.id == user_id).update({"role_id": role.id})
    db.commit()


def set_quota(db: Session, user_id: int, **counters: int) -> None:
    db.query(UserLimit).filter(UserLimit.user_id == user_id).update(
        {f"{kind}_limit": value for kind, value in counters.items()}
    )
    db.commit()


@pytest.fixture
def make_user(client: TestClient, db: Session) -> Callable[..., dict]:
    """Register a user, optionally promote them, and log them in.

    Returns ``{"id", "name", "headers", "tokens"}``.
    """

    def _make(name: str, role: str = "user") -> dict:
        user = register(client, name)
        if role != "user":
            set_role(db, user["id"], role)
        tokens = login(client, name)
        return {"id": user["id"], "name": name, "headers": bearer(tokens["access_token"]), "tokens": tokens}

    return _make
