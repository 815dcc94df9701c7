"""API dependencies for authentication and authorization.

Every protected endpoint resolves its caller through the gate below:

  1. Token candidate: ``access_token`` cookie, else ``Authorization: Bearer``.
  2. The token is verified as an *access* token (signature, expiry, claims).
  3. The session registry must still hold ``access:<jti>``; its value is the
     user id to load. A logged-out or rotated session is therefore dead even
     while its token is within ``exp``.
  4. The user row is loaded by that id.

:func:`require_user` turns any failure into 401, except a registry outage which
surfaces as 500. :func:`optional_user` turns every failure, registry outages
included, into an anonymous context.

RBAC
----
Role checks compare numeric ``Role.level`` values loaded from the database.
Use :func:`require_role` for role-gated endpoints and the ownership guards
(:func:`post_owner_or`, :func:`comment_owner_or`) for owner-or-role rules.
"""
from typing import Callable, NamedTuple, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from snapfeed.database import get_db
from snapfeed.errors import NotFound, Unauthenticated
from snapfeed.middleware.monitoring import record_auth_failure
from snapfeed.models.comment import Comment
from snapfeed.models.post import Post
from snapfeed.models.user import User
from snapfeed.utils.blob_store import LocalBlobStore
from snapfeed.utils.jwt_utils import TokenClass, TokenError, TokenIssuer, TokenVerifier
from snapfeed.utils.logger import logger
from snapfeed.utils.permissions import ensure_owner_or_role, ensure_role
from snapfeed.utils.sessions import SessionRegistry, SessionStoreError, session_key

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"

_bearer_scheme = HTTPBearer(auto_error=False)


class AuthContext(NamedTuple):
    """Resolved caller identity. ``user`` is None for anonymous requests."""
    user: Optional[User]
    token_id: Optional[str]


ANONYMOUS = AuthContext(user=None, token_id=None)


# ---------------------------------------------------------------------------
# Application services (built once in snapfeed.main, stored on app.state)
# ---------------------------------------------------------------------------

def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_token_verifier(request: Request) -> TokenVerifier:
    return request.app.state.token_verifier


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.session_registry


def get_blob_store(request: Request) -> LocalBlobStore:
    return request.app.state.blob_store


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def extract_access_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    """Cookie first, then the bearer header"""
    cookie = request.cookies.get(ACCESS_COOKIE)
    if cookie:
        return cookie
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


def _authenticate(
    token: Optional[str],
    verifier: TokenVerifier,
    registry: SessionRegistry,
    db: Session,
) -> AuthContext:
    """Run the gate for one token. Raises Unauthenticated on any failure."""
    if not token:
        record_auth_failure("missing_token")
        raise Unauthenticated("Authentication required")

    try:
        claims = verifier.verify(token, TokenClass.ACCESS)
    except TokenError as exc:
        record_auth_failure(exc.reason)
        raise Unauthenticated("Invalid or expired access token") from exc

    user_id = registry.get(session_key(TokenClass.ACCESS, claims.token_id))
    if user_id is None:
        record_auth_failure("session_missing")
        raise Unauthenticated("Session has ended")

    if user_id != claims.subject:
        record_auth_failure("subject_mismatch")
        logger.warning(
            "Access session bound to a different user than the token subject",
            extra={"user_id": user_id, "jti": claims.token_id, "action": "authenticate"},
        )
        raise Unauthenticated("Session has ended")

    try:
        user = db.query(User).filter(User.id == int(user_id)).first()
    except ValueError:
        user = None
    if user is None:
        record_auth_failure("user_missing")
        raise Unauthenticated("User no longer exists")

    return AuthContext(user=user, token_id=claims.token_id)


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------

def require_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: Session = Depends(get_db),
    verifier: TokenVerifier = Depends(get_token_verifier),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AuthContext:
    """Mandatory authentication. Returns an :class:`AuthContext` with a user."""
    ctx = _authenticate(extract_access_token(request, credentials), verifier, registry, db)
    request.state.user_id = ctx.user.id
    return ctx


def optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: Session = Depends(get_db),
    verifier: TokenVerifier = Depends(get_token_verifier),
    registry: SessionRegistry = Depends(get_session_registry),
) -> AuthContext:
    """Identify the caller when possible; anonymous otherwise.

    A missing, invalid or dead token yields :data:`ANONYMOUS`, and so does a
    registry outage; only :func:`require_user` turns that into a 500.
    """
    token = extract_access_token(request, credentials)
    if not token:
        return ANONYMOUS
    try:
        ctx = _authenticate(token, verifier, registry, db)
    except Unauthenticated:
        return ANONYMOUS
    except SessionStoreError:
        logger.warning(
            "Session registry unavailable, continuing anonymously",
            extra={"path": request.url.path, "action": "optional_user"},
            exc_info=True,
        )
        return ANONYMOUS
    request.state.user_id = ctx.user.id
    return ctx


def current_user(ctx: AuthContext = Depends(require_user)) -> User:
    return ctx.user


# ---------------------------------------------------------------------------
# require_role factory - role-gated dependency
# ---------------------------------------------------------------------------

def require_role(min_role: str) -> Callable:
    """Return a FastAPI dependency that enforces a minimum role.

    Usage::

        @router.post("/tags")
        def endpoint(user: User = Depends(require_role("moderator"))):
            ...

    Resolves to the authenticated :class:`User`, or raises 401/403.
    """

    def _role_dep(
        user: User = Depends(current_user),
        db: Session = Depends(get_db),
    ) -> User:
        ensure_role(db, user, min_role)
        return user

    # Give FastAPI a unique name so it doesn't collapse distinct dependencies
    _role_dep.__name__ = f"require_role_{min_role.replace('-', '_')}"
    return _role_dep


# ---------------------------------------------------------------------------
# Ownership guards
# ---------------------------------------------------------------------------

def load_post(db: Session, post_id: int) -> Post:
    post = db.query(Post).filter(Post.id == post_id).first()
    if post is None:
        raise NotFound(f"Post {post_id} not found")
    return post


def load_comment(db: Session, post_id: int, comment_id: int) -> Comment:
    comment = db.query(Comment).filter(
        Comment.id == comment_id,
        Comment.post_id == post_id,
    ).first()
    if comment is None:
        raise NotFound(f"Comment {comment_id} not found")
    return comment


def post_owner_or(role_name: str) -> Callable:
    """Dependency: the post's author, or a user with ``role_name`` or higher"""

    def _post_guard(
        post_id: int,
        user: User = Depends(current_user),
        db: Session = Depends(get_db),
    ) -> Post:
        post = load_post(db, post_id)
        ensure_owner_or_role(db, user, post.user_id, role_name)
        return post

    _post_guard.__name__ = f"post_owner_or_{role_name}"
    return _post_guard


def comment_owner_or(role_name: str) -> Callable:
    def _comment_guard(
        post_id: int,
        comment_id: int,
        user: User = Depends(current_user),
        db: Session = Depends(get_db),
    ) -> Comment:
        comment = load_comment(db, post_id, comment_id)
        ensure_owner_or_role(db, user, comment.user_id, role_name)
        return comment

    _comment_guard.__name__ = f"comment_owner_or_{role_name}"
    return _comment_guard
