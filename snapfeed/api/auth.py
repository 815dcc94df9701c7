"""Registration, login, token rotation and logout endpoints"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from snapfeed.api.deps import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    extract_access_token,
    get_session_registry,
    get_token_issuer,
    get_token_verifier,
)
from snapfeed.config import settings
from snapfeed.database import get_db, transaction
from snapfeed.errors import Conflict, Unauthenticated
from snapfeed.middleware.monitoring import record_auth_failure
from snapfeed.middleware.rate_limit import get_rate_limit, limiter
from snapfeed.models.user import User
from snapfeed.schemas.auth import (
    ActivateRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
)
from snapfeed.schemas.user import UserResponse
from snapfeed.utils.activation import activate_user, issue_activation_token
from snapfeed.utils.auth import end_session, rotate_session, start_session
from snapfeed.utils.jwt_utils import TokenIssuer, TokenPair, TokenVerifier
from snapfeed.utils.logger import logger
from snapfeed.utils.passwords import hash_password, verify_password
from snapfeed.utils.permissions import load_role
from snapfeed.utils.quota import create_ledger, initial_quota
from snapfeed.utils.sessions import SessionRegistry

router = APIRouter(prefix="/v1/auth", tags=["authentication"])

_bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Cookies
# ---------------------------------------------------------------------------

def _seconds_left(expires_at: datetime) -> int:
    return max(0, int((expires_at - datetime.now(timezone.utc)).total_seconds()))


def _set_cookie(response: Response, name: str, value: str, expires_at: datetime) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=_seconds_left(expires_at),
        path="/",
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )


def set_session_cookies(response: Response, tokens: TokenPair) -> None:
    _set_cookie(response, ACCESS_COOKIE, tokens.access_token, tokens.access_expires_at)
    _set_cookie(response, REFRESH_COOKIE, tokens.refresh_token, tokens.refresh_expires_at)


def clear_session_cookies(response: Response) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.set_cookie(
            key=name,
            value="",
            max_age=-1,
            path="/",
            domain=settings.COOKIE_DOMAIN,
            secure=settings.COOKIE_SECURE,
            httponly=True,
            samesite="lax",
        )


def _token_response(tokens: TokenPair) -> dict:
    return {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_type": "bearer",
        "expires_in": _seconds_left(tokens.access_expires_at),
        "refresh_expires_in": _seconds_left(tokens.refresh_expires_at),
    }


# ---------------------------------------------------------------------------
# POST /v1/auth/register
# ---------------------------------------------------------------------------

@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("register"))
def register(
    request: Request,
    payload: RegisterRequest,
    db: Session = Depends(get_db),
):
    """
    Create an inactive account with the default role, a fresh quota ledger
    and a single-use activation token
    """
    if db.query(User).filter(User.email == payload.email).first():
        raise Conflict("Email is already registered")
    if db.query(User).filter(User.name == payload.name).first():
        raise Conflict("Username is already taken")

    role = load_role(db, settings.DEFAULT_ROLE)

    with transaction(db):
        user = User(
            name=payload.name,
            display_name=payload.display_name,
            email=payload.email,
            password_hash=hash_password(payload.password),
            role_id=role.id,
        )
        db.add(user)
        db.flush()  # need user.id for the ledger and token rows
        create_ledger(db, user.id, initial_quota(settings))
        activation_token = issue_activation_token(
            db, user.id, timedelta(seconds=settings.ACTIVATION_TOKEN_EXPIRE_SECONDS)
        )

    db.refresh(user)
    logger.info(f"Registered user: {user.name}", extra={"user_id": user.id, "action": "register"})

    response = RegisterResponse.model_validate(user)
    if settings.expose_activation_token:
        response.activation_token = activation_token
    return response


# ---------------------------------------------------------------------------
# PATCH /v1/auth/activate
# ---------------------------------------------------------------------------

@router.patch("/activate", response_model=UserResponse)
def activate(
    payload: ActivateRequest,
    db: Session = Depends(get_db),
):
    """
    Activate an account with the token issued at registration (single use)
    """
    with transaction(db):
        user = activate_user(db, payload.token)

    db.refresh(user)
    return user


# ---------------------------------------------------------------------------
# POST /v1/auth/login
# ---------------------------------------------------------------------------

@router.post("/login", response_model=LoginResponse)
@limiter.limit(get_rate_limit("login"))
def login(
    request: Request,
    response: Response,
    payload: LoginRequest,
    db: Session = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Verify credentials and start a session.

    Both tokens are returned as httponly cookies and in the body.
    """
    user = db.query(User).filter(User.email == payload.email).first()
    if user is None or not verify_password(payload.password, user.password_hash):
        record_auth_failure("bad_credentials")
        logger.info("Login rejected", extra={"action": "login", "reason": "bad_credentials"})
        raise Unauthenticated("Invalid email or password")

    tokens = start_session(issuer, registry, str(user.id))
    set_session_cookies(response, tokens)
    return {**_token_response(tokens), "user": user}


# ---------------------------------------------------------------------------
# POST /v1/auth/token/refresh
# ---------------------------------------------------------------------------

@router.post("/token/refresh", response_model=TokenResponse)
@limiter.limit(get_rate_limit("refresh"))
def refresh_tokens(
    request: Request,
    response: Response,
    payload: Optional[RefreshRequest] = None,
    issuer: TokenIssuer = Depends(get_token_issuer),
    verifier: TokenVerifier = Depends(get_token_verifier),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Exchange the refresh token for a new pair. Each refresh token works once."""
    refresh_token = request.cookies.get(REFRESH_COOKIE) or (payload.refresh_token if payload else None)
    tokens = rotate_session(issuer, verifier, registry, refresh_token)
    set_session_cookies(response, tokens)
    return _token_response(tokens)


# ---------------------------------------------------------------------------
# POST /v1/auth/logout
# ---------------------------------------------------------------------------

@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    payload: Optional[LogoutRequest] = None,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """End the current session. Always succeeds."""
    access_token = extract_access_token(request, credentials)
    refresh_token = request.cookies.get(REFRESH_COOKIE) or (payload.refresh_token if payload else None)

    end_session(verifier, registry, access_token, refresh_token)
    clear_session_cookies(response)
    return {"message": "Logged out"}
