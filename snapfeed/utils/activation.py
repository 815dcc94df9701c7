"""Account activation tokens"""
import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from snapfeed.errors import NotFound
from snapfeed.models.user import User
from snapfeed.models.user_token import UserToken
from snapfeed.utils.logger import logger

ACTIVATION_SCOPE = "activation"


def generate_token() -> str:
    return secrets.token_urlsafe(24)


def hash_token(plaintext: str) -> str:
    """Hash a token using SHA256"""
    return hashlib.sha256(plaintext.encode()).hexdigest()


def issue_activation_token(
    db: Session,
    user_id: int,
    ttl: timedelta,
    now: Optional[datetime] = None,
) -> str:
    """Store a hashed activation token for ``user_id`` and return the plaintext.

    Flushed, not committed: the row belongs to the caller's transaction.
    """
    now = now or datetime.utcnow()
    plaintext = generate_token()
    db.add(UserToken(
        token_hash=hash_token(plaintext),
        user_id=user_id,
        scope=ACTIVATION_SCOPE,
        expires_at=now + ttl,
    ))
    db.flush()
    return plaintext


def activate_user(db: Session, plaintext: str, now: Optional[datetime] = None) -> User:
    """Mark the token's user as activated and spend every activation token they hold.

    Does not commit.

    Raises:
        NotFound: unknown, already used or expired token.
    """
    now = now or datetime.utcnow()
    token = db.query(UserToken).filter(
        UserToken.token_hash == hash_token(plaintext),
        UserToken.scope == ACTIVATION_SCOPE,
        UserToken.expires_at > now,
    ).first()
    if token is None:
        raise NotFound("Activation token not found or expired")

    user = db.query(User).filter(User.id == token.user_id).one()
    if user.activated_at is None:
        user.activated_at = now

    db.query(UserToken).filter(
        UserToken.user_id == user.id,
        UserToken.scope == ACTIVATION_SCOPE,
    ).delete(synchronize_session=False)

    logger.info("Account activated", extra={"user_id": user.id, "action": "activate"})
    return user
