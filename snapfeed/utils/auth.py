"""Session lifecycle: start, rotate and end token-backed sessions"""
from typing import Optional

from snapfeed.errors import Unauthenticated
from snapfeed.middleware.monitoring import record_auth_failure, record_tokens_issued
from snapfeed.utils.jwt_utils import TokenClass, TokenError, TokenIssuer, TokenPair, TokenVerifier
from snapfeed.utils.logger import logger
from snapfeed.utils.sessions import SessionRegistry, SessionStoreError, session_key


def persist_tokens(registry: SessionRegistry, tokens: TokenPair) -> None:
    """Register both halves of a freshly issued pair"""
    registry.set(session_key(TokenClass.ACCESS, tokens.access_jti), tokens.user_id, tokens.access_expires_at)
    registry.set(session_key(TokenClass.REFRESH, tokens.refresh_jti), tokens.user_id, tokens.refresh_expires_at)


def revoke_tokens(registry: SessionRegistry, tokens: TokenPair) -> None:
    registry.delete(session_key(TokenClass.ACCESS, tokens.access_jti))
    registry.delete(session_key(TokenClass.REFRESH, tokens.refresh_jti))


def start_session(issuer: TokenIssuer, registry: SessionRegistry, user_id: str) -> TokenPair:
    """Issue a token pair and persist it before handing it to the caller"""
    tokens = issuer.issue(user_id)
    persist_tokens(registry, tokens)
    record_tokens_issued()

    logger.info(
        "Session started",
        extra={"user_id": user_id, "jti": tokens.access_jti, "action": "start_session"},
    )
    return tokens


def rotate_session(
    issuer: TokenIssuer,
    verifier: TokenVerifier,
    registry: SessionRegistry,
    refresh_token: Optional[str],
) -> TokenPair:
    """Exchange a live refresh token for a brand-new pair (single use).

    Order: verify → confirm registry entry → issue → persist new pair →
    delete the old refresh entry last, so a failed mint never leaves the
    caller without a usable refresh session. If the old entry is already gone
    when deleting it, a concurrent rotation consumed it first: the pair minted
    here is revoked and the rotation fails.

    Raises:
        Unauthenticated: missing/invalid token, or no live refresh session.
    """
    if not refresh_token:
        record_auth_failure("missing_refresh_token")
        raise Unauthenticated("Refresh token required")

    try:
        claims = verifier.verify(refresh_token, TokenClass.REFRESH)
    except TokenError as exc:
        record_auth_failure(exc.reason)
        logger.warning(
            "Refresh token rejected",
            extra={"reason": exc.reason, "action": "rotate_session"},
        )
        raise Unauthenticated("Invalid or expired refresh token") from exc

    old_key = session_key(TokenClass.REFRESH, claims.token_id)
    user_id = registry.get(old_key)
    if user_id is None:
        record_auth_failure("refresh_session_missing")
        logger.warning(
            "Refresh token has no live session",
            extra={"jti": claims.token_id, "action": "rotate_session"},
        )
        raise Unauthenticated("Refresh session not found")

    if user_id != claims.subject:
        record_auth_failure("subject_mismatch")
        logger.warning(
            "Refresh session bound to a different user than the token subject",
            extra={"user_id": user_id, "jti": claims.token_id, "action": "rotate_session"},
        )
        raise Unauthenticated("Refresh session not found")

    tokens = issuer.issue(user_id)
    persist_tokens(registry, tokens)

    if not registry.delete(old_key):
        revoke_tokens(registry, tokens)
        record_auth_failure("refresh_replayed")
        logger.warning(
            "Refresh token consumed concurrently",
            extra={"user_id": user_id, "jti": claims.token_id, "action": "rotate_session"},
        )
        raise Unauthenticated("Refresh session not found")

    record_tokens_issued()
    logger.info(
        "Session rotated",
        extra={"user_id": user_id, "jti": tokens.access_jti, "action": "rotate_session"},
    )
    return tokens


def end_session(
    verifier: TokenVerifier,
    registry: SessionRegistry,
    access_token: Optional[str],
    refresh_token: Optional[str],
) -> int:
    """Best-effort logout. Returns how many registry entries were removed.

    Tokens that are missing or fail verification are skipped, and so is a
    registry outage; logging out an already-dead session is a success.
    """
    removed = 0
    for token, token_class in ((access_token, TokenClass.ACCESS), (refresh_token, TokenClass.REFRESH)):
        if not token:
            continue
        try:
            claims = verifier.verify(token, token_class)
        except TokenError:
            continue
        try:
            if registry.delete(session_key(token_class, claims.token_id)):
                removed += 1
        except SessionStoreError:
            logger.warning(
                "Session registry unavailable during logout",
                extra={"jti": claims.token_id, "token_class": token_class.value, "action": "end_session"},
                exc_info=True,
            )

    logger.info("Session ended", extra={"action": "end_session", "status": removed})
    return removed
