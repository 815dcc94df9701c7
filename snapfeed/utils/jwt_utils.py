"""JWT utilities: access/refresh token signing and verification.

Both token classes are HS256-signed with their own secret. Issuer and
verifier take an explicit :class:`TokenConfig`; neither reads settings on
its own.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from snapfeed.config import Settings

ALGORITHM = "HS256"


class TokenClass(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TokenError(Exception):
    """Base class for token verification failures.

    Every subclass collapses to a plain 401 at the HTTP boundary; the
    distinction exists for logs, metrics and tests.
    """

    reason = "invalid_token"


class MalformedToken(TokenError):
    reason = "malformed"


class UnexpectedAlgorithm(TokenError):
    reason = "unexpected_algorithm"


class InvalidSignature(TokenError):
    reason = "invalid_signature"


class TokenExpired(TokenError):
    reason = "expired"


class InvalidClaims(TokenError):
    reason = "invalid_claims"


class TokenConfigError(RuntimeError):
    """Secrets or lifetimes are unusable. Raised at construction, not per request."""


# ---------------------------------------------------------------------------
# Configuration and value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TokenConfig:
    access_secret: str
    refresh_secret: str
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    issuer: str = "snapfeed-app"
    audience: str = "snapfeed-client"

    def __post_init__(self) -> None:
        if not self.access_secret or not self.refresh_secret:
            raise TokenConfigError("access and refresh token secrets must both be set")
        if self.access_secret == self.refresh_secret:
            raise TokenConfigError("access and refresh token secrets must differ")
        if self.access_ttl <= timedelta(0) or self.refresh_ttl <= timedelta(0):
            raise TokenConfigError("token lifetimes must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenConfig":
        return cls(
            access_secret=settings.ACCESS_TOKEN_SECRET,
            refresh_secret=settings.REFRESH_TOKEN_SECRET,
            access_ttl=timedelta(seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS),
            refresh_ttl=timedelta(seconds=settings.REFRESH_TOKEN_EXPIRE_SECONDS),
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
        )

    def secret_for(self, token_class: TokenClass) -> str:
        return self.access_secret if token_class is TokenClass.ACCESS else self.refresh_secret

    def ttl_for(self, token_class: TokenClass) -> timedelta:
        return self.access_ttl if token_class is TokenClass.ACCESS else self.refresh_ttl


@dataclass(frozen=True)
class TokenPair:
    user_id: str
    access_token: str
    refresh_token: str
    access_jti: str
    refresh_jti: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    issuer: str
    audience: str


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    token_id: str
    token_class: TokenClass
    issued_at: Optional[datetime]
    expires_at: datetime


# ---------------------------------------------------------------------------
# Token creation
# ---------------------------------------------------------------------------

class TokenIssuer:
    """Mints signed access/refresh pairs. Persisting them is the caller's job."""

    def __init__(self, config: TokenConfig):
        self.config = config

    def issue(self, user_id: str, now: Optional[datetime] = None) -> TokenPair:
        """Sign a fresh pair for ``user_id``, each half with its own unique jti.

        Args:
            user_id: Value for the ``sub`` claim.
            now:     Issue time override (tests); defaults to the current UTC time.
        """
        # exp/iat are whole seconds, keep the returned datetimes in step with them
        now = (now or datetime.now(timezone.utc)).replace(microsecond=0)

        access_jti = str(uuid.uuid4())
        refresh_jti = str(uuid.uuid4())
        access_exp = now + self.config.access_ttl
        refresh_exp = now + self.config.refresh_ttl

        return TokenPair(
            user_id=user_id,
            access_token=self._sign(TokenClass.ACCESS, user_id, access_jti, now, access_exp),
            refresh_token=self._sign(TokenClass.REFRESH, user_id, refresh_jti, now, refresh_exp),
            access_jti=access_jti,
            refresh_jti=refresh_jti,
            access_expires_at=access_exp,
            refresh_expires_at=refresh_exp,
            issuer=self.config.issuer,
            audience=self.config.audience,
        )

    def _sign(
        self,
        token_class: TokenClass,
        subject: str,
        jti: str,
        issued_at: datetime,
        expires_at: datetime,
    ) -> str:
        payload: Dict[str, Any] = {
            "sub": subject,
            "jti": jti,
            "iss": self.config.issuer,
            "aud": self.config.audience,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "type": token_class.value,
        }
        return jwt.encode(payload, self.config.secret_for(token_class), algorithm=ALGORITHM)


# ---------------------------------------------------------------------------
# Token verification
# ---------------------------------------------------------------------------

class TokenVerifier:
    def __init__(self, config: TokenConfig):
        self.config = config

    def verify(self, token: str, token_class: TokenClass) -> TokenClaims:
        """Verify a token of the given class and return its claims.

        Checks, in order:
        1. Three-segment JWS with decodable header and claims (MalformedToken)
        2. Header ``alg`` is exactly HS256, so ``none`` and RS*/ES* are refused (UnexpectedAlgorithm)
        3. Signature against the class secret (InvalidSignature)
        4. ``exp`` not in the past (TokenExpired)
        5. Issuer, audience, ``type`` and required claims (InvalidClaims)
        """
        if not token or token.count(".") != 2:
            raise MalformedToken("token is not a three-segment JWS")

        try:
            header = jwt.get_unverified_header(token)
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedToken(str(exc)) from exc

        alg = header.get("alg")
        if alg != ALGORITHM:
            raise UnexpectedAlgorithm(f"unexpected signing algorithm {alg!r}")

        try:
            payload = jwt.decode(
                token,
                self.config.secret_for(token_class),
                algorithms=[ALGORITHM],
                audience=self.config.audience,
                issuer=self.config.issuer,
            )
        except ExpiredSignatureError as exc:
            raise TokenExpired(str(exc)) from exc
        except JWTClaimsError as exc:
            raise InvalidClaims(str(exc)) from exc
        except JWTError as exc:
            raise InvalidSignature(str(exc)) from exc

        for claim in ("sub", "jti", "exp"):
            if not payload.get(claim):
                raise InvalidClaims(f"missing required claim {claim!r}")

        if payload.get("type") != token_class.value:
            raise InvalidClaims(f"expected a {token_class.value} token")

        issued_at = payload.get("iat")
        return TokenClaims(
            subject=str(payload["sub"]),
            token_id=str(payload["jti"]),
            token_class=token_class,
            issued_at=datetime.fromtimestamp(issued_at, tz=timezone.utc) if issued_at else None,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
