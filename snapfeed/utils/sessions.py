"""Session registry: server-side record of which tokens are live.

Entries are keyed ``"<class>:<jti>"`` and hold the owning user's id. A token
whose signature verifies but has no entry here is not a session: logout and
forced expiry work by deleting entries, regardless of the token's own ``exp``.
"""
import math
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol, Tuple

from redis import Redis
from redis.exceptions import RedisError

from snapfeed.errors import InternalError
from snapfeed.utils.jwt_utils import TokenClass
from snapfeed.utils.logger import logger


class SessionStoreError(InternalError):
    """The registry backend could not be reached or rejected a command."""


def session_key(token_class: TokenClass, token_id: str) -> str:
    return f"{token_class.value}:{token_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ttl_seconds(expires_at: datetime, now: datetime) -> int:
    """Remaining lifetime rounded up to whole seconds, 0 if already expired."""
    remaining = (_as_utc(expires_at) - _as_utc(now)).total_seconds()
    return max(0, math.ceil(remaining))


class SessionRegistry(Protocol):
    def set(self, key: str, user_id: str, expires_at: datetime) -> None: ...

    def get(self, key: str) -> Optional[str]: ...

    def delete(self, key: str) -> bool: ...

    def ping(self) -> bool: ...


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------

class RedisSessionRegistry:
    """Registry backed by Redis keys with native TTL expiry."""

    def __init__(self, client: Redis, clock: Callable[[], datetime] = _utcnow):
        self.client = client
        self.clock = clock

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float = 5.0) -> "RedisSessionRegistry":
        client = Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def set(self, key: str, user_id: str, expires_at: datetime) -> None:
        ttl = ttl_seconds(expires_at, self.clock())
        if ttl <= 0:
            logger.debug("Skipping expired session entry", extra={"action": "session_set"})
            return
        try:
            self.client.set(key, user_id, ex=ttl)
        except RedisError as exc:
            raise SessionStoreError(f"session set failed: {exc}") from exc

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.client.get(key)
        except RedisError as exc:
            raise SessionStoreError(f"session get failed: {exc}") from exc
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else str(value)

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(key))
        except RedisError as exc:
            raise SessionStoreError(f"session delete failed: {exc}") from exc

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError:
            return False


# ---------------------------------------------------------------------------
# In-process backend
# ---------------------------------------------------------------------------

class InMemorySessionRegistry:
    """Dict-backed registry for development and tests.

    Only valid for a single worker process. Expired entries are evicted on
    read, and every ``prune_every`` writes the whole map is swept so sessions
    that are never read again do not pile up.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow, prune_every: int = 128):
        self.clock = clock
        self.prune_every = prune_every
        self._entries: Dict[str, Tuple[str, datetime]] = {}
        self._writes = 0
        self._lock = threading.Lock()

    def set(self, key: str, user_id: str, expires_at: datetime) -> None:
        now = self.clock()
        if ttl_seconds(expires_at, now) <= 0:
            return
        with self._lock:
            self._entries[key] = (user_id, _as_utc(expires_at))
            self._writes += 1
            if self._writes >= self.prune_every:
                self._prune(_as_utc(now))

    def _prune(self, now: datetime) -> None:
        """Drop expired entries. Caller holds the lock."""
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for k in expired:
            del self._entries[k]
        self._writes = 0

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            user_id, expires_at = entry
            if expires_at <= _as_utc(self.clock()):
                del self._entries[key]
                return None
            return user_id

    def delete(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.pop(key, None)
        return entry is not None and entry[1] > _as_utc(self.clock())

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._entries)


def build_session_registry(redis_url: Optional[str], *, socket_timeout: float = 5.0) -> SessionRegistry:
    if redis_url:
        logger.info("Using Redis session registry")
        return RedisSessionRegistry.from_url(redis_url, socket_timeout=socket_timeout)
    logger.warning("REDIS_URL not set, using in-process session registry (single worker only)")
    return InMemorySessionRegistry()
