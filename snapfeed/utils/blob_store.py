"""Local filesystem blob store with HMAC-signed, expiring download links"""
import hashlib
import hmac
import os
import time
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Tuple
from urllib.parse import quote, urlencode

from snapfeed.config import Settings
from snapfeed.errors import InternalError, NotFound
from snapfeed.utils.logger import logger


class BlobKeyError(ValueError):
    """Raised when a key would resolve outside the storage directory."""


class LocalBlobStore:
    """Stores blobs as flat files under ``root`` keyed by name.

    Download links carry ``expires`` and an HMAC-SHA256 ``sig`` over
    ``key|expires``; :meth:`verify` checks both before a blob is served.
    """

    def __init__(
        self,
        root: str,
        secret: str,
        *,
        url_base: str = "/v1/files",
        url_expire_seconds: int = 600,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("blob URL secret must not be empty")
        self._root = Path(root)
        self._secret = secret.encode("utf-8")
        self._url_base = url_base.rstrip("/")
        self._url_expire_seconds = url_expire_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalBlobStore":
        return cls(
            settings.BLOB_STORAGE_DIR,
            settings.BLOB_URL_SECRET,
            url_base=settings.BLOB_URL_BASE,
            url_expire_seconds=settings.BLOB_URL_EXPIRE_SECONDS,
        )

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key in (".", ".."):
            raise BlobKeyError(f"invalid blob key: {key!r}")
        base = self._root.resolve()
        candidate = (base / key).resolve()
        if candidate.parent != base:
            raise BlobKeyError(f"invalid blob key: {key!r}")
        return candidate

    def put(self, data: bytes, key: str) -> None:
        path = self._path_for(key)
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + ".part")
            with open(tmp_path, "wb") as fh:
                fh.write(data)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise InternalError(f"failed to write blob {key!r}: {exc}") from exc

        logger.debug("Blob stored", extra={"action": "blob_put", "path": key})

    def delete(self, key: str) -> None:
        """Remove a blob; deleting a missing blob is not an error"""
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise InternalError(f"failed to delete blob {key!r}: {exc}") from exc

    def exists(self, key: str) -> bool:
        return self._path_for(key).is_file()

    def open(self, key: str) -> BinaryIO:
        path = self._path_for(key)
        if not path.is_file():
            raise NotFound("File not found")
        return open(path, "rb")

    def path(self, key: str) -> Path:
        path = self._path_for(key)
        if not path.is_file():
            raise NotFound("File not found")
        return path

    # -- signed links --------------------------------------------------

    def _signature(self, key: str, expires_at: int) -> str:
        message = f"{key}|{expires_at}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def get_url(self, key: str, expire_seconds: Optional[int] = None) -> str:
        self._path_for(key)
        expires_at = int(self._clock()) + (expire_seconds or self._url_expire_seconds)
        params = urlencode({"expires": expires_at, "sig": self._signature(key, expires_at)})
        return f"{self._url_base}/{quote(key)}?{params}"

    def verify(self, key: str, expires: Optional[str], signature: Optional[str]) -> Tuple[bool, Optional[str]]:
        """Returns (is_valid, reason)"""
        if not expires or not signature:
            return False, "missing signature"
        try:
            expires_at = int(expires)
        except (TypeError, ValueError):
            return False, "invalid expiry format"

        if self._clock() > expires_at:
            return False, "link has expired"

        if not hmac.compare_digest(signature, self._signature(key, expires_at)):
            return False, "invalid signature"

        return True, None
