"""Tests for the local blob store and its signed links"""
from urllib.parse import parse_qs, urlsplit

import pytest

from snapfeed.errors import NotFound
from snapfeed.utils.blob_store import BlobKeyError, LocalBlobStore


class _Clock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def store(tmp_path, clock) -> LocalBlobStore:
    return LocalBlobStore(str(tmp_path / "blobs"), "blob-secret", url_base="/v1/files/", url_expire_seconds=60, clock=clock)


def _link_params(url: str):
    parts = urlsplit(url)
    query = parse_qs(parts.query)
    return parts.path, query["expires"][0], query["sig"][0]


def test_put_and_read(store: LocalBlobStore):
    store.put(b"image-bytes", "abc.png")

    assert store.exists("abc.png")
    with store.open("abc.png") as fh:
        assert fh.read() == b"image-bytes"
    assert store.path("abc.png").parent == store.root.resolve()
    assert not (store.root / "abc.png.part").exists()


def test_put_overwrites(store: LocalBlobStore):
    store.put(b"one", "abc.png")
    store.put(b"two", "abc.png")
    assert store.path("abc.png").read_bytes() == b"two"


def test_delete_is_idempotent(store: LocalBlobStore):
    store.put(b"x", "abc.png")

    store.delete("abc.png")
    store.delete("abc.png")

    assert not store.exists("abc.png")


def test_missing_blob(store: LocalBlobStore):
    with pytest.raises(NotFound):
        store.path("missing.png")
    with pytest.raises(NotFound):
        store.open("missing.png")


@pytest.mark.parametrize("key", ["", ".", "..", "../escape.png", "nested/file.png", "..\\escape.png"])
def test_rejects_keys_outside_root(store: LocalBlobStore, key):
    with pytest.raises(BlobKeyError):
        store.put(b"x", key)


def test_empty_secret_rejected(tmp_path):
    with pytest.raises(ValueError):
        LocalBlobStore(str(tmp_path), "")


def test_signed_link_verifies(store: LocalBlobStore, clock: _Clock):
    path, expires, sig = _link_params(store.get_url("abc.png"))

    assert path == "/v1/files/abc.png"
    assert int(expires) == int(clock.now) + 60
    assert store.verify("abc.png", expires, sig) == (True, None)


def test_custom_expiry(store: LocalBlobStore, clock: _Clock):
    _, expires, _ = _link_params(store.get_url("abc.png", expire_seconds=5))
    assert int(expires) == int(clock.now) + 5


def test_expired_link(store: LocalBlobStore, clock: _Clock):
    _, expires, sig = _link_params(store.get_url("abc.png"))

    clock.now += 61

    assert store.verify("abc.png", expires, sig) == (False, "link has expired")


def test_signature_bound_to_key_and_expiry(store: LocalBlobStore):
    _, expires, sig = _link_params(store.get_url("abc.png"))

    assert store.verify("other.png", expires, sig) == (False, "invalid signature")
    assert store.verify("abc.png", str(int(expires) + 100), sig) == (False, "invalid signature")


def test_signature_bound_to_secret(tmp_path, clock: _Clock):
    a = LocalBlobStore(str(tmp_path), "secret-a", clock=clock)
    b = LocalBlobStore(str(tmp_path), "secret-b", clock=clock)
    _, expires, sig = _link_params(a.get_url("abc.png"))

    assert b.verify("abc.png", expires, sig) == (False, "invalid signature")


@pytest.mark.parametrize("expires,sig,reason", [
    (None, "abc", "missing signature"),
    ("123", None, "missing signature"),
    ("soon", "abc", "invalid expiry format"),
])
def test_malformed_link(store: LocalBlobStore, expires, sig, reason):
    assert store.verify("abc.png", expires, sig) == (False, reason)
