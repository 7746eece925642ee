# backend/tests/conftest.py
"""
Test bootstrap
- Env is set BEFORE importing ayauplay so the frozen settings pick it up
- A throwaway RSA key stands in for the CloudFront key pair
- Stores are local (tmp_path) or botocore-stubbed, never real AWS
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

_TEST_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
TEST_PEM = _TEST_KEY.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
).decode("utf-8")

os.environ.setdefault("ENV", "dev")
os.environ.setdefault("STORAGE_MODE", "local")
os.environ.setdefault("CLOUDFRONT_DOMAIN", "d111111abcdef8.cloudfront.net")
os.environ.setdefault("KEY_PAIR_ID", "K2JCJMDEHXQW5F")
os.environ.setdefault("SIGNING_KEY_SOURCE", "env")
os.environ.setdefault("CLOUDFRONT_PRIVATE_KEY_PEM", TEST_PEM)
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")

from ayauplay.models.identity import Identity  # noqa: E402
from ayauplay.services.signer import EnvKeySource, SigningKeyCache, UrlSigner  # noqa: E402
from ayauplay.services.storage import LocalCatalogStore  # noqa: E402

DOMAIN = os.environ["CLOUDFRONT_DOMAIN"]
KEY_PAIR_ID = os.environ["KEY_PAIR_ID"]
T0 = datetime(2026, 10, 16, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class CountingKeySource:
    """Key source that counts fetches and can be swapped/broken mid-test."""

    def __init__(self, pem: str = TEST_PEM) -> None:
        self.pem = pem
        self.calls = 0

    def fetch(self) -> bytes:
        self.calls += 1
        return self.pem.encode("utf-8")


@pytest.fixture()
def test_pem() -> str:
    return TEST_PEM


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def signer(clock: FakeClock) -> UrlSigner:
    keys = SigningKeyCache(EnvKeySource(TEST_PEM), ttl_sec=300)
    return UrlSigner(DOMAIN, KEY_PAIR_ID, keys, clock=clock)


@pytest.fixture()
def store(tmp_path) -> LocalCatalogStore:
    return LocalCatalogStore(tmp_path / "store")


@pytest.fixture()
def u1() -> Identity:
    return Identity(subjectId="u1", role="client", groups=("client",))


@pytest.fixture()
def u2() -> Identity:
    return Identity(subjectId="u2", role="client", groups=("client",))


@pytest.fixture()
def admin() -> Identity:
    return Identity(subjectId="a1", role="admin", groups=("admin",))


def put(store: LocalCatalogStore, *keys: str) -> None:
    for key in keys:
        store.put_object(key, b"\x00\x01", "application/octet-stream")
