from __future__ import annotations

import base64
import binascii
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from urllib.parse import parse_qs, quote, urlsplit

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from botocore.signers import CloudFrontSigner
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from ayauplay.core.config import settings
from ayauplay.core.errors import UpstreamError
from ayauplay.models.track import SignedURL

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Playback links are valid for exactly 5 minutes from issuance
SIGNED_URL_TTL = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_pem(raw: str) -> bytes:
    """
    PEM stored in env / parameter store may come as a single line with
    literal '\\n' escapes.
    """
    s = (raw or "").strip()
    if "-----BEGIN" in s and "\\n" in s:
        s = s.replace("\\n", "\n")
    return s.encode("utf-8")


def _cf_b64decode(value: str) -> bytes:
    # inverse of CloudFront's url-safe base64 ('+' -> '-', '=' -> '_', '/' -> '~')
    std = value.replace("-", "+").replace("_", "=").replace("~", "/")
    return base64.b64decode(std, validate=True)


# -------------------------
# Key material
# -------------------------


class SSMKeySource:
    """
    Reads the PEM private key from SSM Parameter Store (SecureString).
    """

    def __init__(self, param_name: str, client=None) -> None:
        self.param_name = param_name
        self._client = client

    def fetch(self) -> bytes:
        client = self._client or boto3.client("ssm", region_name=settings.aws_region)
        try:
            resp = client.get_parameter(Name=self.param_name, WithDecryption=True)
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError(f"Signing key unavailable: {self.param_name}") from e
        return _normalize_pem(resp["Parameter"]["Value"])


class EnvKeySource:
    """Local dev: PEM taken from CLOUDFRONT_PRIVATE_KEY_PEM."""

    def __init__(self, pem: str) -> None:
        self._pem = pem

    def fetch(self) -> bytes:
        pem = _normalize_pem(self._pem)
        if not pem:
            raise UpstreamError("Signing key unavailable: CLOUDFRONT_PRIVATE_KEY_PEM is empty")
        return pem


def load_private_key(pem: bytes) -> rsa.RSAPrivateKey:
    try:
        key = load_pem_private_key(pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise UpstreamError("Malformed signing key material") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise UpstreamError("Signing key must be an RSA private key")
    return key


class SigningKeyCache:
    """
    Process-wide cache of the parsed private key.

    The key is re-fetched once `ttl_sec` has elapsed so a rotated key stops
    being used within one TTL; `invalidate()` drops it immediately.
    ttl_sec=0 disables caching (fetch on every call).
    """

    def __init__(self, source, ttl_sec: int = 300, monotonic: Callable[[], float] = time.monotonic) -> None:
        self.source = source
        self.ttl_sec = ttl_sec
        self._monotonic = monotonic
        self._lock = threading.Lock()
        self._key: Optional[rsa.RSAPrivateKey] = None
        self._ts: float = 0.0

    def get(self) -> rsa.RSAPrivateKey:
        with self._lock:
            now = self._monotonic()
            if self._key is not None and self.ttl_sec > 0 and (now - self._ts) < self.ttl_sec:
                return self._key

            key = load_private_key(self.source.fetch())
            if self.ttl_sec > 0:
                self._key = key
                self._ts = now
            return key

    def invalidate(self) -> None:
        with self._lock:
            self._key = None
            self._ts = 0.0


# -------------------------
# Signer
# -------------------------


class UrlSigner:
    """
    Mints CloudFront canned-policy URLs: "this exact URL until expiresAt".
    """

    def __init__(
        self,
        domain: str,
        key_pair_id: str,
        keys: SigningKeyCache,
        clock: Clock = _utcnow,
    ) -> None:
        self.domain = domain.strip().removeprefix("https://").removeprefix("http://").rstrip("/")
        self.key_pair_id = key_pair_id
        self.keys = keys
        self.clock = clock

    def canonical_url(self, object_key: str) -> str:
        return f"https://{self.domain}/{quote(object_key.lstrip('/'), safe='/')}"

    def sign(self, object_key: str) -> SignedURL:
        key = self.keys.get()
        issued_at = self.clock()
        expires_at = issued_at + SIGNED_URL_TTL

        def rsa_signer(message: bytes) -> bytes:
            return key.sign(message, padding.PKCS1v15(), hashes.SHA1())

        cf = CloudFrontSigner(self.key_pair_id, rsa_signer)
        try:
            url = cf.generate_presigned_url(self.canonical_url(object_key), date_less_than=expires_at)
        except (ValueError, TypeError) as e:
            raise UpstreamError(f"Signing failed for {object_key!r}") from e

        logger.info("Signed URL minted: key='%s' expires=%s", object_key, expires_at.isoformat())
        return SignedURL(url=url, issuedAt=issued_at, expiresAt=expires_at)

    def verify(self, signed_url: str, at: Optional[datetime] = None) -> bool:
        """
        True iff `signed_url` carries a valid signature from our key pair
        and `at` (default: now) is strictly before its expiry.
        """
        parts = urlsplit(signed_url)
        params = parse_qs(parts.query)
        try:
            expires = int(params["Expires"][0])
            signature = _cf_b64decode(params["Signature"][0])
            key_pair_id = params["Key-Pair-Id"][0]
        except (KeyError, IndexError, ValueError, binascii.Error):
            return False

        if key_pair_id != self.key_pair_id:
            return False

        moment = at or self.clock()
        if moment.timestamp() >= expires:
            return False

        base_url = f"{parts.scheme}://{parts.netloc}{parts.path}"
        cf = CloudFrontSigner(self.key_pair_id, lambda m: b"")
        policy = cf.build_policy(base_url, datetime.fromtimestamp(expires, tz=timezone.utc))
        public_key = self.keys.get().public_key()
        try:
            public_key.verify(signature, policy.encode("utf-8"), padding.PKCS1v15(), hashes.SHA1())
        except InvalidSignature:
            return False
        return True


_KEY_CACHE: Optional[SigningKeyCache] = None
_KEY_CACHE_LOCK = threading.Lock()


def _key_source():
    if settings.signing_key_source.strip().lower() == "env":
        return EnvKeySource(settings.cloudfront_private_key_pem)
    return SSMKeySource(settings.private_key_param_name)


def get_key_cache() -> SigningKeyCache:
    global _KEY_CACHE
    with _KEY_CACHE_LOCK:
        if _KEY_CACHE is None:
            _KEY_CACHE = SigningKeyCache(_key_source(), ttl_sec=settings.signing_key_cache_ttl_sec)
        return _KEY_CACHE


def get_url_signer() -> UrlSigner:
    try:
        settings.validate_signing_or_raise()
    except RuntimeError as e:
        raise UpstreamError(str(e)) from e
    return UrlSigner(
        domain=settings.cloudfront_domain,
        key_pair_id=settings.key_pair_id,
        keys=get_key_cache(),
    )
