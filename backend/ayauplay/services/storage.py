# backend/ayauplay/services/storage.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ayauplay.core.config import settings
from ayauplay.core.errors import UpstreamError

logger = logging.getLogger(__name__)

DELIMITER = "/"


def get_s3_client():
    return boto3.client("s3", region_name=settings.aws_region)


def _common_prefixes(keys: Iterable[str], prefix: str) -> list[str]:
    """
    S3 ListObjectsV2 semantics with Delimiter='/': keys deeper than `prefix`
    roll up into a common prefix ending at the next delimiter.
    """
    common: list[str] = []
    seen: set[str] = set()
    for key in keys:
        if not key.startswith(prefix):
            continue
        rest = key[len(prefix):]
        idx = rest.find(DELIMITER)
        if idx < 0:
            continue
        cp = prefix + rest[: idx + 1]
        if cp not in seen:
            seen.add(cp)
            common.append(cp)
    return common


class CatalogStore:
    """
    Object store holding tracks under `playlists/...` keys.

    - list_common_prefixes: immediate "folders" under a prefix (with trailing '/')
    - list_keys: every object key under a prefix, in store order
    - put_object: single write, key used as given
    """

    def list_common_prefixes(self, prefix: str) -> list[str]:
        raise NotImplementedError

    def list_keys(self, prefix: str) -> list[str]:
        raise NotImplementedError

    def put_object(self, key: str, body: bytes, content_type: str) -> None:
        raise NotImplementedError


class S3CatalogStore(CatalogStore):
    def __init__(self, bucket: str, client=None) -> None:
        self.bucket = bucket
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_s3_client()
        return self._client

    def _pages(self, **params):
        paginator = self.client.get_paginator("list_objects_v2")
        return paginator.paginate(Bucket=self.bucket, **params)

    def list_common_prefixes(self, prefix: str) -> list[str]:
        logger.info("S3 List prefixes: Bucket='%s' Prefix='%s'", self.bucket, prefix)
        out: list[str] = []
        try:
            for page in self._pages(Prefix=prefix, Delimiter=DELIMITER):
                for cp in page.get("CommonPrefixes", []):
                    p = cp.get("Prefix")
                    if p:
                        out.append(p)
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError(f"Listing failed for prefix {prefix!r}") from e
        return out

    def list_keys(self, prefix: str) -> list[str]:
        logger.info("S3 List keys: Bucket='%s' Prefix='%s'", self.bucket, prefix)
        out: list[str] = []
        try:
            for page in self._pages(Prefix=prefix):
                for obj in page.get("Contents", []):
                    out.append(obj["Key"])
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError(f"Listing failed for prefix {prefix!r}") from e
        return out

    def put_object(self, key: str, body: bytes, content_type: str) -> None:
        logger.info("S3 Upload: Bucket='%s' Key='%s' Type='%s'", self.bucket, key, content_type)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError(f"Upload failed for key {key!r}") from e


class LocalCatalogStore(CatalogStore):
    """
    Filesystem stand-in for dev / CI (STORAGE_MODE=local).
    Object keys map 1:1 to relative paths under `root`.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def _all_keys(self) -> list[str]:
        if not self.root.exists():
            return []
        keys = [p.relative_to(self.root).as_posix() for p in self.root.rglob("*") if p.is_file()]
        # S3 returns keys in lexicographic order
        return sorted(keys)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path == self.root or self.root not in path.parents:
            raise UpstreamError(f"Key {key!r} is outside the local store")
        return path

    def list_common_prefixes(self, prefix: str) -> list[str]:
        logger.info("Local List prefixes: Root='%s' Prefix='%s'", self.root, prefix)
        return _common_prefixes(self._all_keys(), prefix)

    def list_keys(self, prefix: str) -> list[str]:
        logger.info("Local List keys: Root='%s' Prefix='%s'", self.root, prefix)
        return [k for k in self._all_keys() if k.startswith(prefix)]

    def put_object(self, key: str, body: bytes, content_type: str) -> None:
        path = self._path_for(key)
        logger.info("Local Upload: Root='%s' Key='%s' Type='%s'", self.root, key, content_type)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except OSError as e:
            raise UpstreamError(f"Upload failed for key {key!r}") from e


def get_catalog_store() -> CatalogStore:
    if settings.s3_required():
        return S3CatalogStore(settings.bucket_name)
    return LocalCatalogStore(settings.local_store_dir)
