# backend/ayauplay/services/catalog.py
from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Callable, Optional

from ayauplay.core.config import settings
from ayauplay.core.errors import AuthorizationError, UpstreamError
from ayauplay.models.identity import Identity
from ayauplay.models.track import SHARED_ROOT, PlaylistRef, SignedURL, SongEntry
from ayauplay.services.signer import UrlSigner, get_url_signer
from ayauplay.services.storage import CatalogStore
from ayauplay.services.upload import is_audio_key

logger = logging.getLogger(__name__)

ROOT_PREFIX = "playlists/"


def _check_playlist_name(name: str) -> None:
    if not name or "/" in name or name in (".", ".."):
        raise AuthorizationError(f"Invalid playlist name: {name!r}")


def scope_prefix(identity: Identity, playlist_name: Optional[str] = None) -> str:
    """
    The storage prefix an identity may see. Pure, no I/O.

    admin:  playlists/            | playlists/{name}/
    client: playlists/{sub}/      | playlists/{sub}/{name}/

    Clients can only ever reach their own subtree because the prefix is
    built here, never taken from the caller.
    """
    base = ROOT_PREFIX if identity.is_admin else f"{ROOT_PREFIX}{identity.subjectId}/"
    if playlist_name is None:
        return base
    _check_playlist_name(playlist_name)
    return f"{base}{playlist_name}/"


def playlist_ref(identity: Identity, name: str) -> PlaylistRef:
    scope = SHARED_ROOT if identity.is_admin else identity.subjectId
    return PlaylistRef(scope=scope, name=name)


class PlaylistCatalogResolver:
    """
    Lists playlists and signed tracks for one Identity.

    - Playlists are the common prefixes under the identity's scope.
    - Tracks are the audio objects under one playlist prefix, each with a
      freshly signed playback URL, in store listing order.

    A listing failure or any single signing failure fails the whole call:
    no partial signed-URL sets.
    """

    def __init__(
        self,
        store: CatalogStore,
        signer: Optional[UrlSigner] = None,
        signer_factory: Callable[[], UrlSigner] = get_url_signer,
        max_workers: Optional[int] = None,
        timeout_sec: Optional[float] = None,
    ) -> None:
        self.store = store
        self._signer = signer
        self._signer_factory = signer_factory
        self.max_workers = max_workers or settings.signing_max_workers
        self.timeout_sec = timeout_sec or settings.signing_timeout_sec

    @property
    def signer(self) -> UrlSigner:
        # Resolved lazily: listing playlists must not need signing config
        if self._signer is None:
            self._signer = self._signer_factory()
        return self._signer

    # -------------------------
    # Public read APIs
    # -------------------------

    def list_playlist_refs(self, identity: Identity) -> list[PlaylistRef]:
        prefix = scope_prefix(identity)
        out: list[PlaylistRef] = []
        for cp in self.store.list_common_prefixes(prefix):
            name = cp.rstrip("/").split("/")[-1]
            if name:
                out.append(playlist_ref(identity, name))
        return out

    def list_playlists(self, identity: Identity) -> list[str]:
        return [ref.name for ref in self.list_playlist_refs(identity)]

    def list_tracks(self, identity: Identity, playlist_name: str) -> list[SongEntry]:
        prefix = scope_prefix(identity, playlist_name)
        keys = [k for k in self.store.list_keys(prefix) if is_audio_key(k)]
        if not keys:
            return []

        signed = self._sign_all(keys)
        return [
            SongEntry(name=key.split("/")[-1], url=s.url)
            for key, s in zip(keys, signed)
        ]

    # -------------------------
    # Signing fan-out
    # -------------------------

    def _sign_all(self, keys: list[str]) -> list[SignedURL]:
        signer = self.signer
        # every key, a lone one included, is bounded by timeout_sec
        executor = ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(keys))))
        try:
            futures: list[Future] = [executor.submit(signer.sign, k) for k in keys]
            done, not_done = wait(futures, timeout=self.timeout_sec, return_when=FIRST_EXCEPTION)

            failed = next((f for f in futures if f in done and f.exception() is not None), None)
            if failed is not None or not_done:
                for f in not_done:
                    f.cancel()
                if failed is not None:
                    exc = failed.exception()
                    logger.warning("Signing failed, dropping whole playlist: %s", exc)
                    if isinstance(exc, UpstreamError):
                        raise exc
                    raise UpstreamError("Signing failed") from exc
                logger.warning("Signing timed out after %.1fs (%d pending)", self.timeout_sec, len(not_done))
                raise UpstreamError("Signing timed out")

            # futures list is in listing order
            return [f.result() for f in futures]
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
