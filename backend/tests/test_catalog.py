# backend/tests/test_catalog.py

import random
import threading
import time

import pytest

from conftest import T0, put
from ayauplay.core.errors import AuthorizationError, UpstreamError
from ayauplay.models.identity import Identity
from ayauplay.models.track import SHARED_ROOT, PlaylistRef, SignedURL
from ayauplay.services.catalog import PlaylistCatalogResolver, scope_prefix
from ayauplay.services.storage import CatalogStore


# ─────────────────────────────────────────────────────────────
# Fakes
# ─────────────────────────────────────────────────────────────

class FakeSigner:
    """Deterministic signer; optional jitter to shake out ordering bugs."""

    def __init__(self, *, fail_on: str | None = None, jitter: float = 0.0, block: threading.Event | None = None):
        self.fail_on = fail_on
        self.jitter = jitter
        self.block = block
        self.calls = []
        self._lock = threading.Lock()

    def sign(self, key: str) -> SignedURL:
        with self._lock:
            self.calls.append(key)
        if self.block is not None:
            self.block.wait(5)
        if self.jitter:
            time.sleep(random.uniform(0, self.jitter))
        if key == self.fail_on:
            raise UpstreamError("kms down")
        return SignedURL(url=f"https://cdn.test/{key}?sig=1", issuedAt=T0, expiresAt=T0)


class BrokenStore(CatalogStore):
    def list_common_prefixes(self, prefix):
        raise UpstreamError("listing failed")

    def list_keys(self, prefix):
        raise UpstreamError("listing failed")


def _no_signer():
    raise AssertionError("signer must not be needed")


def _resolver(store, signer=None, **kwargs):
    return PlaylistCatalogResolver(store, signer=signer or FakeSigner(), **kwargs)


# ─────────────────────────────────────────────────────────────
# scope_prefix (pure)
# ─────────────────────────────────────────────────────────────

def test_scope_prefix_client_and_admin(u1, admin):
    assert scope_prefix(u1) == "playlists/u1/"
    assert scope_prefix(u1, "party") == "playlists/u1/party/"
    assert scope_prefix(admin) == "playlists/"
    assert scope_prefix(admin, "party") == "playlists/party/"


@pytest.mark.parametrize("name", ["", "/", "u2/party", "..", ".", "../u2"])
def test_scope_prefix_rejects_path_like_names(u1, name):
    with pytest.raises(AuthorizationError):
        scope_prefix(u1, name)


def test_client_prefix_always_inside_own_subtree():
    for sub in ("u1", "abc-123", "9f1c"):
        ident = Identity(subjectId=sub, role="client")
        for name in ("a", "party", "x y"):
            assert scope_prefix(ident, name).startswith(f"playlists/{sub}/")


# ─────────────────────────────────────────────────────────────
# list_playlists
# ─────────────────────────────────────────────────────────────

def test_client_sees_only_own_playlists(store, u1):
    put(
        store,
        "playlists/u1/party/track1.mp3",
        "playlists/u1/chill/a.wav",
        "playlists/u2/secret/b.mp3",
        "playlists/shared/c.mp3",
    )
    resolver = PlaylistCatalogResolver(store, signer_factory=_no_signer)

    assert sorted(resolver.list_playlists(u1)) == ["chill", "party"]


def test_admin_sees_every_top_level_child(store, admin):
    put(
        store,
        "playlists/u1/party/track1.mp3",
        "playlists/u2/secret/b.mp3",
        "playlists/shared/c.mp3",
        "other/x.mp3",
    )
    resolver = PlaylistCatalogResolver(store, signer_factory=_no_signer)

    assert sorted(resolver.list_playlists(admin)) == ["shared", "u1", "u2"]


def test_playlist_refs_carry_scope(store, u1, admin):
    put(store, "playlists/u1/party/track1.mp3")
    resolver = PlaylistCatalogResolver(store, signer_factory=_no_signer)

    assert resolver.list_playlist_refs(u1) == [PlaylistRef(scope="u1", name="party")]
    assert resolver.list_playlist_refs(admin) == [PlaylistRef(scope=SHARED_ROOT, name="u1")]


def test_no_playlists_is_empty_list(store, u1):
    assert _resolver(store).list_playlists(u1) == []


def test_listing_failure_fails_whole_operation(u1):
    with pytest.raises(UpstreamError):
        _resolver(BrokenStore()).list_playlists(u1)
    with pytest.raises(UpstreamError):
        _resolver(BrokenStore()).list_tracks(u1, "party")


# ─────────────────────────────────────────────────────────────
# list_tracks
# ─────────────────────────────────────────────────────────────

def test_scenario_upload_then_list(store, u1):
    put(store, "playlists/u1/party/track1.mp3")
    resolver = _resolver(store)

    assert resolver.list_playlists(u1) == ["party"]
    songs = resolver.list_tracks(u1, "party")
    assert [s.name for s in songs] == ["track1.mp3"]
    assert songs[0].url


def test_tracks_filter_to_audio_extensions_any_case(store, u1):
    put(
        store,
        "playlists/u1/party/a.mp3",
        "playlists/u1/party/b.WAV",
        "playlists/u1/party/c.Aac",
        "playlists/u1/party/cover.jpg",
        "playlists/u1/party/notes.txt",
    )
    signer = FakeSigner()
    songs = _resolver(store, signer).list_tracks(u1, "party")

    assert [s.name for s in songs] == ["a.mp3", "b.WAV", "c.Aac"]
    assert sorted(signer.calls) == [
        "playlists/u1/party/a.mp3",
        "playlists/u1/party/b.WAV",
        "playlists/u1/party/c.Aac",
    ]


def test_missing_playlist_is_empty_not_error(store, u1):
    put(store, "playlists/u2/othersPlaylist/x.mp3")
    signer = FakeSigner()

    assert _resolver(store, signer).list_tracks(u1, "othersPlaylist") == []
    assert signer.calls == []


def test_admin_tracks_use_top_level_prefix(store, admin):
    put(store, "playlists/shared/c.mp3", "playlists/u1/shared/d.mp3")
    songs = _resolver(store).list_tracks(admin, "shared")
    assert [s.name for s in songs] == ["c.mp3"]


def test_output_order_matches_listing_order_under_parallel_signing(store, u1):
    names = [f"t{i:02d}.mp3" for i in range(20)]
    put(store, *[f"playlists/u1/big/{n}" for n in names])

    resolver = _resolver(store, FakeSigner(jitter=0.01), max_workers=8)
    songs = resolver.list_tracks(u1, "big")

    assert [s.name for s in songs] == names
    assert [s.url for s in songs] == [f"https://cdn.test/playlists/u1/big/{n}?sig=1" for n in names]


@pytest.mark.parametrize("workers", [1, 4])
def test_single_signing_failure_fails_whole_request(store, u1, workers):
    put(store, *[f"playlists/u1/p/{i}.mp3" for i in range(5)])
    signer = FakeSigner(fail_on="playlists/u1/p/2.mp3")

    with pytest.raises(UpstreamError):
        _resolver(store, signer, max_workers=workers).list_tracks(u1, "p")


def test_signing_timeout_fails_request(store, u1):
    put(store, *[f"playlists/u1/p/{i}.mp3" for i in range(4)])
    gate = threading.Event()
    resolver = _resolver(store, FakeSigner(block=gate), max_workers=2, timeout_sec=0.05)
    try:
        with pytest.raises(UpstreamError):
            resolver.list_tracks(u1, "p")
    finally:
        gate.set()


@pytest.mark.parametrize(
    "keys, workers",
    [(["playlists/u1/solo/a.mp3"], 8), (["playlists/u1/solo/a.mp3", "playlists/u1/solo/b.mp3"], 1)],
)
def test_signing_timeout_applies_to_single_key_and_single_worker(store, u1, keys, workers):
    put(store, *keys)
    gate = threading.Event()
    resolver = _resolver(store, FakeSigner(block=gate), max_workers=workers, timeout_sec=0.05)
    try:
        with pytest.raises(UpstreamError):
            resolver.list_tracks(u1, "solo")
    finally:
        gate.set()


def test_unexpected_signer_exception_is_wrapped(store, u1):
    put(store, "playlists/u1/p/a.mp3", "playlists/u1/p/b.mp3")

    class Exploding(FakeSigner):
        def sign(self, key):
            raise RuntimeError("boom")

    with pytest.raises(UpstreamError):
        _resolver(store, Exploding(), max_workers=2).list_tracks(u1, "p")


def test_signer_factory_is_resolved_lazily(store, u1):
    put(store, "playlists/u1/p/a.mp3")
    made = []

    def factory():
        made.append(1)
        return FakeSigner()

    resolver = PlaylistCatalogResolver(store, signer_factory=factory)
    resolver.list_playlists(u1)
    assert made == []

    resolver.list_tracks(u1, "p")
    assert made == [1]
