from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


AudioFormat = Literal["wav", "mp3", "aac"]

ALLOWED_FORMATS: tuple[str, ...] = ("wav", "mp3", "aac")

CONTENT_TYPES: dict[str, str] = {
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
    "aac": "audio/aac",
}

SHARED_ROOT = "shared-root"


class PlaylistRef(BaseModel):
    """
    A playlist is never stored on its own: it exists as long as at least
    one track sits under its key prefix.
    scope is the owning subject id, or "shared-root" for admin/top-level.
    """
    model_config = ConfigDict(frozen=True)

    scope: str
    name: str


class Track(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str  # full storage path
    fileName: str
    format: AudioFormat


class StoredTrack(Track):
    """
    Result of an admitted upload.
    """
    contentType: str
    size: int = Field(ge=0)


class SignedURL(BaseModel):
    """
    Never persisted: minted per request, per track.
    """
    model_config = ConfigDict(frozen=True)

    url: str
    issuedAt: datetime
    expiresAt: datetime


# -------------------------
# HTTP payloads
# -------------------------


class UploadRequest(BaseModel):
    fileName: str = Field(min_length=1)
    file: str  # base64


class MessageResponse(BaseModel):
    message: str
    code: Optional[str] = None
    correlationId: Optional[str] = None


class SongEntry(BaseModel):
    name: str
    url: str


class PlaylistsResponse(BaseModel):
    playlists: list[str]


class SongsResponse(BaseModel):
    songs: list[SongEntry]


class SignRequest(BaseModel):
    objectKey: str = Field(min_length=1)
