from __future__ import annotations

import base64
import binascii
import logging

from ayauplay.core.errors import ValidationError
from ayauplay.models.track import ALLOWED_FORMATS, CONTENT_TYPES, StoredTrack
from ayauplay.services.storage import CatalogStore

logger = logging.getLogger(__name__)

UNSUPPORTED_FORMAT_MESSAGE = "Only .wav, .mp3, and .aac files are allowed"


def extension_of(file_name: str) -> str:
    """Lower-cased text after the final '.', or '' when there is none."""
    _, dot, ext = file_name.rpartition(".")
    if not dot:
        return ""
    return ext.lower()


def is_audio_key(key: str) -> bool:
    return extension_of(key) in ALLOWED_FORMATS


def content_type_for(file_name: str) -> str:
    return CONTENT_TYPES.get(extension_of(file_name), "application/octet-stream")


def decode_payload(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("File payload is not valid base64", code="invalidPayload") from e


class UploadGate:
    """
    Admits audio files into the catalog store.

    Only the extension is checked. The key is written exactly as given;
    keeping callers inside their own prefix is not this gate's job.
    """

    def __init__(self, store: CatalogStore) -> None:
        self.store = store

    def admit(self, file_name: str, raw: bytes) -> StoredTrack:
        ext = extension_of(file_name)
        if ext not in ALLOWED_FORMATS:
            logger.info("Upload rejected: key='%s' ext='%s'", file_name, ext)
            raise ValidationError(UNSUPPORTED_FORMAT_MESSAGE, code="unsupportedFormat")

        content_type = content_type_for(file_name)
        self.store.put_object(file_name, raw, content_type)

        return StoredTrack(
            key=file_name,
            fileName=file_name.rsplit("/", 1)[-1],
            format=ext,
            contentType=content_type,
            size=len(raw),
        )
