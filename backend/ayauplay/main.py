from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ayauplay.core.auth import get_identity
from ayauplay.core.config import settings
from ayauplay.core.errors import CatalogError, MethodNotAllowedError
from ayauplay.internal.sign import router as internal_router
from ayauplay.models.identity import Identity
from ayauplay.models.track import (
    MessageResponse,
    PlaylistsResponse,
    SongsResponse,
    UploadRequest,
)
from ayauplay.services.catalog import PlaylistCatalogResolver
from ayauplay.services.storage import CatalogStore, get_catalog_store
from ayauplay.services.upload import UploadGate, decode_payload

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger("ayauplay")

REQUEST_ID_HEADER = "X-Request-ID"
GENERIC_ERROR_MESSAGE = "Internal server error"

app = FastAPI(title="AyauPlay API", version="1.0.0")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(internal_router, prefix="/internal", tags=["internal"])


# -------------------------
# Errors
# -------------------------


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "") or uuid.uuid4().hex


def _internal_error(request_id: str) -> JSONResponse:
    body = MessageResponse(message=GENERIC_ERROR_MESSAGE, correlationId=request_id)
    return JSONResponse(
        status_code=500,
        content=body.model_dump(exclude_none=True),
        headers={REQUEST_ID_HEADER: request_id},
    )


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Tags every request with a correlation id. Unhandled exceptions are
    logged here with that id and answered with a generic 500.
    """
    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("Unhandled error [request_id=%s]", request_id)
        return _internal_error(request_id)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    request_id = _request_id(request)
    if exc.status_code >= 500:
        # detail stays server-side
        logger.error(
            "%s [request_id=%s]: %s",
            type(exc).__name__,
            request_id,
            exc.message,
            exc_info=exc.__cause__ or exc,
        )
        return _internal_error(request_id)

    logger.info("%s [request_id=%s]: %s", type(exc).__name__, request_id, exc.message)
    body = MessageResponse(message=exc.message, code=exc.code)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


# -------------------------
# Dependencies
# -------------------------


def get_resolver(store: CatalogStore = Depends(get_catalog_store)) -> PlaylistCatalogResolver:
    return PlaylistCatalogResolver(store)


def get_upload_gate(store: CatalogStore = Depends(get_catalog_store)) -> UploadGate:
    return UploadGate(store)


# -------------------------
# Routes
# -------------------------


@app.get("/health")
def health():
    return {"ok": True, "service": "ayauplay-backend"}


@app.post("/upload", response_model=MessageResponse, response_model_exclude_none=True)
def upload(
    req: UploadRequest,
    identity: Identity = Depends(get_identity),
    gate: UploadGate = Depends(get_upload_gate),
):
    """
    Admits a base64 audio payload under `fileName` as-is.
    400 for anything that is not .wav/.mp3/.aac.
    """
    raw = decode_payload(req.file)
    stored = gate.admit(req.fileName, raw)
    logger.info("Upload by %s: key='%s' (%d bytes)", identity.subjectId, stored.key, stored.size)
    return MessageResponse(message="File uploaded successfully")


@app.get("/playlists", response_model=PlaylistsResponse | SongsResponse)
def playlists(
    playlist: Optional[str] = Query(default=None),
    identity: Identity = Depends(get_identity),
    resolver: PlaylistCatalogResolver = Depends(get_resolver),
):
    """
    No query param: playlist names visible to the caller.
    ?playlist=name: that playlist's tracks with short-lived signed URLs.
    """
    if playlist is not None:
        return SongsResponse(songs=resolver.list_tracks(identity, playlist))
    return PlaylistsResponse(playlists=resolver.list_playlists(identity))


@app.api_route("/playlists", methods=["POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def playlists_method_not_allowed(request: Request):
    raise MethodNotAllowedError(f"Method not allowed: {request.method}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("ayauplay.main:app", host="0.0.0.0", port=8000)
