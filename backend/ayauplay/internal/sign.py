from __future__ import annotations

from fastapi import APIRouter, Depends

from ayauplay.core.auth import require_internal
from ayauplay.models.track import SignedURL, SignRequest
from ayauplay.services.signer import UrlSigner, get_url_signer

router = APIRouter()


@router.post("/sign", response_model=SignedURL)
def sign(
    payload: SignRequest,
    _: bool = Depends(require_internal),
    signer: UrlSigner = Depends(get_url_signer),
):
    """
    Service-to-service signing entry point: objectKey in, signed URL out.
    Not reachable by end users; no scoping is applied to the key.
    """
    return signer.sign(payload.objectKey)
