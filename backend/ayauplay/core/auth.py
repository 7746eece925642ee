from __future__ import annotations

from typing import Any, Iterable, Mapping

import orjson
from fastapi import Header

from ayauplay.core.config import settings
from ayauplay.core.errors import AuthenticationError, UpstreamError
from ayauplay.models.identity import Identity

SUBJECT_CLAIM = "sub"
GROUPS_CLAIM = "cognito:groups"


def _parse_groups(raw: Any) -> tuple[str, ...]:
    """
    Group claims arrive either as a JSON list or as the string API Gateway
    forwards from Cognito ("admin,client" or "[admin client]").
    """
    if raw is None:
        return ()
    if isinstance(raw, str):
        cleaned = raw.strip().strip("[]")
        items: Iterable[Any] = cleaned.replace(",", " ").split()
    elif isinstance(raw, (list, tuple, set)):
        items = raw
    else:
        return ()
    return tuple(str(g).strip() for g in items if str(g).strip())


def resolve(claims: Mapping[str, Any], admin_group: str | None = None) -> Identity:
    """
    Derive (subjectId, role) from pre-verified claims. No I/O.
    Raises AuthenticationError when the subject claim is missing.
    """
    sub = claims.get(SUBJECT_CLAIM) if claims else None
    if not isinstance(sub, str) or not sub.strip():
        raise AuthenticationError("Missing subject claim")

    groups = _parse_groups(claims.get(GROUPS_CLAIM))
    admin = admin_group or settings.admin_group
    role = "admin" if admin in groups else "client"
    return Identity(subjectId=sub.strip(), role=role, groups=groups)


def get_identity(x_verified_claims: str | None = Header(default=None)) -> Identity:
    """
    The upstream authorizer verifies the bearer token and forwards its
    claims as a JSON object. They are trusted as-is.
    """
    if not x_verified_claims:
        raise AuthenticationError("Missing verified claims")
    try:
        claims = orjson.loads(x_verified_claims)
    except orjson.JSONDecodeError as e:
        raise AuthenticationError("Malformed verified claims") from e
    if not isinstance(claims, dict):
        raise AuthenticationError("Malformed verified claims")
    return resolve(claims)


def require_internal(x_internal_key: str | None = Header(default=None)) -> bool:
    """
    Guard for the internal signing entry point.
    Disabled (500) until INTERNAL_API_KEY is configured.
    """
    if not settings.internal_api_key:
        raise UpstreamError("INTERNAL_API_KEY not configured")
    if x_internal_key != settings.internal_api_key:
        raise AuthenticationError("Invalid internal key")
    return True
