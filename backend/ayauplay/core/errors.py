# backend/ayauplay/core/errors.py
from __future__ import annotations


class CatalogError(Exception):
    """
    Base for every error the catalog core raises on purpose.
    `status_code` is what the HTTP boundary answers with.
    """

    status_code = 500
    code = "internalError"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(CatalogError):
    status_code = 400
    code = "unsupportedFormat"


class AuthenticationError(CatalogError):
    status_code = 401
    code = "unauthenticated"


class AuthorizationError(CatalogError):
    status_code = 403
    code = "forbidden"


class MethodNotAllowedError(CatalogError):
    status_code = 405
    code = "methodNotAllowed"


class UpstreamError(CatalogError):
    """Store, secret store or signing failure. Never retried by the core."""

    status_code = 500
    code = "upstreamError"
