"""Translate domain errors raised by services into HTTP errors."""

from fastapi import HTTPException

from services.connectors.types import (
    ConnectorUnavailableError,
    PlatformFetchError,
    UnsupportedPlatformError,
    UserNotFoundError,
)


def to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, UnsupportedPlatformError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, UserNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PlatformFetchError):
        return HTTPException(status_code=502, detail=f"Upstream platform request failed: {exc}")
    if isinstance(exc, ConnectorUnavailableError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


DOMAIN_ERRORS = (
    UnsupportedPlatformError,
    UserNotFoundError,
    PlatformFetchError,
    ConnectorUnavailableError,
    ValueError,
)
