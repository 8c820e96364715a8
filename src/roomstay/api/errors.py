"""Translation of engine errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException

from roomstay.domain.errors import (
    AuthorizationError,
    AvailabilityConflict,
    EngineError,
    UpstreamError,
    ValidationError,
)


def to_http_exception(exc: EngineError) -> HTTPException:
    """Map an EngineError to an HTTPException with a human-readable detail.

    ValidationError      -> 422 {reason, fields}
    AvailabilityConflict -> 409 {reason, conflicting_date}
    AuthorizationError   -> 403
    UpstreamError        -> 503
    """
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail={"reason": exc.reason, "fields": exc.fields})
    if isinstance(exc, AvailabilityConflict):
        return HTTPException(
            status_code=409,
            detail={"reason": exc.reason, "conflicting_date": exc.conflicting_date.isoformat()},
        )
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=403, detail=exc.reason)
    if isinstance(exc, UpstreamError):
        return HTTPException(status_code=503, detail="Storage temporarily unavailable, try again")
    return HTTPException(status_code=500, detail=exc.reason)
