"""Shared route helpers: domain error -> HTTPException mapping."""

from __future__ import annotations

from fastapi import HTTPException

from flowcore.errors import (
    AuthorizationError,
    CompileError,
    ConflictError,
    IntegrationError,
    NotFoundError,
    ValidationError,
    WorkflowCoreError,
)


def http_error(exc: WorkflowCoreError) -> HTTPException:
    """Translate a flowcore error into the HTTP response the API returns for it."""
    if isinstance(exc, CompileError):
        return HTTPException(status_code=422, detail=exc.to_dict())
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=exc.to_dict())
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, IntegrationError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
