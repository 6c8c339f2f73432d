# core/routes/http_common.py
from __future__ import annotations

from fastapi import HTTPException

from core.errors import (
    ConflictError,
    DomainError,
    ForbiddenError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


_STATUS_POR_ERROR = (
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (InvalidStateError, 409),
    (ValidationError, 400),
    (ConflictError, 409),
    (InternalError, 500),
)


def http_error(e: DomainError) -> HTTPException:
    """Traduce un error de dominio a HTTPException (detail = mensaje de dominio)."""
    for cls, code in _STATUS_POR_ERROR:
        if isinstance(e, cls):
            return HTTPException(status_code=code, detail=e.message)
    return HTTPException(status_code=400, detail=e.message)
