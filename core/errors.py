# core/errors.py
"""
Errores de dominio – RMA Orbion

- Tipados por categoría (no HTTP aquí)
- Las rutas traducen cada categoría a su status code
"""

from __future__ import annotations


class DomainError(Exception):
    """Error de dominio base."""

    code: str = "DOMAIN_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message


class NotFoundError(DomainError):
    code = "NOT_FOUND"


class ForbiddenError(DomainError):
    code = "FORBIDDEN"


class InvalidStateError(DomainError):
    code = "INVALID_STATE"


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"


class ConflictError(DomainError):
    code = "CONFLICT"


class InternalError(DomainError):
    code = "INTERNAL_ERROR"
