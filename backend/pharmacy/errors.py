# Overview: Domain error hierarchy shared by services and routes.

"""
Every error a service raises on purpose derives from DomainError.

Routes translate DomainError into a JSON body and its status_code;
anything else is an unexpected failure and becomes a logged 500.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for business-rule failures that carry an HTTP status."""
    status_code = 400
    code = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(DomainError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"


class ConflictError(DomainError):
    """409-level business rule conflict."""
    status_code = 409
    code = "CONFLICT"


class ForbiddenError(DomainError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(DomainError):
    status_code = 404
    code = "NOT_FOUND"
