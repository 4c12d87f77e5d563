"""Error taxonomy shared by the service, the stores and the HTTP layer.

Each error carries the HTTP status it maps to; the Flask error handler in
:func:`recipeshare.create_app` renders them as ``{"message": ...}``.
"""

from __future__ import annotations


class RecipeShareError(Exception):
    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(RecipeShareError):
    """A required field is missing, empty or malformed."""

    status_code = 400
    default_message = "Invalid request"


class AlreadySavedError(RecipeShareError):
    status_code = 400
    default_message = "Recipe already saved"


class AuthError(RecipeShareError):
    """Missing or invalid caller identity."""

    status_code = 401
    default_message = "Not authorized"


class PermissionDeniedError(AuthError):
    """The caller is authenticated but does not own the record."""

    status_code = 403
    default_message = "Not allowed"


class NotFoundError(RecipeShareError):
    status_code = 404
    default_message = "Not found"


class ConflictError(RecipeShareError):
    status_code = 409
    default_message = "Already exists"


class StoreError(RecipeShareError):
    """The underlying database or object storage failed."""

    status_code = 500
    default_message = "Storage backend failure"


__all__ = [
    "AlreadySavedError",
    "AuthError",
    "ConflictError",
    "NotFoundError",
    "PermissionDeniedError",
    "RecipeShareError",
    "StoreError",
    "ValidationError",
]
