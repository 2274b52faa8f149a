from __future__ import annotations

from typing import Any

from fastapi import status


class StorefrontError(Exception):
    """Base class for errors the API maps to a status code without reinterpreting them."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "error"

    def __init__(self, message: str, *, code: str | None = None, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = dict(context or {})

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(StorefrontError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "validation_failed"


class NotFoundError(StorefrontError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class ConflictError(StorefrontError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "conflict"


class InternalError(StorefrontError):
    """Storage or invariant failure; logged in full, reported to clients generically."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "internal_error"
