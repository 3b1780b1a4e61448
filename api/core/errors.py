"""
Error taxonomy shared by all features.

Routers and services raise (or return, inside the ingestion pipeline) these
errors; `api/main.py` renders them as `{"success": false, "message", "error"}`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class AppError(Exception):
    status_code = 500
    code = "ERROR"

    def __init__(self, message: str, *, error: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error = error or self.code
        self.details = dict(details or {})

    def to_body(self) -> dict[str, Any]:
        return {"success": False, "message": self.message, "error": self.error, **self.details}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class DuplicateDescriptionError(ConflictError):
    status_code = 422
    code = "DUPLICATE_DESCRIPTION"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class PersistenceError(AppError):
    status_code = 500
    code = "PERSISTENCE_ERROR"


class UnknownError(AppError):
    status_code = 500
    code = "UNKNOWN_ERROR"


# Storage failures are explicit and separable from other runtime errors.
class StorageError(RuntimeError):
    pass


class StorageUnavailableError(StorageError):
    """The blob backend cannot be reached at all (no client, network, credentials)."""


@dataclass(frozen=True)
class UploadError:
    """One file that could not be uploaded. Collected, never raised."""

    file_name: str
    category: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"fileName": self.file_name, "category": self.category, "error": self.error}
