"""Domain errors raised by the upload portal services.

    UploadPortalError
    ├── AccessDenied          public 403, reason never exposed
    │   └── UploadConflict    finalize on a missing or non-pending file
    ├── UploadValidationError public 400 with a vendor-readable message
    ├── NotFound              staff-facing 404
    └── ServerError           500
        ├── StorageUnavailable
        └── PersistenceError
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    ACCESS_DENIED = "ACCESS_DENIED"
    UPLOAD_CONFLICT = "UPLOAD_CONFLICT"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class UploadPortalError(Exception):
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, *, reason: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message
        # Internal-only diagnostic, never rendered on public endpoints.
        self.reason = reason or message
        self.details = details or {}
        super().__init__(message)


class AccessDenied(UploadPortalError):
    code = ErrorCode.ACCESS_DENIED

    def __init__(self, reason: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__("Access denied.", reason=reason, details=details)


class UploadConflict(AccessDenied):
    code = ErrorCode.UPLOAD_CONFLICT


class UploadValidationError(UploadPortalError):
    code = ErrorCode.VALIDATION_FAILED


class NotFound(UploadPortalError):
    code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        details = {"resource": resource}
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(f"{resource} not found", details=details)


class ServerError(UploadPortalError):
    code = ErrorCode.INTERNAL_ERROR


class StorageUnavailable(ServerError):
    code = ErrorCode.STORAGE_UNAVAILABLE


class PersistenceError(ServerError):
    code = ErrorCode.PERSISTENCE_FAILED
