"""Domain exceptions.

Every error carries a user-facing ``message`` and a short machine ``code``.
Handlers catch these at the call site, log them and reply with ``message``.
"""

from __future__ import annotations

from typing import Any, Optional


class HMSError(Exception):
    """Base exception for all HMS errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(HMSError):
    """A required field is missing or malformed; no remote call was made."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field} if field else None,
        )
        self.field = field


class RemoteWriteError(HMSError):
    """A repository insert/update failed."""

    def __init__(self, message: str = "Could not save changes. Please try again."):
        super().__init__(message, code="REMOTE_WRITE_FAILED")


class UploadError(HMSError):
    """Object-store upload failed or the file was rejected before upload."""

    def __init__(self, message: str = "Upload failed. Please try again."):
        super().__init__(message, code="UPLOAD_FAILED")


class DecodeError(HMSError):
    """A scanned ticket payload is malformed."""

    def __init__(self, message: str = "Invalid ticket code"):
        super().__init__(message, code="DECODE_FAILED")


class NotFoundError(HMSError, LookupError):
    """A referenced record does not exist."""

    def __init__(self, resource: str, identifier: Any = None):
        super().__init__(
            f"{resource} not found",
            code="NOT_FOUND",
            details={"resource": resource, "id": identifier},
        )
        self.resource = resource
        self.identifier = identifier


class EventDeletionBlocked(HMSError):
    """An event cannot be deleted while registrations reference it."""

    def __init__(self, event_id: int, registrations: int):
        super().__init__(
            f"Event has {registrations} registration(s); close it instead of deleting.",
            code="EVENT_HAS_REGISTRATIONS",
            details={"event_id": event_id, "registrations": registrations},
        )
