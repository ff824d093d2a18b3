from __future__ import annotations
from typing import Any, Optional


class NoteVaultError(Exception):
    """Base error; ``status_code`` is what the HTTP layer answers with."""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationFailed(NoteVaultError):
    status_code = 400

    def __init__(self, errors: dict[str, str], message: str = "Validation failed"):
        super().__init__(message, details=errors)


class Conflict(NoteVaultError):
    status_code = 400


class AuthenticationError(NoteVaultError):
    status_code = 401

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(message)


class PermissionDenied(NoteVaultError):
    status_code = 403


class NotFound(NoteVaultError):
    status_code = 404
