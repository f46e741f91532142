"""Error kinds raised by the services and translated to HTTP responses in main.py."""

from typing import Any, Dict, Optional


class DdlogError(Exception):
    status_code = 400

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class ValidationError(DdlogError):
    """Malformed input: field length or format."""
    status_code = 400


class ConflictError(DdlogError):
    """A PIN is already configured."""
    status_code = 400


class NotFoundError(DdlogError):
    status_code = 404


class InvalidCredentialError(DdlogError):
    status_code = 401

    def __init__(self, attempts_remaining: int):
        super().__init__(
            f"Incorrect PIN. {attempts_remaining} attempt(s) remaining.",
            {"attemptsRemaining": attempts_remaining},
        )
        self.attempts_remaining = attempts_remaining


class LockedError(DdlogError):
    status_code = 401

    def __init__(self, remaining_seconds: int, message: Optional[str] = None):
        super().__init__(
            message or f"Access locked. Try again in {remaining_seconds} seconds.",
            {"remainingSeconds": remaining_seconds},
        )
        self.remaining_seconds = remaining_seconds


class AuthError(DdlogError):
    """Missing (401) or invalid (403) bearer token."""
    status_code = 401

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code
