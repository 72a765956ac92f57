"""Custom exception classes for the application."""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base application error class."""

    def __init__(self, message, status_code=400):
        """Initialize the error."""
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ValidationError(AppError):
    """Raised when user input fails validation."""

    def __init__(self, message="Validation failed."):
        """Initialize the error."""
        super().__init__(message, 400)


class DuplicateResourceError(AppError):
    """Raised when trying to create a resource that already exists."""

    def __init__(self, message="Resource already exists."):
        """Initialize the error."""
        super().__init__(message, 409)


class NotFoundError(AppError):
    """Raised when a resource is not found."""

    def __init__(self, message="Resource not found."):
        """Initialize the error."""
        super().__init__(message, 404)


class ForbiddenError(AppError):
    """Raised when the current user may not perform an action."""

    def __init__(self, message="Access denied."):
        """Initialize the error."""
        super().__init__(message, 403)


class InvalidTransitionError(AppError):
    """Raised when a tournament status change is not in the transition table."""

    def __init__(self, current: str, target: str):
        """Initialize the error."""
        super().__init__(f"Cannot move tournament from {current} to {target}.", 400)
        self.current = current
        self.target = target


class ReadinessNotMetError(AppError):
    """Raised when a tournament does not meet the preconditions of a status."""

    def __init__(self, reason: str, target: str | None = None):
        """Initialize the error."""
        super().__init__(reason, 400)
        self.target = target


class UnsupportedBracketTypeError(AppError):
    """Raised when the bracket generator gets an unknown bracket type."""

    def __init__(self, bracket_type: Any):
        """Initialize the error."""
        super().__init__(f"Unsupported bracket type: {bracket_type}", 400)
        self.bracket_type = bracket_type


class SweepError(AppError):
    """Raised when the orphan sweep fails part way through."""

    def __init__(self, message: str, report: dict[str, Any] | None = None):
        """Initialize the error."""
        super().__init__(message, 500)
        self.report = report or {}
