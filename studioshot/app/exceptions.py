"""Custom exception hierarchy for StudioShot."""

from __future__ import annotations


class StudioShotError(Exception):
    """Base exception for all StudioShot errors."""


class ValidationError(StudioShotError):
    """Raised when input validation fails, e.g. an image above the size ceiling."""


class TransientError(StudioShotError):
    """Raised for timeouts, connection resets and other transport noise."""


class HardServiceError(StudioShotError):
    """Raised when the remote service explicitly rejects a request."""


class BlobNotFoundError(HardServiceError):
    """Raised when a referenced blob does not exist."""


class CompositingError(StudioShotError):
    """Raised when geometry or rendering fails for one image."""


class WorkflowCancelledError(StudioShotError):
    """Raised when the workflow-level cancellation flag is set."""
