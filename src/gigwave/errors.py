"""Error kinds returned by gig operations.

Every failure surfaces to the caller as a tagged result: an error ``kind``
plus a human-readable message.
"""

from typing import Any


class GigWaveError(Exception):
    """Base exception for gig operations."""

    kind = "internal"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_result(self) -> dict[str, Any]:
        """Tagged failure result for callers."""
        return {"success": False, "error": {"kind": self.kind, "message": self.message}}


class Unauthenticated(GigWaveError):
    """Raised when an operation has no caller identity."""

    kind = "unauthenticated"


class PermissionDenied(GigWaveError):
    """Raised when the caller is not the gig's artist."""

    kind = "permission-denied"


class NotFound(GigWaveError):
    """Raised when a gig, request, playlist or track does not resolve."""

    kind = "not-found"


class InvalidArgument(GigWaveError):
    """Raised for malformed input."""

    kind = "invalid-argument"


class FailedPrecondition(GigWaveError):
    """Raised when an operation is not legal in the current state."""

    kind = "failed-precondition"
