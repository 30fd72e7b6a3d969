"""
leadengine/exceptions.py — Domain error hierarchy.

Every failure the engine surfaces to a caller is a LeadEngineError subclass
carrying a stable error_code and the HTTP status the API layer maps it to.
"""

from typing import Any, Optional


class LeadEngineError(Exception):
    """
    Base exception for all lead engine errors.

    Attributes:
        message:     Human-readable message (safe to return to API callers).
        error_code:  Stable identifier, e.g. "NOT_FOUND".
        status_code: HTTP status used by the API exception handler.
        details:     Extra structured context (ids, counts).
    """

    error_code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dict for API responses."""
        payload: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LeadEngineError):
    """Malformed or missing identity / input fields."""

    error_code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(LeadEngineError):
    """A lead or contractor id does not exist."""

    error_code = "NOT_FOUND"
    status_code = 404


class NotEligibleError(LeadEngineError):
    """A contractor fails the subscription / territory predicate for a lead."""

    error_code = "CONTRACTOR_NOT_ELIGIBLE"
    status_code = 409

    def __init__(self, contractor_ids: list[int], zip_code: Optional[str]):
        self.contractor_ids = contractor_ids
        self.zip_code = zip_code
        super().__init__(
            f"Contractor(s) {contractor_ids} not eligible for ZIP {zip_code or '<none>'}.",
            details={"contractor_ids": contractor_ids, "zip": zip_code},
        )


class NoEligibleContractorsError(LeadEngineError):
    """The eligible contractor set for a lead's territory is empty."""

    error_code = "NO_ELIGIBLE_CONTRACTORS"
    status_code = 409

    def __init__(self, zip_code: Optional[str]):
        self.zip_code = zip_code
        super().__init__(
            f"No eligible contractors for ZIP {zip_code or '<none>'}.",
            details={"zip": zip_code},
        )


class AuthorizationError(LeadEngineError):
    """Missing / invalid credential (401) or a non-admin principal (403)."""

    error_code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str, forbidden: bool = False):
        if forbidden:
            self.error_code = "FORBIDDEN"
            self.status_code = 403
        super().__init__(message)


class PersistenceError(LeadEngineError):
    """Store I/O failure."""

    error_code = "PERSISTENCE_ERROR"
    status_code = 503


class NotificationError(LeadEngineError):
    """Notification delivery failed. Always recovered locally by callers."""

    error_code = "NOTIFICATION_ERROR"
    status_code = 502
