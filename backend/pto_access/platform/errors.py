"""
Consistent error taxonomy for the access pipeline.

Every failure the pipeline can produce is an AppError subclass carrying:
- status_code: the single external HTTP status for that failure kind
- code: the stable machine-readable code API clients branch on
- message: human-readable text (never the contract)
- field / details: optional context surfaced in the response envelope

SECURITY:
- CrossTenantError is externally identical to NotFoundError (404, NOT_FOUND)
  so responses never confirm that a resource exists in another tenant.
- UpstreamUnavailableError is distinct from PermissionDeniedError: the
  pipeline fails closed but reports collaborator outages accurately.
"""

import uuid
from typing import Any, Dict, Optional

from fastapi import status


def generate_correlation_id() -> str:
    """Generate a request correlation id (req_ + 12 hex chars)."""
    return f"req_{uuid.uuid4().hex[:12]}"


class AppError(Exception):
    """Base class for all errors rendered through the response envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_SERVER_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.field = field
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to an envelope error entry."""
        return {
            "code": self.code,
            "message": self.message,
            "field": self.field,
            "details": self.details,
        }


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    default_message = "Request validation failed"


class AuthenticationError(AppError):
    """Missing, malformed, expired, or badly signed credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHENTICATED"
    default_message = "Invalid or expired authentication token"

    def __init__(self, message: Optional[str] = None, reason: str = "invalid_token"):
        super().__init__(message)
        # Logged server-side only; clients get the stable code
        self.reason = reason


class ProfileNotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "PROFILE_NOT_FOUND"
    default_message = "User profile not found"


class NoOrganizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "NO_ORGANIZATION"
    default_message = "User not assigned to an organization"


class PermissionDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action"


class UnknownPermissionError(AppError):
    """
    Permission key has no template.

    This is a server-side configuration gap, not a caller error.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "UNKNOWN_PERMISSION"
    default_message = "Permission is not configured"

    def __init__(self, permission_key: str):
        super().__init__(
            f"Permission '{permission_key}' is not configured",
            details={"permission": permission_key},
        )
        self.permission_key = permission_key


class SubscriptionRequiredError(AppError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "SUBSCRIPTION_REQUIRED"
    default_message = "Subscription required or past due"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found"


class CrossTenantError(NotFoundError):
    """
    Resource exists but belongs to a different organization.

    Rendered exactly like NotFoundError. Only server logs tell them apart.
    """

    def __init__(self, resource_org_id: Optional[str] = None):
        super().__init__()
        self.resource_org_id = resource_org_id


class UpstreamUnavailableError(AppError):
    """An external collaborator (datastore, identity provider) failed or timed out."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "UPSTREAM_UNAVAILABLE"
    default_message = "External service temporarily unavailable"

    def __init__(self, stage: str, message: Optional[str] = None):
        super().__init__(message, details={"stage": stage})
        self.stage = stage
