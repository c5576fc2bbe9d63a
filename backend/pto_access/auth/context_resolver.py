"""
Tenant context resolution: verified Principal -> RequestContext.

Data flow:
1. Token verified by token_verifier -> Principal
2. context_resolver loads the principal's profile and its organization
   in one logical read
3. RequestContext built once and passed explicitly to every later check

SECURITY:
- subject_id comes ONLY from the verified token (never from client input)
- org_id comes ONLY from the stored profile (never from client input)
- RequestContext is immutable and never stored in shared/global state
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pto_access.auth.token_verifier import Principal
from pto_access.constants.roles import Role, parse_role
from pto_access.constants.subscription import SubscriptionStatus, normalize_subscription_status
from pto_access.platform.errors import NoOrganizationError, ProfileNotFoundError
from pto_access.platform.upstream import call_upstream
from pto_access.repositories.datastore import Datastore, OrganizationRecord, ProfileRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProfileContext:
    """The caller's profile as seen by authorization checks."""

    profile_id: str
    subject_id: str
    org_id: str
    role: Optional[Role]
    is_active: bool
    raw_role: Optional[str] = None


@dataclass(frozen=True)
class OrganizationContext:
    """The caller's organization with its canonical subscription status."""

    org_id: str
    name: str
    subscription_status: SubscriptionStatus
    trial_ends_at: Optional[datetime] = None


@dataclass(frozen=True)
class RequestContext:
    """
    Authentication and tenant context for one request.

    Built once by TenantContextResolver and threaded as an argument
    through every downstream check. organization is None only when the
    profile points at an organization row that could not be loaded; the
    subscription gate fails closed on it.
    """

    principal: Principal
    profile: ProfileContext
    organization: Optional[OrganizationContext]
    request_id: Optional[str] = None

    @property
    def org_id(self) -> str:
        return self.profile.org_id

    @property
    def subject_id(self) -> str:
        return self.principal.subject_id

    @property
    def profile_id(self) -> str:
        return self.profile.profile_id

    @property
    def role(self) -> Optional[Role]:
        return self.profile.role

    def log_extra(self) -> dict:
        """Structured logging fields for this request."""
        return {
            "request_id": self.request_id,
            "org_id": self.org_id,
            "profile_id": self.profile_id,
            "role": self.role.value if self.role else self.profile.raw_role,
        }

    def __repr__(self) -> str:
        return (
            f"RequestContext(org_id={self.org_id}, profile_id={self.profile_id}, "
            f"role={self.role.value if self.role else None})"
        )


def build_request_context(
    principal: Principal,
    profile: ProfileRecord,
    organization: Optional[OrganizationRecord],
    request_id: Optional[str] = None,
) -> RequestContext:
    """Assemble a RequestContext from datastore records."""
    role = parse_role(profile.role)
    if role is None:
        logger.warning(
            "Profile has unrecognised role; all role checks will deny",
            extra={"profile_id": profile.profile_id, "role": profile.role},
        )

    org_context = None
    if organization is not None:
        org_context = OrganizationContext(
            org_id=organization.org_id,
            name=organization.name,
            subscription_status=normalize_subscription_status(organization.subscription_status),
            trial_ends_at=organization.trial_ends_at,
        )

    return RequestContext(
        principal=principal,
        profile=ProfileContext(
            profile_id=profile.profile_id,
            subject_id=profile.subject_id,
            org_id=profile.org_id,
            role=role,
            is_active=profile.is_active,
            raw_role=profile.role,
        ),
        organization=org_context,
        request_id=request_id,
    )


class TenantContextResolver:
    """
    resolve(principal) -> RequestContext | ProfileNotFound | NoOrganization.

    Usage:
        resolver = TenantContextResolver(datastore, timeout_seconds=2.0)
        context = await resolver.resolve(principal, request_id="req_abc")
    """

    def __init__(self, datastore: Datastore, timeout_seconds: float = 2.0):
        self._datastore = datastore
        self._timeout = timeout_seconds

    async def resolve(self, principal: Principal, request_id: Optional[str] = None) -> RequestContext:
        profile, organization = await call_upstream(
            "tenant_context",
            self._timeout,
            self._datastore.get_profile_with_organization,
            principal.subject_id,
        )

        if profile is None:
            logger.warning(
                "No profile found for subject",
                extra={"subject_id": principal.subject_id, "request_id": request_id},
            )
            raise ProfileNotFoundError()

        if not profile.org_id:
            logger.warning(
                "Profile has no organization assigned",
                extra={"profile_id": profile.profile_id, "request_id": request_id},
            )
            raise NoOrganizationError()

        if organization is None:
            logger.error(
                "Organization record missing for profile",
                extra={"profile_id": profile.profile_id, "org_id": profile.org_id},
            )

        context = build_request_context(principal, profile, organization, request_id)
        logger.debug("Resolved request context", extra=context.log_extra())
        return context
