"""
Authentication: token verification and tenant context resolution.

SECURITY NOTES:
- The identity provider is the ONLY authentication authority
- NO tokens are issued by this application
- subject_id maps to exactly one profile, which fixes the tenant
"""

from pto_access.auth.token_verifier import (
    Principal,
    IdentityProvider,
    JWTIdentityProvider,
    TokenVerifier,
    strip_bearer,
)
from pto_access.auth.context_resolver import (
    RequestContext,
    ProfileContext,
    OrganizationContext,
    TenantContextResolver,
    build_request_context,
)

__all__ = [
    "Principal",
    "IdentityProvider",
    "JWTIdentityProvider",
    "TokenVerifier",
    "strip_bearer",
    "RequestContext",
    "ProfileContext",
    "OrganizationContext",
    "TenantContextResolver",
    "build_request_context",
]
