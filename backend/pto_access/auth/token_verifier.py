"""
Bearer token verification against the identity provider's keys.

This module handles:
- Fetching and caching the provider's JWKS (asymmetric keys), or
  verifying with the provider's shared HS256 secret
- Signature, expiry, not-before and issued-at validation with clock skew
- Extracting the Principal (subject id + claims) for one request

SECURITY:
- The identity provider is the ONLY authentication authority
- NO tokens are issued here
- Key-set fetch failures are reported as UpstreamUnavailableError, never
  as an authentication success or a silent denial
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Optional, Protocol

import jwt
from jwt import PyJWKClient, PyJWKClientError
from jwt.exceptions import (
    ExpiredSignatureError,
    ImmatureSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidTokenError,
    PyJWKClientConnectionError,
)

from pto_access.config.settings import AccessSettings
from pto_access.platform.errors import AuthenticationError, UpstreamUnavailableError
from pto_access.platform.upstream import call_upstream

logger = logging.getLogger(__name__)

ASYMMETRIC_ALGORITHMS = ["RS256", "ES256"]
SHARED_SECRET_ALGORITHMS = ["HS256"]


@dataclass(frozen=True)
class Principal:
    """Verified identity of the caller for one request."""

    subject_id: str
    claims: Dict[str, Any] = field(default_factory=dict)
    expires_at: Optional[datetime] = None

    @property
    def session_id(self) -> Optional[str]:
        return self.claims.get("session_id") or self.claims.get("sid")

    @property
    def email(self) -> Optional[str]:
        return self.claims.get("email")


class IdentityProvider(Protocol):
    """verifySignedToken(token) -> Principal; raises AuthenticationError on bad tokens."""

    def verify_signed_token(self, token: str) -> Principal: ...


def strip_bearer(credential: Optional[str]) -> Optional[str]:
    """Remove an optional 'Bearer ' prefix and surrounding whitespace."""
    if credential is None:
        return None
    credential = credential.strip()
    if credential[:7].lower() == "bearer ":
        credential = credential[7:].strip()
    return credential or None


class JWTIdentityProvider:
    """
    Verifies provider-issued JWTs with PyJWT.

    Key material comes from either:
    - jwks_url: asymmetric keys fetched and cached via PyJWKClient
    - jwt_secret: the provider's shared HS256 signing secret

    Usage:
        provider = JWTIdentityProvider(jwks_url="https://.../.well-known/jwks.json")
        principal = provider.verify_signed_token(token)
    """

    # JWKS cache duration in seconds
    JWKS_CACHE_DURATION = 3600

    REQUIRED_CLAIMS = ["sub", "exp", "iat"]

    def __init__(
        self,
        jwks_url: Optional[str] = None,
        jwt_secret: Optional[str] = None,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        clock_skew_seconds: int = 30,
        fetch_timeout_seconds: float = 2.0,
    ):
        if not jwks_url and not jwt_secret:
            raise ValueError("Either AUTH_JWKS_URL or AUTH_JWT_SECRET must be configured")

        self._jwks_url = jwks_url
        self._jwt_secret = jwt_secret
        self._issuer = issuer
        self._audience = audience
        self._leeway = clock_skew_seconds
        self._fetch_timeout = fetch_timeout_seconds

        self._jwks_client: Optional[PyJWKClient] = None
        self._jwks_client_lock = Lock()
        self._jwks_last_refresh: float = 0

        logger.info(
            "Initialized JWTIdentityProvider",
            extra={
                "key_source": "jwks" if jwks_url else "shared_secret",
                "issuer": issuer,
                "clock_skew_seconds": clock_skew_seconds,
            },
        )

    @classmethod
    def from_settings(cls, settings: AccessSettings) -> "JWTIdentityProvider":
        return cls(
            jwks_url=settings.jwks_url,
            jwt_secret=settings.jwt_secret,
            issuer=settings.issuer,
            audience=settings.audience,
            clock_skew_seconds=settings.clock_skew_seconds,
            fetch_timeout_seconds=settings.auth_timeout_seconds,
        )

    def _get_jwks_client(self) -> PyJWKClient:
        """Get or create the JWKS client, recreating it when the cache window lapses."""
        with self._jwks_client_lock:
            now = time.time()
            if (
                self._jwks_client is None
                or now - self._jwks_last_refresh > self.JWKS_CACHE_DURATION
            ):
                self._jwks_client = PyJWKClient(
                    self._jwks_url,
                    cache_keys=True,
                    lifespan=self.JWKS_CACHE_DURATION,
                    timeout=self._fetch_timeout,
                )
                self._jwks_last_refresh = now
                logger.debug("Refreshed JWKS client", extra={"jwks_url": self._jwks_url})
            return self._jwks_client

    def _signing_key(self, token: str):
        if not self._jwks_url:
            return self._jwt_secret, SHARED_SECRET_ALGORITHMS
        try:
            signing_key = self._get_jwks_client().get_signing_key_from_jwt(token)
        except PyJWKClientConnectionError as e:
            logger.error("JWKS fetch failed", extra={"error": str(e), "jwks_url": self._jwks_url})
            raise UpstreamUnavailableError("token_verification", "Identity provider unreachable")
        except PyJWKClientError as e:
            # Token names a key the provider does not publish
            logger.warning("Signing key not found", extra={"error": str(e)})
            raise AuthenticationError(reason="unknown_signing_key")
        return signing_key.key, ASYMMETRIC_ALGORITHMS

    def verify_signed_token(self, token: str) -> Principal:
        """
        Verify a JWT and return the Principal.

        Raises:
            AuthenticationError: malformed, expired, or badly signed token
            UpstreamUnavailableError: key set could not be fetched
        """
        try:
            key, algorithms = self._signing_key(token)
            claims = jwt.decode(
                token,
                key,
                algorithms=algorithms,
                issuer=self._issuer,
                audience=self._audience,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_iat": True,
                    "verify_nbf": True,
                    "verify_aud": self._audience is not None,
                    "require": self.REQUIRED_CLAIMS,
                },
                leeway=self._leeway,
            )
        except ExpiredSignatureError:
            logger.warning("Token has expired")
            raise AuthenticationError("Token has expired", reason="token_expired")
        except ImmatureSignatureError:
            logger.warning("Token not yet valid")
            raise AuthenticationError(reason="token_not_yet_valid")
        except InvalidIssuerError:
            logger.warning("Invalid token issuer")
            raise AuthenticationError(reason="invalid_issuer")
        except InvalidAudienceError:
            logger.warning("Invalid token audience")
            raise AuthenticationError(reason="invalid_audience")
        except InvalidTokenError as e:
            logger.warning("Invalid token", extra={"error": str(e)})
            raise AuthenticationError(reason="invalid_token")

        subject_id = claims.get("sub")
        if not subject_id or not isinstance(subject_id, str):
            raise AuthenticationError(reason="missing_subject")

        expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        logger.debug("Token verified", extra={"sub": subject_id})
        return Principal(subject_id=subject_id, claims=claims, expires_at=expires_at)

    def refresh_jwks(self) -> None:
        """Force the key set to be re-fetched on the next verification (key rotation)."""
        with self._jwks_client_lock:
            self._jwks_client = None
            self._jwks_last_refresh = 0
        logger.info("JWKS cache cleared, will refresh on next verification")


class TokenVerifier:
    """
    verify(credential) -> Principal | AuthenticationError.

    Wraps an IdentityProvider with the pipeline's timeout and the
    missing/malformed credential checks that need no I/O.
    """

    def __init__(self, provider: IdentityProvider, timeout_seconds: float = 2.0):
        self._provider = provider
        self._timeout = timeout_seconds

    async def verify(self, credential: Optional[str]) -> Principal:
        token = strip_bearer(credential)
        if not token:
            raise AuthenticationError("Missing or malformed auth token", reason="missing_token")
        if token.count(".") != 2:
            raise AuthenticationError("Missing or malformed auth token", reason="malformed_token")

        return await call_upstream(
            "token_verification",
            self._timeout,
            self._provider.verify_signed_token,
            token,
        )

