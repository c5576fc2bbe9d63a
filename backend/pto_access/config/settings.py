"""
Runtime configuration for the access pipeline.

All values come from environment variables so the same build runs in
every environment. Read once via get_settings(); tests construct
AccessSettings directly.

Environment variables:
    AUTH_JWKS_URL                       JWKS endpoint of the identity provider
    AUTH_JWT_SECRET                     Shared HS256 secret (used when no JWKS URL)
    AUTH_ISSUER                         Expected iss claim (optional)
    AUTH_AUDIENCE                       Expected aud claim (optional)
    AUTH_CLOCK_SKEW_SECONDS             Leeway for exp/iat/nbf (default 30)
    AUTH_TIMEOUT_SECONDS                Key-set fetch timeout (default 2.0)
    DATASTORE_TIMEOUT_SECONDS           Per-read datastore timeout (default 2.0)
    PERMISSION_CACHE_SOFT_TTL_SECONDS   Safety-net TTL, 0 disables (default 300)
    PERMISSION_CACHE_STALE_WINDOW_SECONDS  Max stale serve during refresh (default 2)
    PERMISSION_CACHE_MAX_ENTRIES        Cache size bound (default 50000)
    API_VERSION                         Envelope meta.version (default v1)
"""

import logging
import os
from dataclasses import dataclass
from threading import Lock
from typing import Optional

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid float for %s=%r, using default %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid int for %s=%r, using default %s", name, raw, default)
        return default


@dataclass(frozen=True)
class AccessSettings:
    """Immutable settings snapshot."""

    jwks_url: Optional[str] = None
    jwt_secret: Optional[str] = None
    issuer: Optional[str] = None
    audience: Optional[str] = None
    clock_skew_seconds: int = 30
    auth_timeout_seconds: float = 2.0
    datastore_timeout_seconds: float = 2.0
    cache_soft_ttl_seconds: float = 300.0
    cache_stale_window_seconds: float = 2.0
    cache_max_entries: int = 50000
    api_version: str = "v1"

    @classmethod
    def from_env(cls) -> "AccessSettings":
        return cls(
            jwks_url=os.getenv("AUTH_JWKS_URL") or None,
            jwt_secret=os.getenv("AUTH_JWT_SECRET") or None,
            issuer=os.getenv("AUTH_ISSUER") or None,
            audience=os.getenv("AUTH_AUDIENCE") or None,
            clock_skew_seconds=_env_int("AUTH_CLOCK_SKEW_SECONDS", 30),
            auth_timeout_seconds=_env_float("AUTH_TIMEOUT_SECONDS", 2.0),
            datastore_timeout_seconds=_env_float("DATASTORE_TIMEOUT_SECONDS", 2.0),
            cache_soft_ttl_seconds=_env_float("PERMISSION_CACHE_SOFT_TTL_SECONDS", 300.0),
            cache_stale_window_seconds=_env_float("PERMISSION_CACHE_STALE_WINDOW_SECONDS", 2.0),
            cache_max_entries=_env_int("PERMISSION_CACHE_MAX_ENTRIES", 50000),
            api_version=os.getenv("API_VERSION", "v1"),
        )


_settings: Optional[AccessSettings] = None
_settings_lock = Lock()


def get_settings() -> AccessSettings:
    """Get the process-wide settings (read from env on first use)."""
    global _settings
    if _settings is None:
        with _settings_lock:
            if _settings is None:
                _settings = AccessSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads env."""
    global _settings
    with _settings_lock:
        _settings = None
