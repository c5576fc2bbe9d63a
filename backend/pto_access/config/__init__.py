"""Configuration: environment settings and seeded permission templates."""

from pto_access.config.settings import AccessSettings, get_settings, reset_settings

__all__ = ["AccessSettings", "get_settings", "reset_settings"]
