"""PTO Connect request context and permission resolution."""

__version__ = "1.0.0"
