# API routes
from pto_access.api.routes import health
from pto_access.api.routes import events
from pto_access.api.routes import admin_permissions
from pto_access.api.routes import me

__all__ = ["health", "events", "admin_permissions", "me"]
