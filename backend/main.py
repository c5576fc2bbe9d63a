"""
FastAPI application entry point for PTO Connect.

Every /api route runs the access pipeline: token verification, tenant
context resolution, subscription gate, then role or permission checks.
Configuration comes from the environment (see pto_access.config.settings).
"""

import os
import logging

from pto_access.app import create_app

# Configure structured logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
