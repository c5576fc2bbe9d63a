"""
Timed calls to external collaborators.

The identity provider key set and the datastore are reached through
blocking libraries (PyJWT's JWKS client, SQLAlchemy). Each read runs in
the event loop's default executor under its own asyncio timeout so a slow
collaborator suspends only the request that is waiting on it. On timeout
the request stops waiting; the worker thread finishes in the background.

Failure mapping:
- AppError raised by the callee propagates unchanged
- timeout -> UpstreamUnavailableError(stage)
- SQLAlchemyError / httpx.HTTPError / OSError -> UpstreamUnavailableError(stage)

Calls are never retried here. Retrying an authorization decision is the
caller's choice (retry the whole request), not the pipeline's.
"""

import asyncio
import functools
import logging
from typing import Any, Callable, TypeVar

import httpx
from sqlalchemy.exc import SQLAlchemyError

from pto_access.platform.errors import AppError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

UPSTREAM_EXCEPTIONS = (SQLAlchemyError, httpx.HTTPError, OSError)


async def call_upstream(
    stage: str,
    timeout_seconds: float,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run a blocking collaborator call in a worker thread with a timeout."""
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, functools.partial(func, *args, **kwargs)),
            timeout=timeout_seconds,
        )
    except AppError:
        raise
    except asyncio.TimeoutError:
        logger.error(
            "Upstream call timed out",
            extra={"stage": stage, "timeout_seconds": timeout_seconds},
        )
        raise UpstreamUnavailableError(stage, f"{stage} timed out")
    except UPSTREAM_EXCEPTIONS as e:
        logger.error(
            "Upstream call failed",
            extra={"stage": stage, "error": str(e), "error_type": type(e).__name__},
        )
        raise UpstreamUnavailableError(stage) from e
