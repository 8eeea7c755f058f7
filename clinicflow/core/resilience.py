"""
Timeouts and retries around repository I/O.

Every repository call goes through :func:`guarded`, which bounds it with
``REPOSITORY_TIMEOUT_SECONDS`` and translates driver failures into the domain
taxonomy. Service operations are wrapped with :func:`retry_transient` so a
``TransientError`` is retried with exponential backoff before it surfaces.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from clinicflow.config.config import settings
from clinicflow.core.exceptions import ConflictError, TransientError


logger = logging.getLogger("clinicflow.resilience")

T = TypeVar("T")


async def guarded(
    awaitable: Awaitable[T], operation: str, timeout: Optional[float] = None
) -> T:
    """
    Await a repository call with a timeout and error translation.

    Raises:
        TransientError: on timeout or a connection-level driver failure
        ConflictError: when a versioned row was changed by another writer
    """
    limit = timeout if timeout is not None else settings.REPOSITORY_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except asyncio.TimeoutError as e:
        raise TransientError(
            f"Repository call '{operation}' timed out after {limit}s",
            details={"operation": operation},
        ) from e
    except StaleDataError as e:
        raise ConflictError(
            "Record was modified by another user, reload and try again",
            details={"operation": operation},
        ) from e
    except (OperationalError, InterfaceError) as e:
        raise TransientError(
            f"Store unavailable during '{operation}'",
            details={"operation": operation, "reason": str(e.orig)},
        ) from e
    except DBAPIError as e:
        if e.connection_invalidated:
            raise TransientError(
                f"Connection lost during '{operation}'",
                details={"operation": operation},
            ) from e
        raise


def retry_transient(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Retry an async service operation on ``TransientError`` only."""
    return retry(
        retry=retry_if_exception_type(TransientError),
        stop=stop_after_attempt(settings.TRANSIENT_RETRY_ATTEMPTS),
        wait=wait_exponential(
            multiplier=settings.TRANSIENT_RETRY_INITIAL_DELAY,
            max=settings.TRANSIENT_RETRY_MAX_DELAY,
        )
        + wait_random(0, settings.TRANSIENT_RETRY_INITIAL_DELAY),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )(func)
