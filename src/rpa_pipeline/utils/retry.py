# ABOUTME: Error taxonomy and transport retry logic using the tenacity library
# ABOUTME: Retries transient database/channel failures with exponential backoff

import functools
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from rpa_pipeline.utils.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class PipelineError(Exception):
    """Base exception for pipeline failures."""

    pass


class TransportError(PipelineError):
    """Raised when the durable channel store stays unreachable after retries."""

    pass


class MessageDecodeError(PipelineError):
    """Raised when a channel payload cannot be deserialized."""

    pass


class JobNotFoundError(PipelineError):
    """Raised when a message references a job that does not exist."""

    pass


# Driver-level failures worth another attempt, anything else is a bug
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (OperationalError, InterfaceError, DisconnectionError)

_retry_settings: dict[str, Any] = {
    "max_attempts": 3,
    "min_wait": 0.1,
    "max_wait": 2.0,
    "multiplier": 2.0,
}


def transport_retry(
    max_attempts: int | None = None,
    min_wait: float | None = None,
    max_wait: float | None = None,
):
    """Retry a coroutine on transient transport errors.

    Exhausted retries surface as TransportError so callers only deal with
    the pipeline taxonomy.
    """

    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            settings = _retry_settings
            retrying = AsyncRetrying(
                stop=stop_after_attempt(max_attempts or settings["max_attempts"]),
                wait=wait_exponential(
                    multiplier=settings["multiplier"],
                    min=settings["min_wait"] if min_wait is None else min_wait,
                    max=settings["max_wait"] if max_wait is None else max_wait,
                ),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                before_sleep=_log_retry,
            )
            try:
                async for attempt in retrying:
                    with attempt:
                        return await func(*args, **kwargs)
            except RetryError as e:
                cause = e.last_attempt.exception()
                raise TransportError(f"{func.__name__} failed after retries: {cause}") from cause

        return wrapper

    return decorator


def _log_retry(retry_state) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Transient transport failure, retrying",
        attempt=retry_state.attempt_number,
        error=str(error),
        error_type=type(error).__name__,
    )


def configure_transport_retry(
    max_attempts: int = 3, min_wait: float = 0.1, max_wait: float = 2.0, multiplier: float = 2.0
) -> None:
    """Configure global transport retry settings."""
    _retry_settings.update(
        {"max_attempts": max_attempts, "min_wait": min_wait, "max_wait": max_wait, "multiplier": multiplier}
    )
    logger.info("Transport retry configured", max_attempts=max_attempts, max_wait=max_wait)


def get_transport_retry_status() -> dict[str, Any]:
    """Get current transport retry settings."""
    return dict(_retry_settings)
