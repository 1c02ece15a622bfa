"""
Connection retry utilities.

Provides exponential backoff for re-acquiring connections and the
classification that decides whether an error is worth retrying at all.
Only connection-level failures are retried; query errors (syntax,
constraint violations) propagate immediately.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass

import asyncpg
from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)

# Lower-cased fragments of driver messages that indicate a broken connection
CONNECTION_ERROR_PHRASES: tuple[str, ...] = (
    "connection terminated",
    "connection closed",
    "connection timeout",
    "server closed the connection",
    "connection refused",
    "network error",
    "timeout expired",
    "connection lost",
    "connection reset",
    "connection was closed",
)

CONNECTION_ERROR_TYPES: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
)


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for connection retry behavior.

    The delay before retry ``n`` (1-based) is
    ``min(initial_delay * exponential_base ** (n - 1), max_delay)``.

    Attributes:
        max_retries: Maximum number of attempts
        initial_delay: Delay in seconds after the first failure
        max_delay: Cap on the delay in seconds
        exponential_base: Growth factor between attempts
        jitter: Fraction of delay to add as random jitter (0-1)
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}.")
        if self.initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {self.initial_delay}.")
        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})."
            )
        if self.exponential_base <= 1.0:
            raise ValueError(f"exponential_base must be > 1.0, got {self.exponential_base}.")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be between 0.0 and 1.0, got {self.jitter}.")


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Calculate the delay after a failed attempt.

    Args:
        attempt: The attempt that just failed (1-based)
        config: Retry configuration

    Returns:
        Delay in seconds

    Example:
        >>> config = RetryConfig()
        >>> [calculate_backoff(n, config) for n in (1, 2, 3, 4, 5)]
        [1.0, 2.0, 4.0, 8.0, 10.0]
    """
    delay = config.initial_delay * (config.exponential_base ** (attempt - 1))
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_range = delay * config.jitter
        delay += random.uniform(-jitter_range, jitter_range)  # nosec B311 - not crypto

    return max(0.0, delay)


def is_connection_error(error: BaseException | None) -> bool:
    """
    Decide whether an error means the connection (not the query) failed.

    SQLAlchemy wraps driver errors, so the check follows ``orig`` and
    ``__cause__`` down the chain.

    Args:
        error: The exception to classify

    Returns:
        True if the error should trigger a retry and pool recovery
    """
    seen: set[int] = set()
    while error is not None and id(error) not in seen:
        seen.add(id(error))
        if isinstance(error, DBAPIError) and error.connection_invalidated:
            return True
        if isinstance(error, CONNECTION_ERROR_TYPES):
            return True
        message = str(error).lower()
        if any(phrase in message for phrase in CONNECTION_ERROR_PHRASES):
            return True
        error = getattr(error, "orig", None) or error.__cause__
    return False


__all__ = [
    "CONNECTION_ERROR_PHRASES",
    "CONNECTION_ERROR_TYPES",
    "RetryConfig",
    "calculate_backoff",
    "is_connection_error",
]
