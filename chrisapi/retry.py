"""Opt-in retry with exponential backoff for callers of the client.

The client itself never retries. Callers that want a retry policy wrap
their own coroutines::

    @with_retry(CONSERVATIVE_RETRY)
    async def load_feeds(client):
        return await client.get_feeds()

A POST creates a new item each time it reaches the server, so failed POSTs
are only retried when ``retry_writes`` is set.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, FrozenSet, Optional

from .exceptions import RequestException

logger = logging.getLogger(__name__)

# Statuses a ChRIS deployment returns while overloaded or restarting
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

IDEMPOTENT_METHODS = frozenset({"GET", "PUT", "DELETE"})


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy: how often, how long to wait, and which failures.

    Policies are immutable so presets can be shared; derive variants with
    ``dataclasses.replace``.
    """

    max_attempts: int = 3

    # Delay before retry n is initial_delay * backoff_factor ** (n - 1), capped
    initial_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1

    # Overall budget in seconds, None for no limit
    max_retry_time: Optional[float] = None

    retry_on_timeout: bool = True
    retry_on_network_error: bool = True
    retry_on_status_codes: FrozenSet[int] = RETRYABLE_STATUS_CODES
    retry_writes: bool = False
    respect_retry_after_header: bool = True

    on_retry: Optional[Callable[[int, Exception, float], None]] = None
    on_give_up: Optional[Callable[[Exception], None]] = None

    def should_retry(self, exception: Exception) -> bool:
        """Whether a failure is worth another attempt."""
        if not isinstance(exception, RequestException):
            return False
        request = exception.request
        if request is not None and request.method not in IDEMPOTENT_METHODS and not self.retry_writes:
            return False
        if exception.timed_out:
            return self.retry_on_timeout
        if exception.response is None:
            return self.retry_on_network_error
        return exception.status_code in self.retry_on_status_codes

    def calculate_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Seconds to wait after failed attempt number ``attempt``."""
        if retry_after is not None and self.respect_retry_after_header:
            delay = retry_after
        else:
            delay = self.initial_delay * self.backoff_factor ** (attempt - 1)
        delay = min(delay, self.max_delay)

        if self.jitter and delay > 0:
            spread = delay * self.jitter_factor
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay


class RetryManager:
    """Runs coroutine functions under a ``RetryConfig``."""

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    @staticmethod
    def _retry_after(exception: Exception) -> Optional[float]:
        # Only the delta-seconds form of Retry-After is honored
        response = getattr(exception, "response", None)
        if response is None:
            return None
        headers = {name.lower(): value for name, value in response.headers.items()}
        value = headers.get("retry-after")
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    def _give_up(self, exception: Exception) -> None:
        if self.config.on_give_up:
            self.config.on_give_up(exception)

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await ``func(*args, **kwargs)``, retrying retryable failures."""
        if self.config.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        started = time.monotonic()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if attempt >= self.config.max_attempts or not self.config.should_retry(e):
                    self._give_up(e)
                    raise

                delay = self.config.calculate_delay(attempt, self._retry_after(e))
                budget = self.config.max_retry_time
                if budget is not None and time.monotonic() - started + delay > budget:
                    self._give_up(e)
                    raise

                if self.config.on_retry:
                    self.config.on_retry(attempt, e, delay)
                logger.info("Attempt %d failed (%s), retrying in %.2fs", attempt, e, delay)
                await asyncio.sleep(delay)


def with_retry(config: Optional[RetryConfig] = None):
    """Decorator running a coroutine function through a ``RetryManager``."""
    manager = RetryManager(config)

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await manager.execute(func, *args, **kwargs)
        return wrapper
    return decorator


NO_RETRY = RetryConfig(max_attempts=1)

CONSERVATIVE_RETRY = RetryConfig(max_attempts=3, max_delay=10.0)
