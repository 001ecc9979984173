"""Dispatch retries for remote command handlers.

The execution engine never retries a failed task. What a handler may
retry is the *dispatch* of its command when the transport fails before
an acknowledgment comes back: the broker is down, the worker agent is
restarting, a gateway answers 502. A command that ran and exited
non-zero is an outcome, and is never re-sent.

The preset is chosen with ``COMMAND_RETRY_PRESET``:

    none       one attempt (default)
    transient  3 retries, doubling from 2s, jittered, capped at 30s
    patient    5 retries, 10s more each time, capped at 60s
    fixed      3 retries, 5s apart
"""

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

import httpx
import structlog

logger = structlog.get_logger(__name__)


class Backoff(str, Enum):
    NONE = "none"
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


# Raised by the Celery, HTTP and local channels when no ack was received.
TRANSPORT_ERRORS = frozenset({
    "ConnectionError", "ConnectionRefusedError", "ConnectionResetError", "BrokenPipeError",
    "OperationalError",
    "TimeoutError",
    "ConnectError", "ConnectTimeout", "ReadTimeout", "WriteTimeout", "RemoteProtocolError",
})
RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})


def is_transport_error(error: BaseException) -> bool:
    """True when ``error`` means the command may never have reached the worker."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    return type(error).__name__ in TRANSPORT_ERRORS


@dataclass(frozen=True)
class RetryStrategy:
    """How often, and how far apart, a failed dispatch is re-sent."""

    backoff: Backoff = Backoff.NONE
    max_retries: int = 0
    delay: float = 0.0
    max_delay: float = 60.0
    jitter: float = 0.0  # +/- fraction of each delay

    def delay_before(self, retry: int) -> float:
        """Seconds to wait before retry number ``retry`` (1-based)."""
        seconds = self._capped(retry)
        if self.jitter:
            seconds += random.uniform(-1, 1) * seconds * self.jitter
        return round(max(seconds, 0.0), 3)

    def allows(self, retry: int, error: BaseException) -> bool:
        return retry <= self.max_retries and is_transport_error(error)

    def worst_case_seconds(self, attempt_timeout: float) -> float:
        """Longest one dispatch can take when every attempt times out."""
        waits = sum(
            self._capped(n) * (1 + self.jitter) for n in range(1, self.max_retries + 1)
        )
        return attempt_timeout * (self.max_retries + 1) + waits

    def _capped(self, retry: int) -> float:
        if self.backoff == Backoff.EXPONENTIAL:
            growth = 2 ** (retry - 1)
        elif self.backoff == Backoff.LINEAR:
            growth = retry
        elif self.backoff == Backoff.FIXED:
            growth = 1
        else:
            return 0.0
        return min(self.delay * growth, self.max_delay)


RETRY_PRESETS: dict[str, RetryStrategy] = {
    "none": RetryStrategy(),
    "transient": RetryStrategy(Backoff.EXPONENTIAL, max_retries=3, delay=2.0, max_delay=30.0, jitter=0.5),
    "patient": RetryStrategy(Backoff.LINEAR, max_retries=5, delay=10.0, max_delay=60.0),
    "fixed": RetryStrategy(Backoff.FIXED, max_retries=3, delay=5.0),
}


def get_retry_preset(name: str) -> RetryStrategy:
    try:
        return RETRY_PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown retry preset '{name}', expected one of {sorted(RETRY_PRESETS)}")


async def dispatch_with_retry(send: Callable[..., Awaitable], strategy: RetryStrategy, *args, **kwargs):
    """Await ``send(*args, **kwargs)``, re-sending after transport errors.

    Raises:
        The last error once the strategy allows no further retry.
    """
    retry = 0
    while True:
        try:
            return await send(*args, **kwargs)
        except Exception as e:
            retry += 1
            if not strategy.allows(retry, e):
                raise
            wait = strategy.delay_before(retry)
            logger.warning(
                "Dispatch failed, retrying",
                retry=retry,
                max_retries=strategy.max_retries,
                delay=wait,
                error=f"{type(e).__name__}: {e}",
            )
            await asyncio.sleep(wait)
