"""
Rate-limit retry and backoff policy shared by every platform adapter

Each attempt is classified as one of four outcomes:

    SUCCESS       -> state SUCCEEDED, result returned
    RATE_LIMITED  -> state BACKOFF, sleep min(base^(attempt+1), cap), retry
                     (after max_retries backoffs: state EXHAUSTED, RateLimitExceeded)
    AUTH_ERROR    -> surfaced immediately, never retried
    OTHER_ERROR   -> surfaced immediately

With the defaults (base 3, cap 900s, 6 retries) the waits are
3, 9, 27, 81, 243 and 729 seconds; the 7th rate-limited response is terminal.

Sleeping goes through an injectable coroutine (``asyncio.sleep`` by default)
so waits never block other work and tests can run instantly.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..exceptions import AuthError, RateLimited, RateLimitExceeded
from .logger import get_logger


logger = get_logger(__name__)

THROTTLE_STATUS = 429

# Body fragments served by platforms that throttle with a normal-looking page
THROTTLE_SIGNATURES = (
    "unusual traffic",
    "automated queries",
    "automated traffic",
    "automated requests",
)


class Outcome(Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    AUTH_ERROR = "auth_error"
    OTHER_ERROR = "other_error"


class RetryState(Enum):
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    EXHAUSTED = "exhausted"
    SUCCEEDED = "succeeded"


def is_throttling_signal(status: Optional[int] = None, text: Optional[str] = None) -> bool:
    """
    Detect a throttling response

    Args:
        status: HTTP status code if known
        text: Response body or error message if known

    Returns:
        True for the reserved throttling status or a known "automated traffic" signature
    """
    if status == THROTTLE_STATUS:
        return True
    if text:
        lowered = text.lower()
        return any(signature in lowered for signature in THROTTLE_SIGNATURES)
    return False


def classify(error: Optional[BaseException]) -> Outcome:
    """Map the exception raised by an attempt (or None) to its outcome"""
    if error is None:
        return Outcome.SUCCESS
    if isinstance(error, RateLimited):
        return Outcome.RATE_LIMITED
    if isinstance(error, AuthError):
        return Outcome.AUTH_ERROR
    return Outcome.OTHER_ERROR


@dataclass
class BackoffPolicy:
    """
    Bounded exponential backoff

    Attributes:
        base: Exponent base in seconds
        cap: Upper bound for a single wait in seconds
        max_retries: Number of backoffs before giving up
    """
    base: int = 3
    cap: int = 900
    max_retries: int = 6

    def delay(self, attempt: int) -> float:
        """Wait before retrying after the given zero-based attempt"""
        return min(self.base ** (attempt + 1), self.cap)


class RateLimitRetry:
    """
    Retry executor for one platform client

    Not shared between clients: ``state`` and ``attempt`` describe the call
    currently in flight.
    """

    def __init__(
        self,
        policy: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        name: str = "request"
    ):
        self.policy = policy or BackoffPolicy()
        self.sleep = sleep
        self.name = name
        self.state = RetryState.ATTEMPTING
        self.attempt = 0

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Run ``func`` until it succeeds, fails for good or exhausts the retries

        Args:
            func: Coroutine function raising RateLimited/AuthError/other errors
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            Whatever func returns on success

        Raises:
            RateLimitExceeded: After max_retries backoffs
            AuthError: Immediately on an authentication failure
            Exception: Any other error raised by func, unchanged
        """
        self.attempt = 0
        self.state = RetryState.ATTEMPTING

        while True:
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                outcome = classify(e)
                if outcome is not Outcome.RATE_LIMITED:
                    raise

                if self.attempt >= self.policy.max_retries:
                    self.state = RetryState.EXHAUSTED
                    logger.error(
                        f"{self.name}: still rate limited after {self.attempt} retries, giving up"
                    )
                    raise RateLimitExceeded(
                        f"Rate limit retries exhausted for {self.name}",
                        attempts=self.attempt + 1,
                        details=e.details,
                        payload=e.payload,
                    ) from e

                self.state = RetryState.BACKOFF
                wait = self.policy.delay(self.attempt)
                logger.warning(f"Rate limited on {self.name}, waiting {wait} seconds...")
                await self.sleep(wait)
                self.attempt += 1
                self.state = RetryState.ATTEMPTING
                continue

            self.state = RetryState.SUCCEEDED
            return result
