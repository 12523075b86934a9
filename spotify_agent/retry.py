import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from .errors import FailureKind, SpotifyError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff settings (delays in seconds)."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RetryPolicy":
        config = config or {}
        return cls(
            max_retries=int(config.get("spotify_max_retries", cls.max_retries)),
            base_delay=float(config.get("spotify_base_delay", cls.base_delay)),
            max_delay=float(config.get("spotify_max_delay", cls.max_delay)),
            backoff_factor=float(config.get("spotify_backoff_factor", cls.backoff_factor)),
        )


DEFAULT_RETRY_POLICY = RetryPolicy()


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one attempt: either a value or the exception it failed with."""

    value: Optional[T] = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> "Outcome[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[FailureKind]:
        """Failure kind for classified errors, None for success or unclassified errors."""
        if isinstance(self.error, SpotifyError):
            return self.error.kind
        return None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


async def attempt(operation: Operation[T]) -> Outcome[T]:
    """Run operation once and capture its result as an Outcome.

    CancelledError is a BaseException and is never captured.
    """
    try:
        return Outcome.success(await operation())
    except Exception as e:
        return Outcome.failure(e)


def compute_delay(policy: RetryPolicy, attempt_index: int) -> float:
    return min(policy.base_delay * (policy.backoff_factor ** attempt_index), policy.max_delay)


async def _wait(delay: float, abort: Optional[asyncio.Event], sleep: Sleep) -> bool:
    """Wait for delay seconds; return True if abort fired first."""
    if abort is None:
        await sleep(delay)
        return False
    if abort.is_set():
        return True
    try:
        await asyncio.wait_for(abort.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


async def retry_outcome(
    operation: Operation[T],
    policy: Optional[RetryPolicy] = None,
    *,
    abort: Optional[asyncio.Event] = None,
    sleep: Sleep = asyncio.sleep,
) -> Outcome[T]:
    """Like retry_with_backoff() but returns the final Outcome instead of raising."""

    policy = policy or DEFAULT_RETRY_POLICY
    outcome: Outcome[T] = Outcome.failure(RuntimeError("operation was never attempted"))

    for index in range(policy.max_retries + 1):
        outcome = await attempt(operation)
        if outcome.ok:
            return outcome

        if index == policy.max_retries:
            break

        delay = compute_delay(policy, index)
        logger.warning(
            "Attempt %d failed (%s), retrying in %.1fs...",
            index + 1,
            outcome.kind.value if outcome.kind else type(outcome.error).__name__,
            delay,
        )
        if await _wait(delay, abort, sleep):
            logger.info("Retry aborted after attempt %d", index + 1)
            break

    return outcome


async def retry_with_backoff(
    operation: Operation[T],
    policy: Optional[RetryPolicy] = None,
    *,
    abort: Optional[asyncio.Event] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run operation, retrying any failure with exponential backoff.

    total attempts = policy.max_retries + 1. The failure of the last attempt
    is re-raised unchanged. Setting abort stops further attempts and
    re-raises the most recent failure.
    """

    outcome = await retry_outcome(operation, policy, abort=abort, sleep=sleep)
    return outcome.unwrap()
