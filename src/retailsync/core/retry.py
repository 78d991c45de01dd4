"""
Bounded exponential-backoff retry for async steps.

Unlike a decorator that re-raises on exhaustion, ``run_with_retry`` always
returns a ``RetryResult`` so scheduler jobs can record a failed cycle and
carry on with the next one.

Backoff: after failed attempt ``n`` (counted from 1) the runner waits
``base_delay * 2 ** n`` seconds, i.e. 2s, 4s, ... with the default base.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryState:
    attempt: int
    max_attempts: int
    last_error: Optional[BaseException] = None

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


@dataclass
class RetryResult(Generic[T]):
    """Uniform result of a retried step."""

    ok: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    return base_delay * (2 ** attempt)


async def run_with_retry(
    step: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    label: Optional[str] = None,
) -> RetryResult[T]:
    """
    Await ``step`` until it succeeds or ``max_attempts`` is reached.

    Every ``Exception`` is retried the same way; callers that need to treat
    some errors as permanent must filter them before calling this.

    Args:
        step: Zero-argument coroutine function performing the fallible work.
        max_attempts: Total number of invocations allowed (>= 1).
        base_delay: Backoff unit in seconds.
        sleep: Awaitable sleep, injectable for tests.
        label: Name used in log lines; defaults to the step's ``__name__``.

    Returns:
        RetryResult with ``ok=True`` and the step's value, or ``ok=False``
        and the last error once attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    name = label or getattr(step, "__name__", "step")
    state = RetryState(attempt=0, max_attempts=max_attempts)

    while True:
        state.attempt += 1
        logger.info("%s: attempt %d/%d", name, state.attempt, max_attempts)
        try:
            value = await step()
        except Exception as exc:
            state.last_error = exc
            if state.exhausted:
                logger.error(
                    "%s failed after %d attempts: %s", name, max_attempts, exc
                )
                return RetryResult(ok=False, error=exc, attempts=state.attempt)

            wait_time = backoff_delay(state.attempt, base_delay)
            logger.warning(
                "%s attempt %d/%d failed, retrying in %.1fs: %s",
                name,
                state.attempt,
                max_attempts,
                wait_time,
                exc,
            )
            await sleep(wait_time)
        else:
            return RetryResult(ok=True, value=value, attempts=state.attempt)
