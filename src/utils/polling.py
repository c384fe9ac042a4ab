"""Bounded polling combinator.

``poll_until`` repeatedly awaits a probe until it reports a terminal
observation or the attempt budget is spent. Retrying is driven by tenacity on
the *result* only; exceptions raised by the probe propagate on first
occurrence. The sleep function is injected so tests can drive the loop with a
fake clock instead of real time.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_fixed

T = TypeVar("T")

AsyncSleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class PollOutcome(Generic[T]):
    """Last observation plus whether it was terminal."""

    value: T
    attempts: int
    terminal: bool


async def poll_until(
    probe: Callable[[int], Awaitable[T]],
    *,
    is_terminal: Callable[[T], bool],
    max_attempts: int,
    interval: float,
    sleep: AsyncSleep = asyncio.sleep,
    on_pending: Callable[[int, T], None] | None = None,
) -> PollOutcome[T]:
    """Await ``probe(attempt)`` up to ``max_attempts`` times.

    Stops at the first observation for which ``is_terminal`` is true. Between
    non-terminal observations the calling task is suspended for ``interval``
    seconds via ``sleep``; there is no sleep after the final attempt.
    ``on_pending`` fires before each sleep.
    """
    if max_attempts <= 0:
        raise ValueError("max_attempts must be greater than zero")
    if interval < 0:
        raise ValueError("interval must not be negative")

    attempts = 0

    async def _observe() -> T:
        nonlocal attempts
        attempts += 1
        return await probe(attempts)

    def _before_sleep(state: RetryCallState) -> None:
        if on_pending is not None and state.outcome is not None:
            on_pending(state.attempt_number, state.outcome.result())

    def _exhausted(state: RetryCallState) -> T:
        if state.outcome is None:
            raise RuntimeError("Polling stopped before any observation was made")
        return state.outcome.result()

    retrying = AsyncRetrying(
        sleep=sleep,
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda value: not is_terminal(value)),
        before_sleep=_before_sleep,
        retry_error_callback=_exhausted,
    )
    value = await retrying(_observe)
    return PollOutcome(value=value, attempts=attempts, terminal=is_terminal(value))


__all__ = ["AsyncSleep", "PollOutcome", "poll_until"]
