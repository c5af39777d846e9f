"""Bounded polling for results that converge eventually.

A :class:`ConvergencePoller` moves through three states::

    PENDING --(result converged)--> CONVERGED
    PENDING --(budget or timeout spent)--> EXHAUSTED

It calls ``fn`` at most ``attempts`` times, sleeping ``interval`` seconds
between calls, and the whole run is cut off after ``timeout`` seconds. An
exhausted poller raises :class:`NotYetConvergedError`; cancelling the calling
task cancels the poller.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .errors import NotYetConvergedError
from .utils.retry import schedule_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollState(str, Enum):
    PENDING = "pending"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"


class ConvergencePoller(Generic[T]):
    """Retries ``fn`` until ``is_converged`` accepts its result."""

    def __init__(
        self,
        fn: Callable[[], Awaitable[T]],
        attempts: int = 10,
        interval: float = 0.25,
        timeout: Optional[float] = 30.0,
        is_converged: Callable[[T], bool] = bool,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.fn = fn
        self.attempts = attempts
        self.interval = interval
        self.timeout = timeout
        self.is_converged = is_converged
        self.state = PollState.PENDING
        self.attempts_made = 0
        self.result: Optional[T] = None

    async def run(self) -> T:
        if self.state is not PollState.PENDING:
            raise RuntimeError(f"poller already {self.state.value}")
        try:
            return await asyncio.wait_for(self._loop(), self.timeout)
        except asyncio.TimeoutError:
            self.state = PollState.EXHAUSTED
            raise NotYetConvergedError(
                f"not converged within {self.timeout}s after {self.attempts_made} attempt(s)",
                attempts=self.attempts_made,
            ) from None

    async def _loop(self) -> T:
        for attempt in range(1, self.attempts + 1):
            self.attempts_made = attempt
            self.result = await self.fn()
            if self.is_converged(self.result):
                self.state = PollState.CONVERGED
                logger.debug(f"Converged after {attempt} attempt(s)")
                return self.result
            logger.debug(f"Attempt {attempt}/{self.attempts} not converged")
            if attempt < self.attempts:
                await schedule_retry(attempt, self.interval)
        self.state = PollState.EXHAUSTED
        raise NotYetConvergedError(
            f"not converged after {self.attempts} attempt(s)", attempts=self.attempts
        )


async def poll_until_converged(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 10,
    interval: float = 0.25,
    timeout: Optional[float] = 30.0,
    is_converged: Callable[[T], bool] = bool,
) -> T:
    """Run a :class:`ConvergencePoller` and return the converged result."""
    poller = ConvergencePoller(fn, attempts, interval, timeout, is_converged)
    return await poller.run()
