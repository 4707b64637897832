"""SiteWalker Retry/Backoff Engine.

Re-invokes a fallible async unit with exponentially growing delays and
re-raises the last failure unchanged.

Retrying a UI action is not idempotent: a retried unit may click or submit
again. Units must either re-check page state before acting or be acceptable
with at-least-once side effects. That is the caller's responsibility.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sitewalker.engine.protocols import ActionUnit

logger = logging.getLogger("sitewalker.engine.retry")

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """How many times to attempt a unit and how long to back off between tries."""

    max_attempts: int = 3
    base_delay_ms: int = 1_000

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")

    def delay_ms(self, attempt: int) -> int:
        """Delay after failed attempt ``attempt`` (1-based): base * 2**(attempt-1)."""
        return self.base_delay_ms * 2 ** (attempt - 1)

    def total_delay_ms(self) -> int:
        """Upper bound on time spent sleeping if every attempt fails."""
        return sum(self.delay_ms(k) for k in range(1, self.max_attempts))


def _log(level: int, msg: str, *args: object) -> None:
    # Logging must never change the retry outcome.
    try:
        logger.log(level, msg, *args)
    except Exception:
        pass


class Retrier:
    """Applies a RetryPolicy to async units."""

    def __init__(self, policy: RetryPolicy | None = None, sleep: SleepFn | None = None) -> None:
        self._policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def run(self, unit: ActionUnit[T], label: str | None = None) -> T:
        """Run ``unit`` until it succeeds or attempts are exhausted.

        Returns the unit's value. On the final failed attempt the exception
        from that attempt is re-raised as-is.
        """
        name = label or getattr(unit, "__name__", "unit")
        max_attempts = self._policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                result = await unit()
            except Exception as exc:
                if attempt == max_attempts:
                    _log(
                        logging.WARNING,
                        "%s failed on final attempt %d/%d: %s",
                        name, attempt, max_attempts, exc,
                    )
                    raise
                delay = self._policy.delay_ms(attempt)
                _log(
                    logging.INFO,
                    "%s attempt %d/%d failed (%s), retrying in %dms...",
                    name, attempt, max_attempts, exc, delay,
                )
                await self._sleep(delay / 1000)
                continue

            if attempt > 1:
                _log(logging.INFO, "%s succeeded on attempt %d/%d", name, attempt, max_attempts)
            else:
                _log(logging.DEBUG, "%s succeeded", name)
            return result

        # range() above always runs at least once and either returns or raises
        raise AssertionError("unreachable")


async def retry_with_backoff(
    unit: ActionUnit[T],
    max_attempts: int = 3,
    base_delay_ms: int = 1_000,
    *,
    sleep: SleepFn | None = None,
    label: str | None = None,
) -> T:
    """Convenience wrapper: ``Retrier(RetryPolicy(max_attempts, base_delay_ms)).run(unit)``."""
    policy = RetryPolicy(max_attempts=max_attempts, base_delay_ms=base_delay_ms)
    return await Retrier(policy, sleep=sleep).run(unit, label=label)
