"""SiteWalker Race Composer -- proceed on the first of several equivalent signals.

Different sites (or different states of the same site) signal one semantic
event through mutually exclusive DOM states: a confirmation banner, a
protection-plan dialog, a redirect. Racing the candidates is cheaper than
polling them in turn. Nothing matching is not a failure: the race returns
and the workflow moves on.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from sitewalker.engine.protocols import ElementState
from sitewalker.engine.waiter import ConditionWaiter
from sitewalker.models import DEFAULT_RACE_FALLBACK_MS

logger = logging.getLogger("sitewalker.engine.race")

_FALLBACK = "__fallback__"


@dataclasses.dataclass
class RaceResult:
    """Which member settled first, and with what."""

    winner: str | None
    value: Any = None
    timed_out: bool = False
    error: BaseException | None = None

    @property
    def matched(self) -> bool:
        """True when a member settled with a positive (truthy) value."""
        return not self.timed_out and self.error is None and bool(self.value)


@dataclasses.dataclass
class SuccessSignal:
    """One of several equivalent ways a site can signal the same event.

    ``on_match`` runs with the element handle once the signal is seen, e.g.
    to click a "No thanks" button that appeared.
    """

    name: str
    descriptor: str
    state: str | ElementState = ElementState.VISIBLE
    timeout_ms: int = DEFAULT_RACE_FALLBACK_MS
    on_match: Callable[[Any], Awaitable[Any]] | None = None


class RaceComposer:
    """Runs independent read-only waits concurrently; returns on the first settle."""

    def __init__(self, sleep: Callable[[float], Awaitable[None]] | None = None) -> None:
        self._sleep = sleep or asyncio.sleep

    async def race(
        self,
        operations: Mapping[str, Callable[[], Awaitable[Any]]]
        | Sequence[Callable[[], Awaitable[Any]]],
        fallback_ms: int,
    ) -> RaceResult:
        """Race ``operations`` against a fallback timer of ``fallback_ms``.

        Returns as soon as any operation settles, positively or negatively,
        or when the fallback elapses. Remaining operations are cancelled.
        A member that raises counts as a negative settle; this never raises
        because no member found its target.
        """
        if fallback_ms < 0:
            raise ValueError(f"fallback_ms must be >= 0, got {fallback_ms}")
        named = self._named(operations)

        tasks: dict[asyncio.Task[Any], str] = {}
        for name, factory in named:
            tasks[asyncio.ensure_future(factory())] = name
        fallback = asyncio.ensure_future(self._sleep(fallback_ms / 1000))
        tasks[fallback] = _FALLBACK

        try:
            done, _ = await asyncio.wait(list(tasks), return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        # Several may finish in the same loop tick; declared order breaks ties.
        order = [name for name, _ in named]
        settled = sorted(
            (t for t in done if tasks[t] != _FALLBACK),
            key=lambda t: order.index(tasks[t]),
        )
        if not settled:
            logger.info("No signal settled within %dms, proceeding anyway", fallback_ms)
            return RaceResult(winner=None, timed_out=True)

        first = settled[0]
        name = tasks[first]
        if first.cancelled():
            return RaceResult(winner=name, value=None)
        exc = first.exception()
        if exc is not None:
            logger.warning("Race member '%s' failed: %s", name, exc)
            return RaceResult(winner=name, error=exc)
        value = first.result()
        logger.debug("Race won by '%s' (value=%r)", name, bool(value))
        return RaceResult(winner=name, value=value)

    @staticmethod
    def _named(
        operations: Mapping[str, Callable[[], Awaitable[Any]]]
        | Sequence[Callable[[], Awaitable[Any]]],
    ) -> list[tuple[str, Callable[[], Awaitable[Any]]]]:
        if isinstance(operations, Mapping):
            return list(operations.items())
        return [(getattr(op, "__name__", f"op{i}"), op) for i, op in enumerate(operations)]


async def await_any_signal(
    waiter: ConditionWaiter,
    signals: Sequence[SuccessSignal],
    fallback_ms: int,
    composer: RaceComposer | None = None,
) -> RaceResult:
    """Wait for whichever of several equivalent success signals appears first.

    Each signal waits on its own descriptor; a signal whose element shows up
    runs its ``on_match`` action before the race settles. A signal that
    times out settles negatively, which also ends the race.
    """
    if not signals:
        raise ValueError("await_any_signal requires at least one signal")
    names = [s.name for s in signals]
    if len(set(names)) != len(names):
        raise ValueError(f"Signal names must be unique: {names}")

    def _watch(signal: SuccessSignal) -> Callable[[], Awaitable[Any]]:
        async def _run() -> Any:
            handle = await waiter.wait_for(signal.descriptor, signal.state, signal.timeout_ms)
            if handle is not None and signal.on_match is not None:
                await signal.on_match(handle)
            return handle

        return _run

    composer = composer or RaceComposer()
    result = await composer.race({s.name: _watch(s) for s in signals}, fallback_ms)
    if result.matched:
        logger.info("Signal '%s' observed", result.winner)
    return result
