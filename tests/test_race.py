"""Unit tests for sitewalker.engine.race — RaceComposer and await_any_signal."""

from __future__ import annotations

import asyncio

import pytest

from sitewalker.engine.race import RaceComposer, SuccessSignal, await_any_signal
from sitewalker.engine.waiter import ConditionWaiter


def after(seconds: float, value):
    async def _op():
        await asyncio.sleep(seconds)
        return value

    return _op


# ---------------------------------------------------------------------------
# 1. RaceComposer.race
# ---------------------------------------------------------------------------

class TestRace:
    """race() returns on the first settle or the fallback, never raising for no match."""

    @pytest.mark.asyncio
    async def test_first_resolver_wins(self):
        result = await RaceComposer().race(
            {"slow": after(0.5, "slow"), "fast": after(0.01, "fast")},
            fallback_ms=1_000,
        )
        assert result.winner == "fast"
        assert result.value == "fast"
        assert result.matched
        assert not result.timed_out

    @pytest.mark.asyncio
    async def test_returns_promptly_after_first_settle(self):
        loop = asyncio.get_running_loop()
        start = loop.time()
        await RaceComposer().race({"a": after(0.01, True), "b": after(2.0, True)}, fallback_ms=2_000)
        assert loop.time() - start < 0.5

    @pytest.mark.asyncio
    async def test_negative_settle_ends_the_race(self):
        result = await RaceComposer().race(
            {"missing": after(0.01, None), "later": after(0.5, "found")},
            fallback_ms=1_000,
        )
        assert result.winner == "missing"
        assert result.value is None
        assert not result.matched

    @pytest.mark.asyncio
    async def test_fallback_elapses_without_raising(self):
        result = await RaceComposer().race({"never": after(5.0, True)}, fallback_ms=20)
        assert result.timed_out
        assert result.winner is None
        assert not result.matched

    @pytest.mark.asyncio
    async def test_fallback_uses_injected_sleep(self, recording_sleep):
        result = await RaceComposer(sleep=recording_sleep).race({"never": after(5.0, True)}, fallback_ms=5_000)
        assert result.timed_out
        assert recording_sleep.calls_ms == [5_000]

    @pytest.mark.asyncio
    async def test_losers_are_cancelled(self):
        cancelled = asyncio.Event()

        async def loser():
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        await RaceComposer().race({"winner": after(0.01, 1), "loser": loser}, fallback_ms=1_000)
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_member_exception_is_negative_not_raised(self):
        async def broken():
            raise RuntimeError("element detached")

        result = await RaceComposer().race({"broken": broken, "slow": after(1.0, True)}, fallback_ms=1_000)
        assert result.winner == "broken"
        assert isinstance(result.error, RuntimeError)
        assert not result.matched

    @pytest.mark.asyncio
    async def test_sequence_operations_named_by_function(self):
        async def confirmed():
            return "yes"

        result = await RaceComposer().race([confirmed], fallback_ms=100)
        assert result.winner == "confirmed"

    @pytest.mark.asyncio
    async def test_negative_fallback_rejected(self):
        with pytest.raises(ValueError):
            await RaceComposer().race({"a": after(0, 1)}, fallback_ms=-1)


# ---------------------------------------------------------------------------
# 2. Equivalent success signals
# ---------------------------------------------------------------------------

class TestAwaitAnySignal:
    """await_any_signal() races descriptors and runs on_match for the winner."""

    @pytest.mark.asyncio
    async def test_present_signal_wins_and_runs_on_match(self, page, config):
        button = page.add("#siNoCoverage")
        waiter = ConditionWaiter(page, config)

        async def click(handle):
            await handle.click()

        result = await await_any_signal(
            waiter,
            [
                SuccessSignal("attach", "#attachSiNoCoverage", timeout_ms=500, on_match=click),
                SuccessSignal("side-sheet", "#siNoCoverage", timeout_ms=500, on_match=click),
            ],
            fallback_ms=1_000,
        )
        assert result.winner == "side-sheet"
        assert result.matched
        assert button.clicks == 1

    @pytest.mark.asyncio
    async def test_nothing_found_proceeds(self, page, config):
        waiter = ConditionWaiter(page, config)
        result = await await_any_signal(
            waiter,
            [SuccessSignal("a", "#a", timeout_ms=500), SuccessSignal("b", "#b", timeout_ms=500)],
            fallback_ms=30,
        )
        assert result.timed_out
        assert not result.matched

    @pytest.mark.asyncio
    async def test_late_signal_seen_before_fallback(self, page, config):
        page.add("#confirmed", delay=0.02)
        waiter = ConditionWaiter(page, config)
        result = await await_any_signal(
            waiter,
            [SuccessSignal("confirmed", "#confirmed", timeout_ms=500)],
            fallback_ms=500,
        )
        assert result.winner == "confirmed"
        assert result.matched

    @pytest.mark.asyncio
    async def test_duplicate_signal_names_rejected(self, page, config):
        waiter = ConditionWaiter(page, config)
        with pytest.raises(ValueError, match="unique"):
            await await_any_signal(
                waiter, [SuccessSignal("x", "#a"), SuccessSignal("x", "#b")], fallback_ms=10
            )

    @pytest.mark.asyncio
    async def test_empty_signals_rejected(self, page, config):
        with pytest.raises(ValueError):
            await await_any_signal(ConditionWaiter(page, config), [], fallback_ms=10)
