"""Tests for bounded waits and stale-element retries."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from errors import ElementNotFound, StaleReference, WaitTimeout
from waits import retry_stale, wait_for_quiescence, wait_until


class TestWaitUntil:
    """Tests for wait_until."""

    @pytest.mark.asyncio
    async def test_returns_once_predicate_holds(self) -> None:
        """Polling stops at the first True."""
        predicate = AsyncMock(side_effect=[False, False, True])
        await wait_until(predicate, timeout_ms=500, poll_ms=1)
        assert predicate.await_count == 3

    @pytest.mark.asyncio
    async def test_times_out(self) -> None:
        """A predicate that never holds raises WaitTimeout naming the condition."""
        predicate = AsyncMock(return_value=False)
        with pytest.raises(WaitTimeout, match="range change"):
            await wait_until(predicate, timeout_ms=10, poll_ms=1, description="range change")


class TestWaitForQuiescence:
    """Tests for wait_for_quiescence."""

    @pytest.mark.asyncio
    async def test_returns_settled_snapshot(self) -> None:
        """The value returned is the one that stopped changing."""
        values = iter([1, 2, 3])

        async def snapshot() -> int:
            return next(values, 3)

        assert await wait_for_quiescence(snapshot, quiet_ms=5, timeout_ms=1000, poll_ms=1) == 3

    @pytest.mark.asyncio
    async def test_never_settles(self) -> None:
        """A widget that keeps changing times out."""
        counter = {"n": 0}

        async def snapshot() -> int:
            counter["n"] += 1
            return counter["n"]

        with pytest.raises(WaitTimeout):
            await wait_for_quiescence(snapshot, quiet_ms=50, timeout_ms=15, poll_ms=1)


class TestRetryStale:
    """Tests for retry_stale."""

    @pytest.mark.asyncio
    async def test_retries_stale_reference(self) -> None:
        """A re-rendered element is looked up again."""
        operation = AsyncMock(side_effect=[StaleReference("detached"), "ok"])
        assert await retry_stale(operation, attempts=3) == "ok"
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self) -> None:
        """The last StaleReference propagates."""
        operation = AsyncMock(side_effect=StaleReference("detached"))
        with pytest.raises(StaleReference):
            await retry_stale(operation, attempts=2)
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self) -> None:
        """Only stale references are retried."""
        operation = AsyncMock(side_effect=ElementNotFound("gone"))
        with pytest.raises(ElementNotFound):
            await retry_stale(operation, attempts=3)
        assert operation.await_count == 1
