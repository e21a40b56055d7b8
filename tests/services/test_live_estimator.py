"""
Tests for the debounced live estimator.
"""

import asyncio

import pytest

from teleflow.schemas.segment import SegmentCriteria
from teleflow.services.segments import EstimateResult, LiveEstimator


def tier_criteria(tier: str) -> SegmentCriteria:
    return SegmentCriteria(tier=tier)


class FakeEstimate:
    """Estimate function with per-criteria latency and a call log."""

    def __init__(self, delays=None, swallow_cancel=False):
        self.delays = delays or {}
        self.swallow_cancel = swallow_cancel
        self.calls = []

    async def __call__(self, criteria: SegmentCriteria) -> EstimateResult:
        self.calls.append(criteria.tier)
        try:
            await asyncio.sleep(self.delays.get(criteria.tier, 0))
        except asyncio.CancelledError:
            if not self.swallow_cancel:
                raise
        return EstimateResult(count=len(criteria.tier), strategy="pushdown")


class TestDebounce:
    @pytest.mark.asyncio
    async def test_rapid_edits_yield_one_estimate_for_the_last(self):
        estimate = FakeEstimate()
        live = LiveEstimator(estimate, debounce_seconds=0.05)

        live.update(tier_criteria("Gold"))
        live.update(tier_criteria("Silver"))
        live.update(tier_criteria("Platinum"))
        state = await live.wait()

        assert estimate.calls == ["Platinum"]
        assert live.completed == 1
        assert state.count == len("Platinum")
        assert state.loading is False
        assert state.generation == 3

    @pytest.mark.asyncio
    async def test_loading_from_schedule_until_result(self):
        live = LiveEstimator(FakeEstimate(), debounce_seconds=0.01)

        live.update(tier_criteria("Gold"))
        assert live.state.loading is True

        await live.wait()
        assert live.state.loading is False
        assert live.state.count == 4


class TestLastRequestWins:
    @pytest.mark.asyncio
    async def test_slow_older_estimate_never_overwrites_newer(self):
        # Gold ignores cancellation, so its query still returns a (stale) result
        estimate = FakeEstimate(delays={"Gold": 0.2, "Crown": 0.0}, swallow_cancel=True)
        published = []
        live = LiveEstimator(estimate, debounce_seconds=0.01, listener=published.append)

        live.update(tier_criteria("Gold"))
        await asyncio.sleep(0.05)  # Gold is now in flight
        live.update(tier_criteria("Crown"))
        await live.wait()
        await asyncio.sleep(0.3)  # let the stale Gold query finish

        assert estimate.calls == ["Gold", "Crown"]
        finished = [s for s in published if not s.loading]
        assert [s.count for s in finished] == [len("Crown")]
        assert live.state.count == len("Crown")
        assert live.state.generation == 2

    @pytest.mark.asyncio
    async def test_failure_is_error_state_not_zero(self):
        async def failing(criteria):
            raise RuntimeError("store unavailable")

        live = LiveEstimator(failing, debounce_seconds=0.01)
        live.update(tier_criteria("Gold"))
        state = await live.wait()

        assert state.count is None
        assert state.error == "store unavailable"
        assert state.loading is False

    @pytest.mark.asyncio
    async def test_close_cancels_pending_estimate(self):
        estimate = FakeEstimate()
        live = LiveEstimator(estimate, debounce_seconds=0.5)

        live.update(tier_criteria("Gold"))
        await live.close()
        await asyncio.sleep(0.01)

        assert estimate.calls == []
