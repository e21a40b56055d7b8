"""
Live Estimator - debounced, last-request-wins estimates for the builder.

Each ``update()`` bumps a generation counter, cancels whatever estimate is
pending or in flight, and schedules a new one after the quiescence window.
A finished estimate only publishes when its generation is still current, so
a slow older query can never overwrite a newer result.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from teleflow.config import settings
from teleflow.schemas.segment import LiveEstimateState, SegmentCriteria
from teleflow.services.segments.estimator import EstimateResult

logger = logging.getLogger(__name__)

EstimateFn = Callable[[SegmentCriteria], Awaitable[EstimateResult]]
Listener = Callable[[LiveEstimateState], None]


class LiveEstimator:
    """Interactive wrapper around a criteria estimate function."""

    def __init__(
        self,
        estimate_fn: EstimateFn,
        debounce_seconds: Optional[float] = None,
        listener: Optional[Listener] = None,
    ):
        self._estimate_fn = estimate_fn
        self.debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else settings.ESTIMATE_DEBOUNCE_MS / 1000
        )
        self._listener = listener
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self.state = LiveEstimateState()
        self.updates: asyncio.Queue[LiveEstimateState] = asyncio.Queue()
        self.completed = 0

    @property
    def generation(self) -> int:
        return self._generation

    def update(self, criteria: SegmentCriteria) -> int:
        """Schedule an estimate for ``criteria``; supersedes any earlier request."""
        self._generation += 1
        generation = self._generation
        if self._task is not None and not self._task.done():
            self._task.cancel()

        self._publish(self.state.model_copy(update={"loading": True, "generation": generation}))
        self._task = asyncio.create_task(self._run(criteria, generation))
        return generation

    async def wait(self) -> LiveEstimateState:
        """Wait until the latest scheduled estimate has settled."""
        while self._task is not None and not self._task.done():
            try:
                await asyncio.shield(self._task)
            except asyncio.CancelledError:
                # superseded; a newer task is now current
                if asyncio.current_task().cancelling():
                    raise
        return self.state

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _run(self, criteria: SegmentCriteria, generation: int) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if generation != self._generation:
            return

        try:
            result = await self._estimate_fn(criteria)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Live estimate failed: %s", e)
            result = EstimateResult(count=None, error=str(e))

        if generation != self._generation:
            logger.debug("Discarding stale estimate for generation %d", generation)
            return

        self.completed += 1
        self._publish(
            LiveEstimateState(
                count=result.count,
                loading=False,
                error=result.error,
                generation=generation,
            )
        )

    def _publish(self, state: LiveEstimateState) -> None:
        self.state = state
        self.updates.put_nowait(state)
        if self._listener is not None:
            self._listener(state)
