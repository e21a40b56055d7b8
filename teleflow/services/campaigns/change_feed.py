"""
Change Feed

In-process publish/subscribe for campaign log inserts. Every published event
is delivered to every subscriber of its topic; filtering is the subscriber's
job. Callbacks run as tasks, so a slow subscriber never blocks publishing.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Set

from teleflow.schemas.campaign import ConversionEvent

logger = logging.getLogger(__name__)

Callback = Callable[[ConversionEvent], Awaitable[None]]

CAMPAIGN_LOGS_TOPIC = "campaign_logs"


@dataclass(frozen=True)
class Subscription:
    topic: str
    key: str


class ChangeFeed:
    """Broadcast feed keyed by topic and subscriber key."""

    def __init__(self):
        self._subscribers: Dict[str, Dict[str, Callback]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, topic: str, key: str, callback: Callback) -> Subscription:
        """Register ``callback`` under ``key``; re-subscribing replaces it."""
        self._subscribers.setdefault(topic, {})[key] = callback
        logger.debug("Change feed subscription added: %s/%s", topic, key)
        return Subscription(topic=topic, key=key)

    def unsubscribe(self, topic: str, key: str) -> bool:
        """Remove a subscription. Unknown keys are ignored."""
        removed = self._subscribers.get(topic, {}).pop(key, None) is not None
        if removed:
            logger.debug("Change feed subscription removed: %s/%s", topic, key)
        return removed

    def is_subscribed(self, topic: str, key: str) -> bool:
        return key in self._subscribers.get(topic, {})

    def subscribers(self, topic: str) -> List[str]:
        return list(self._subscribers.get(topic, {}))

    def publish(self, event: ConversionEvent, topic: str = CAMPAIGN_LOGS_TOPIC) -> int:
        """Deliver ``event`` to every subscriber of ``topic``. Returns the fan-out."""
        callbacks = list(self._subscribers.get(topic, {}).values())
        for callback in callbacks:
            task = asyncio.create_task(self._deliver(callback, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return len(callbacks)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (tests, shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
        self._subscribers.clear()

    @staticmethod
    async def _deliver(callback: Callback, event: ConversionEvent) -> None:
        try:
            await callback(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Change feed subscriber failed",
                extra={"campaign_id": event.campaign_id, "error": str(e)},
            )
