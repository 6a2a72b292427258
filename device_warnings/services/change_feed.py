# device_warnings/services/change_feed.py
"""
Fire-and-forget fan-out of warning state changes to dashboards and audit
consumers.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Set

from device_warnings.schemas.warning import WarningChange

logger = logging.getLogger(__name__)

Subscriber = Callable[[WarningChange], Awaitable[None]]


class ChangeFeed:
    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def publish(self, changes: List[WarningChange]) -> None:
        """Schedule delivery of committed changes; never blocks the caller."""
        for change in changes:
            for subscriber in list(self._subscribers):
                task = asyncio.create_task(self._deliver(subscriber, change))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def _deliver(self, subscriber: Subscriber, change: WarningChange) -> None:
        try:
            await subscriber(change)
        except Exception:
            logger.exception(
                "Change feed subscriber failed for warning %s (%s)",
                change.warning_id, change.change_type.value,
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
