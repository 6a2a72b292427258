# device_warnings/services/processor.py
"""
Notification processor.

Owns the periodic jobs: the dispatcher tick and the retention sweep. Both
run as asyncio tasks decoupled from request handling, so dispatch latency is
bounded by the tick interval rather than by ingestion traffic.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from device_warnings.core.config import DISPATCH_INTERVAL_SECONDS, SWEEP_INTERVAL_SECONDS
from device_warnings.core.timeutil import utcnow
from .dispatcher import NotificationDispatcher, DispatchReport
from .data_retention import RetentionSweeper

logger = logging.getLogger(__name__)


class NotificationProcessor:
    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        sweeper: RetentionSweeper,
        dispatch_interval: float = DISPATCH_INTERVAL_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    ):
        self.dispatcher = dispatcher
        self.sweeper = sweeper
        self.dispatch_interval = dispatch_interval
        self.sweep_interval = sweep_interval
        self._tasks: Dict[str, asyncio.Task] = {}
        self.started_at: Optional[datetime] = None
        self.last_dispatch: Optional[DispatchReport] = None
        self.last_sweep: Optional[Dict[str, Any]] = None

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        """Start all periodic jobs."""
        if self.is_running:
            logger.warning("Notification processor is already running")
            return

        self._tasks = {
            "dispatch": asyncio.create_task(
                self._every(self.dispatch_interval, self._dispatch_once, "dispatch")
            ),
            "retention": asyncio.create_task(
                self._every(self.sweep_interval, self._sweep_once, "retention")
            ),
        }
        self.started_at = utcnow()
        logger.info(
            "Notification processor started (dispatch every %gs, retention every %gs)",
            self.dispatch_interval, self.sweep_interval,
        )

    async def stop(self) -> None:
        """Stop all periodic jobs and wait for them to finish."""
        if not self.is_running:
            logger.warning("Notification processor is not running")
            return

        tasks: List[asyncio.Task] = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = {}
        self.started_at = None
        logger.info("Notification processor stopped")

    async def _every(self, interval: float, job: Callable[[], Awaitable[None]], name: str) -> None:
        while True:
            try:
                await job()
            except Exception:
                logger.exception("Error in %s job", name)
            await asyncio.sleep(interval)

    async def _dispatch_once(self) -> None:
        report = await self.dispatcher.tick()
        if report is not None:
            self.last_dispatch = report

    async def _sweep_once(self) -> None:
        results = await self.sweeper.sweep()
        if results is not None:
            self.last_sweep = results

    async def process_now(self) -> Optional[DispatchReport]:
        """Force one dispatch pass immediately."""
        logger.info("Force processing notifications")
        report = await self.dispatcher.tick()
        if report is not None:
            self.last_dispatch = report
        return report

    def status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "jobs": sorted(self._tasks),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "dispatch_interval_seconds": self.dispatch_interval,
            "sweep_interval_seconds": self.sweep_interval,
            "tick_in_progress": self.dispatcher.is_running,
            "last_dispatch": self.last_dispatch.as_dict() if self.last_dispatch else None,
            "last_sweep": self.last_sweep,
        }
