"""In-process scheduler for service plugin tasks.

- Each registered task gets its next fire time from its cron expression (croniter)
- Every tick runs the due tasks concurrently through ``PluginHost.run_task``
- A failed task is reported by the host and simply runs again at its next
  cron time; the scheduler itself never retries and never stops on task errors
- Exposed ``start()``/``stop()`` to run in the FastAPI lifespan
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import UTC, datetime

from croniter import croniter

from ..core.config import get_settings_instance
from .runtime import PluginHost, TaskDescriptor, TaskRunOutcome, TaskRunStatus

# In-memory per-process tick history for observability
# Stores the last 500 tick summaries: {"ts": iso8601, "due": n, "outcomes": [...]}
TICK_HISTORY: deque[dict] = deque(maxlen=500)

logger = logging.getLogger(__name__)


def next_fire_time(cron: str, after: datetime) -> datetime:
    return croniter(cron, after).get_next(datetime)


class PluginTaskScheduler:
    def __init__(self, host: PluginHost, *, interval_seconds: float | None = None):
        self.host = host
        if interval_seconds is None:
            interval_seconds = get_settings_instance().plugin_scheduler_interval_seconds
        self.interval_seconds = max(0.01, float(interval_seconds))
        self._next_run: dict[tuple[str, str], datetime] = {}
        self._task: asyncio.Task | None = None

    def next_run(self, plugin_id: str, task_name: str) -> datetime | None:
        return self._next_run.get((plugin_id, task_name))

    def due(self, now: datetime) -> list[TaskDescriptor]:
        """Tasks whose fire time has passed; their next fire time is advanced past ``now``.

        A task seen for the first time is only scheduled, not run.
        """
        due: list[TaskDescriptor] = []
        for descriptor in self.host.tasks():
            key = (descriptor.plugin_id, descriptor.name)
            scheduled = self._next_run.get(key)
            if scheduled is not None and scheduled <= now:
                due.append(descriptor)
            if scheduled is None or scheduled <= now:
                self._next_run[key] = next_fire_time(descriptor.cron, now)
        return due

    async def tick(self, now: datetime | None = None) -> list[TaskRunOutcome]:
        now = now or datetime.now(UTC)
        due = self.due(now)
        if not due:
            return []

        results = await asyncio.gather(
            *(self.host.run_task(d.plugin_id, d.name) for d in due),
            return_exceptions=True,
        )
        outcomes: list[TaskRunOutcome] = []
        for descriptor, result in zip(due, results, strict=True):
            if isinstance(result, BaseException):
                # run_task only raises for lookup errors, e.g. a plugin removed mid-tick
                logger.error(
                    "Plugins scheduler could not run %s/%s: %s", descriptor.plugin_id, descriptor.name, result
                )
                continue
            outcomes.append(result)

        failed = sum(1 for o in outcomes if o.status is TaskRunStatus.FAILED)
        logger.info("Plugins scheduler tick | due=%s ran=%s failed=%s", len(due), len(outcomes), failed)
        TICK_HISTORY.append(
            {"ts": now.isoformat(), "due": len(due), "outcomes": [o.to_dict() for o in outcomes]}
        )
        return outcomes

    async def _runner(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception as ex:
                logger.warning(f"Plugins scheduler tick failed: {ex}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._runner(), name="plugins:scheduler")
            logger.info("Plugins scheduler started (interval=%ss)", self.interval_seconds)
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            logger.info("Plugins scheduler stopped")
        self._task = None
