"""Debounced scheduling of change analyses and re-maps.

Each logical unit (a pull request, a repository's default branch) has at
most one task. A new notification for the same unit cancels the pending or
running task and replaces it, so rapid updates collapse into one run on
the latest revision. Cancelling a running analysis goes through the
pipeline's cleanup path.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from wirecheck.pipeline.models import ChangeEvent

logger = structlog.get_logger()


class UnitState(str, Enum):
    DEBOUNCING = "debouncing"
    RUNNING = "running"


@dataclass
class _Unit:
    event: ChangeEvent
    task: asyncio.Task[None]
    state: UnitState = UnitState.DEBOUNCING


@dataclass
class SchedulerStatus:
    pending: list[dict[str, Any]]
    completed: int
    superseded: int
    failed: int
    last_error: str | None


@dataclass
class UpdateScheduler:
    """Per-unit debounce with cancel-and-replace."""

    handler: Callable[[ChangeEvent], Awaitable[Any]]
    debounce_seconds: float = 30.0

    _units: dict[str, _Unit] = field(default_factory=dict, init=False)
    _completed: int = field(default=0, init=False)
    _superseded: int = field(default=0, init=False)
    _failed: int = field(default=0, init=False)
    _last_error: str | None = field(default=None, init=False)
    _stopping: bool = field(default=False, init=False)

    def notify(self, event: ChangeEvent) -> None:
        """Schedule ``event``, superseding any earlier event for the same unit."""
        if self._stopping:
            logger.warning("event_dropped_during_shutdown", unit=event.unit_key)
            return

        key = event.unit_key
        existing = self._units.get(key)
        if existing is not None and not existing.task.done():
            existing.task.cancel()
            self._superseded += 1
            logger.info(
                "analysis_superseded",
                unit=key,
                state=existing.state.value,
                previous=existing.event.ref,
                latest=event.ref,
            )

        loop = asyncio.get_running_loop()
        task = loop.create_task(self._debounced_run(key, event), name=f"wirecheck:{key}")
        task.add_done_callback(functools.partial(self._forget, key))
        self._units[key] = _Unit(event=event, task=task)
        logger.debug("event_scheduled", unit=key, debounce_sec=self.debounce_seconds)

    async def _debounced_run(self, key: str, event: ChangeEvent) -> None:
        try:
            await asyncio.sleep(self.debounce_seconds)
            unit = self._units.get(key)
            if unit is not None and unit.task is asyncio.current_task():
                unit.state = UnitState.RUNNING
            await self.handler(event)
            self._completed += 1
        except asyncio.CancelledError:
            logger.debug("scheduled_run_cancelled", unit=key)
            raise
        except Exception as e:
            self._failed += 1
            self._last_error = str(e)
            logger.error("scheduled_run_failed", unit=key, error=str(e))

    def _forget(self, key: str, task: asyncio.Task[None]) -> None:
        # Runs for tasks cancelled before their first step too
        unit = self._units.get(key)
        if unit is not None and unit.task is task:
            del self._units[key]

    def cancel(self, unit_key: str) -> bool:
        """Cancel a pending or running unit. Returns False if none exists."""
        unit = self._units.get(unit_key)
        if unit is None or unit.task.done():
            return False
        unit.task.cancel()
        return True

    async def drain(self) -> None:
        """Wait until no unit is pending or running."""
        while self._units:
            tasks = [u.task for u in self._units.values()]
            await asyncio.gather(*tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Cancel everything and wait for cleanup to finish."""
        self._stopping = True
        tasks = [u.task for u in self._units.values() if not u.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._units.clear()
        logger.info("scheduler_stopped", cancelled=len(tasks))

    @property
    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            pending=[
                {"unit": key, "state": unit.state.value, "ref": unit.event.ref}
                for key, unit in sorted(self._units.items())
            ],
            completed=self._completed,
            superseded=self._superseded,
            failed=self._failed,
            last_error=self._last_error,
        )
