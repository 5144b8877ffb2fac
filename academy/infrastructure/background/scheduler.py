# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler for periodic Dramatiq tasks.

Uses APScheduler for cron and interval scheduling. A job only sends a
message to its Dramatiq actor; the work runs on the workers.

Example:
    from academy.infrastructure.background.scheduler import get_scheduler

    scheduler = get_scheduler()

    # Add cron job (runs daily at 03:00)
    scheduler.add_cron_task(
        name="Close Stale Doubts",
        actor_name="close_stale_doubts",
        cron_expression="0 3 * * *",
    )

    # Add interval job (runs every hour)
    scheduler.add_interval_task(
        name="Token Cleanup",
        actor_name="cleanup_expired_tokens",
        minutes=60,
    )

    await scheduler.start()
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from academy.core.config.settings import SchedulerSettings
from academy.utils.datetime import utc_now

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """Configuration for a scheduled Dramatiq task.

    Attributes:
        id: Unique task identifier.
        name: Human-readable task name.
        actor_name: Name of the Dramatiq actor to call.
        trigger: APScheduler trigger for the job.
        args: Positional arguments for the actor.
        kwargs: Keyword arguments for the actor.
        enabled: Whether the task is enabled.
        last_run: Last run timestamp.
        run_count: Total number of runs.
        error_count: Number of failed runs.
    """

    name: str
    actor_name: str
    trigger: BaseTrigger
    args: tuple = field(default_factory=tuple)
    kwargs: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    enabled: bool = True
    last_run: Any = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "actor_name": self.actor_name,
            "trigger": str(self.trigger),
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


def parse_cron(cron_expression: str) -> CronTrigger:
    """Build a UTC CronTrigger from a five-field cron expression.

    Raises:
        ValueError: If the expression does not have five fields.
    """
    parts = cron_expression.split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron expression: {cron_expression}")

    return CronTrigger(
        minute=parts[0],
        hour=parts[1],
        day=parts[2],
        month=parts[3],
        day_of_week=parts[4],
        timezone="UTC",
    )


class DramatiqScheduler:
    """Scheduler for periodic Dramatiq task execution.

    Tasks may be added before or after start(); jobs for tasks added
    earlier are registered when the scheduler starts.

    Attributes:
        _scheduler: APScheduler instance.
        _tasks: Dictionary of scheduled tasks.
        _running: Whether scheduler is running.
    """

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _get_actor(self, actor_name: str) -> Callable[..., Any] | None:
        from academy.infrastructure.background import tasks

        return getattr(tasks, actor_name, None)

    def _register_job(self, task: ScheduledTask) -> None:
        if self._scheduler is None:
            return
        self._scheduler.add_job(
            self._execute_task,
            trigger=task.trigger,
            args=[task.id],
            id=task.id,
            name=task.name,
            replace_existing=True,
        )
        if not task.enabled:
            self._scheduler.pause_job(task.id)

    def _add(self, task: ScheduledTask) -> ScheduledTask:
        self._tasks[task.id] = task
        self._register_job(task)
        return task

    def add_cron_task(
        self,
        name: str,
        actor_name: str,
        cron_expression: str,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        enabled: bool = True,
    ) -> ScheduledTask:
        """Add a cron-scheduled task.

        Args:
            name: Task name.
            actor_name: Dramatiq actor to call.
            cron_expression: Cron expression (minute hour day month weekday), UTC.
            args: Actor arguments.
            kwargs: Actor keyword arguments.
            enabled: Whether task is enabled.

        Raises:
            ValueError: If the cron expression is invalid.
        """
        task = ScheduledTask(
            name=name,
            actor_name=actor_name,
            trigger=parse_cron(cron_expression),
            args=args,
            kwargs=kwargs or {},
            enabled=enabled,
        )
        self._add(task)

        logger.info("Added cron task: %s (%s)", name, cron_expression)
        return task

    def add_interval_task(
        self,
        name: str,
        actor_name: str,
        seconds: int = 0,
        minutes: int = 0,
        hours: int = 0,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        enabled: bool = True,
    ) -> ScheduledTask:
        """Add an interval-scheduled task.

        Raises:
            ValueError: If the interval is zero.
        """
        if seconds + minutes * 60 + hours * 3600 <= 0:
            raise ValueError("Interval must be positive")

        task = ScheduledTask(
            name=name,
            actor_name=actor_name,
            trigger=IntervalTrigger(seconds=seconds, minutes=minutes, hours=hours),
            args=args,
            kwargs=kwargs or {},
            enabled=enabled,
        )
        self._add(task)

        logger.info(
            "Added interval task: %s (every %dh %dm %ds)",
            name,
            hours,
            minutes,
            seconds,
        )
        return task

    async def _execute_task(self, task_id: str) -> None:
        """Send the task's message to its actor."""
        task = self._tasks.get(task_id)
        if not task or not task.enabled:
            return

        actor = self._get_actor(task.actor_name)
        if actor is None:
            task.error_count += 1
            logger.error("Scheduled task %s failed: actor not found: %s", task.name, task.actor_name)
            return

        try:
            actor.send(*task.args, **task.kwargs)
        except Exception as e:
            task.error_count += 1
            logger.error("Scheduled task %s failed: %s", task.name, e, exc_info=True)
            return

        task.last_run = utc_now()
        task.run_count += 1
        logger.debug("Scheduled task %s sent to queue", task.name)

    def get_task(self, task_id: str) -> ScheduledTask | None:
        return self._tasks.get(task_id)

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    async def start(self) -> None:
        """Start the scheduler and register jobs for known tasks."""
        if self._running:
            return

        self._scheduler = AsyncIOScheduler(timezone="UTC")
        for task in self._tasks.values():
            self._register_job(task)
        self._scheduler.start()
        self._running = True

        logger.info("Dramatiq scheduler started with %d tasks", len(self._tasks))

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Dramatiq scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        return {
            "is_running": self._running,
            "task_count": len(self._tasks),
            "enabled_count": sum(1 for t in self._tasks.values() if t.enabled),
            "total_runs": sum(t.run_count for t in self._tasks.values()),
            "total_errors": sum(t.error_count for t in self._tasks.values()),
            "tasks": [t.to_dict() for t in self._tasks.values()],
        }


_scheduler: DramatiqScheduler | None = None


def get_scheduler() -> DramatiqScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = DramatiqScheduler()
    return _scheduler


def register_default_tasks(scheduler: DramatiqScheduler, settings: SchedulerSettings) -> None:
    """Register the maintenance jobs."""
    scheduler.add_interval_task(
        name="Token Cleanup",
        actor_name="cleanup_expired_tokens",
        minutes=settings.token_cleanup_interval_minutes,
    )
    scheduler.add_cron_task(
        name="Close Stale Doubts",
        actor_name="close_stale_doubts",
        cron_expression=settings.stale_doubt_cron,
        kwargs={"days": settings.stale_doubt_days},
    )
    scheduler.add_cron_task(
        name="Nightly Progress Recalculation",
        actor_name="recalculate_active_batches",
        cron_expression=settings.progress_recalc_cron,
    )


async def start_scheduler(settings: SchedulerSettings) -> DramatiqScheduler:
    """Start the scheduler with the default maintenance jobs."""
    scheduler = get_scheduler()
    if not scheduler.list_tasks():
        register_default_tasks(scheduler, settings)
    await scheduler.start()

    logger.info("Registered %d default scheduled tasks", len(scheduler.list_tasks()))
    return scheduler


async def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
