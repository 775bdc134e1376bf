"""
Interval scheduler for background tasks.

Every registered task gets its own tick loop. A tick launches the task's
execute() as a separate asyncio task, so ticks stay on their wall-clock
cadence regardless of how long a run takes. A tick that finds the previous
run of the same task still in flight is skipped, never queued.
"""

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime

from degov.infrastructure.observability.logging import bind_task_context, get_logger
from degov.models.domain.task import Task, TaskState

logger = get_logger(__name__)


class TaskAlreadyRegisteredError(ValueError):
    """Raised when a task name is registered twice."""


@dataclass(slots=True)
class _ScheduledTask:
    task: Task
    state: TaskState
    inflight: asyncio.Task | None = None


class TaskScheduler:
    """Runs registered tasks concurrently, each on its own interval."""

    def __init__(self):
        self._entries: dict[str, _ScheduledTask] = {}
        self._loops: list[asyncio.Task] = []
        self._started = False
        self._stop_event: asyncio.Event | None = None

    def register_task(self, task: Task, interval_seconds: float, *, enabled: bool = True) -> None:
        """
        Register a task to run every `interval_seconds`.

        Raises:
            TaskAlreadyRegisteredError: a task with the same name exists
            ValueError: interval is not positive
            RuntimeError: the scheduler has already started
        """
        if self._started:
            raise RuntimeError("Cannot register tasks after the scheduler has started")

        name = task.name
        if name in self._entries:
            raise TaskAlreadyRegisteredError(f"task {name!r} is already registered")

        if interval_seconds <= 0:
            raise ValueError(f"interval for task {name!r} must be positive")

        self._entries[name] = _ScheduledTask(
            task=task,
            state=TaskState(name=name, interval_seconds=interval_seconds, enabled=enabled),
        )
        logger.info("Task registered", task=name, interval_seconds=interval_seconds, enabled=enabled)

    def list_tasks(self) -> list[str]:
        """Registered task names in registration order."""
        return list(self._entries)

    def get_task_states(self) -> list[dict]:
        return [entry.state.to_dict() for entry in self._entries.values()]

    async def start(self, stop_event: asyncio.Event) -> None:
        """
        Run every enabled task until `stop_event` is set.

        Returns once all tick loops have exited. In-flight runs are left to
        finish; see shutdown().
        """
        if self._started:
            raise RuntimeError("Scheduler already started")
        self._started = True
        self._stop_event = stop_event

        for name, entry in self._entries.items():
            if not entry.state.enabled:
                logger.info("Task disabled, not scheduling", task=name)
                continue
            self._loops.append(
                asyncio.create_task(self._tick_loop(entry, stop_event), name=f"tick:{name}")
            )

        logger.info("Scheduler started", tasks=[t.get_name() for t in self._loops])

        if self._loops:
            await asyncio.gather(*self._loops)

        logger.info("Scheduler stopped ticking")

    async def _tick_loop(self, entry: _ScheduledTask, stop_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        interval = entry.state.interval_seconds
        next_tick = loop.time()

        while not stop_event.is_set():
            self._fire(entry)

            next_tick += interval
            now = loop.time()
            if next_tick < now:
                # Event loop stalled past whole intervals; realign instead of bursting
                next_tick = now + interval - ((now - next_tick) % interval)

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=next_tick - now)
            except TimeoutError:
                continue

    def _fire(self, entry: _ScheduledTask) -> None:
        state = entry.state

        if entry.inflight is not None and not entry.inflight.done():
            state.skipped_ticks += 1
            logger.warning(
                "Task still running, skipping tick",
                task=state.name,
                skipped_ticks=state.skipped_ticks,
            )
            return

        entry.inflight = asyncio.create_task(self._execute(entry), name=f"run:{state.name}")

    async def _execute(self, entry: _ScheduledTask) -> None:
        state = entry.state
        bind_task_context(state.name)
        state.is_running = True
        started = datetime.now(UTC)

        try:
            await entry.task.execute()
            state.last_error = None

        except asyncio.CancelledError:
            state.last_error = "cancelled"
            logger.warning("Task run cancelled", task=state.name)
            raise

        except Exception as e:
            state.failures += 1
            state.last_error = f"{type(e).__name__}: {e}"
            logger.error(
                "Task run failed",
                task=state.name,
                error=str(e),
                error_type=type(e).__name__,
                failures=state.failures,
            )

        finally:
            state.is_running = False
            state.runs += 1
            state.last_run_at = started
            logger.debug(
                "Task run finished",
                task=state.name,
                duration_seconds=round((datetime.now(UTC) - started).total_seconds(), 3),
            )

    def stop(self) -> None:
        """Stop issuing ticks. In-flight runs keep going."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def shutdown(self, grace_seconds: float) -> None:
        """Stop ticking, wait up to `grace_seconds` for in-flight runs, then cancel what is left."""
        self.stop()
        inflight = [
            entry.inflight
            for entry in self._entries.values()
            if entry.inflight is not None and not entry.inflight.done()
        ]
        if not inflight:
            return

        logger.info("Waiting for in-flight tasks", count=len(inflight), grace_seconds=grace_seconds)
        _, pending = await asyncio.wait(inflight, timeout=grace_seconds)

        if pending:
            logger.warning(
                "Cancelling tasks still running after grace period",
                tasks=[t.get_name() for t in pending],
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
