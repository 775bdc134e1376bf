import asyncio

import pytest

from degov.jobs.scheduler import TaskAlreadyRegisteredError, TaskScheduler
from degov.models.domain.task import Task


class CountingTask:
    def __init__(self, name: str, *, duration: float = 0.0, fail: bool = False):
        self._name = name
        self.duration = duration
        self.fail = fail
        self.calls = 0
        self.active = 0
        self.max_active = 0

    @property
    def name(self) -> str:
        return self._name

    async def execute(self) -> None:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.duration:
                await asyncio.sleep(self.duration)
            if self.fail:
                raise RuntimeError("boom")
        finally:
            self.active -= 1


async def _run_for(scheduler: TaskScheduler, seconds: float) -> None:
    stop_event = asyncio.Event()
    runner = asyncio.create_task(scheduler.start(stop_event))
    await asyncio.sleep(seconds)
    stop_event.set()
    await runner
    await scheduler.shutdown(1.0)


def test_counting_task_satisfies_protocol():
    assert isinstance(CountingTask("a"), Task)


def test_register_duplicate_name_fails():
    scheduler = TaskScheduler()
    scheduler.register_task(CountingTask("dao-sync"), 10)

    with pytest.raises(TaskAlreadyRegisteredError):
        scheduler.register_task(CountingTask("dao-sync"), 20)

    assert scheduler.list_tasks() == ["dao-sync"]


def test_register_rejects_non_positive_interval():
    scheduler = TaskScheduler()
    with pytest.raises(ValueError):
        scheduler.register_task(CountingTask("a"), 0)


def test_list_tasks_keeps_registration_order():
    scheduler = TaskScheduler()
    for name in ("tracking-vote", "dao-sync", "other"):
        scheduler.register_task(CountingTask(name), 5)

    assert scheduler.list_tasks() == ["tracking-vote", "dao-sync", "other"]


@pytest.mark.asyncio
async def test_task_fires_immediately_and_on_interval():
    scheduler = TaskScheduler()
    task = CountingTask("fast")
    scheduler.register_task(task, 0.05)

    await _run_for(scheduler, 0.18)

    # t=0, 0.05, 0.10, 0.15
    assert 3 <= task.calls <= 5
    state = scheduler.get_task_states()[0]
    assert state["runs"] == task.calls
    assert state["last_error"] is None
    assert state["last_run_at"] is not None


@pytest.mark.asyncio
async def test_slow_task_never_overlaps_itself():
    scheduler = TaskScheduler()
    task = CountingTask("slow", duration=0.12)
    scheduler.register_task(task, 0.03)

    await _run_for(scheduler, 0.2)

    assert task.max_active == 1
    assert scheduler.get_task_states()[0]["skipped_ticks"] > 0


@pytest.mark.asyncio
async def test_failing_task_does_not_stop_others():
    scheduler = TaskScheduler()
    failing = CountingTask("failing", fail=True)
    healthy = CountingTask("healthy")
    scheduler.register_task(failing, 0.04)
    scheduler.register_task(healthy, 0.04)

    await _run_for(scheduler, 0.15)

    assert failing.calls >= 2
    assert healthy.calls >= 2
    states = {s["name"]: s for s in scheduler.get_task_states()}
    assert states["failing"]["failures"] == failing.calls
    assert states["failing"]["last_error"] == "RuntimeError: boom"
    assert states["healthy"]["failures"] == 0


@pytest.mark.asyncio
async def test_disabled_task_is_not_run():
    scheduler = TaskScheduler()
    task = CountingTask("off")
    scheduler.register_task(task, 0.01, enabled=False)

    await _run_for(scheduler, 0.05)

    assert task.calls == 0


@pytest.mark.asyncio
async def test_register_after_start_fails():
    scheduler = TaskScheduler()
    scheduler.register_task(CountingTask("a"), 1)
    stop_event = asyncio.Event()
    runner = asyncio.create_task(scheduler.start(stop_event))
    await asyncio.sleep(0)

    with pytest.raises(RuntimeError):
        scheduler.register_task(CountingTask("b"), 1)

    scheduler.stop()
    await runner
    await scheduler.shutdown(1.0)


@pytest.mark.asyncio
async def test_shutdown_cancels_runs_past_grace_period():
    scheduler = TaskScheduler()
    task = CountingTask("stuck", duration=10)
    scheduler.register_task(task, 60)

    stop_event = asyncio.Event()
    runner = asyncio.create_task(scheduler.start(stop_event))
    await asyncio.sleep(0.02)
    stop_event.set()
    await runner

    await scheduler.shutdown(0.05)

    state = scheduler.get_task_states()[0]
    assert state["is_running"] is False
    assert state["last_error"] == "cancelled"
    assert task.active == 0
