"""
Background worker runner.

With no job name, registers every enabled task and runs the scheduler until
SIGINT/SIGTERM. With a job name (CLI arg or WORKER_JOB env variable), runs
that one task once and exits.
"""

import asyncio
import os
import signal
import sys

from degov.config import settings
from degov.db.pool import db_pool
from degov.infrastructure.observability.logging import get_logger, setup_logging
from degov.jobs.definitions import build_task_definitions
from degov.jobs.scheduler import TaskScheduler
from degov.models.domain.task import TaskDefinition

logger = get_logger(__name__)


def _resolve_job_name() -> str | None:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    name = os.getenv("WORKER_JOB", "").strip().lower()
    return name or None


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            logger.warning("Signal handlers unavailable", signal=sig.name)


async def run_scheduler(
    definitions: list[TaskDefinition],
    stop_event: asyncio.Event,
    grace_seconds: float | None = None,
) -> TaskScheduler:
    """Register enabled tasks and run them until `stop_event` is set."""
    scheduler = TaskScheduler()

    for definition in definitions:
        task_config = definition.config
        if not task_config.enabled:
            logger.info("Task disabled, not registering", task=task_config.name)
            continue
        scheduler.register_task(definition.constructor(), task_config.interval_seconds)

    if not scheduler.list_tasks():
        logger.warning("No tasks enabled, worker has nothing to do")
        return scheduler

    await scheduler.start(stop_event)

    grace = settings.SHUTDOWN_GRACE_SECONDS if grace_seconds is None else grace_seconds
    await scheduler.shutdown(grace)
    logger.info("Scheduler shut down", tasks=scheduler.get_task_states())
    return scheduler


async def run_worker(
    job_name: str | None = None,
    definitions: list[TaskDefinition] | None = None,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Run the scheduler, or a single task once when `job_name` is given."""
    if definitions is None:
        definitions = build_task_definitions()
    registry = {definition.config.name: definition for definition in definitions}

    name = job_name.strip().lower() if job_name else None
    if name and name not in registry:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(registry.keys()))}"
        )

    await db_pool.initialize()
    health = await db_pool.health_check()
    logger.info("Database pool ready", **health)

    try:
        if name:
            logger.info("Running task once", task=name)
            await registry[name].constructor().execute()
            return

        if stop_event is None:
            stop_event = asyncio.Event()
            _install_signal_handlers(stop_event)

        logger.info("Starting background worker", tasks=sorted(registry.keys()))
        await run_scheduler(definitions, stop_event)
    finally:
        await db_pool.close()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(settings.LOG_LEVEL)
    asyncio.run(run_worker(_resolve_job_name()))


if __name__ == "__main__":
    main()
