"""
Task definitions for the background worker.

The entry point owns this list; nothing registers itself at import time.
"""

from degov.config import Settings, settings
from degov.jobs.dao_sync_job import DaoSyncJob
from degov.jobs.dao_sync_job import JOB_NAME as DAO_SYNC_TASK
from degov.jobs.tracking_vote_job import JOB_NAME as TRACKING_VOTE_TASK
from degov.jobs.tracking_vote_job import TrackingVoteJob
from degov.models.domain.task import TaskConfig, TaskDefinition
from degov.services.registry_fetcher import RegistryFetcher


def build_task_definitions(config: Settings | None = None) -> list[TaskDefinition]:
    config = config or settings
    return [
        TaskDefinition(
            config=TaskConfig(
                name=DAO_SYNC_TASK,
                interval_seconds=config.TASK_DAO_SYNC_INTERVAL_SECONDS,
                enabled=config.TASK_DAO_SYNC_ENABLED,
            ),
            constructor=lambda: DaoSyncJob(RegistryFetcher(config)),
        ),
        TaskDefinition(
            config=TaskConfig(
                name=TRACKING_VOTE_TASK,
                interval_seconds=config.TASK_TRACKING_VOTE_INTERVAL_SECONDS,
                enabled=config.TASK_TRACKING_VOTE_ENABLED,
            ),
            constructor=lambda: TrackingVoteJob(config),
        ),
    ]
