"""
Scheduled background jobs and the scheduler that drives them.
"""

from .dao_sync_job import DaoSyncJob, DaoSyncJobError
from .definitions import build_task_definitions
from .scheduler import TaskAlreadyRegisteredError, TaskScheduler
from .tracking_vote_job import TrackingVoteJob, TrackingVoteJobError

__all__ = [
    "DaoSyncJob",
    "DaoSyncJobError",
    "TrackingVoteJob",
    "TrackingVoteJobError",
    "TaskScheduler",
    "TaskAlreadyRegisteredError",
    "build_task_definitions",
]
