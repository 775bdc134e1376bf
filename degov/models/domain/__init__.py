"""
Domain dataclasses shared by repositories and jobs.
"""

from .dao import DaoRecord, DaoState, RefreshDaoInput, StoreDaoChipInput
from .notification import NotificationRecord, NotificationType
from .proposal import ProposalState, ProposalTracking
from .subscription import SubscribedUser, SubscribeFeature
from .task import Task, TaskConfig, TaskDefinition, TaskState

__all__ = [
    "DaoRecord",
    "DaoState",
    "NotificationRecord",
    "NotificationType",
    "ProposalState",
    "ProposalTracking",
    "RefreshDaoInput",
    "StoreDaoChipInput",
    "SubscribeFeature",
    "SubscribedUser",
    "Task",
    "TaskConfig",
    "TaskDefinition",
    "TaskState",
]
