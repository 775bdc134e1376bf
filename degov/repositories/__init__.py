"""
Repository layer: thin async wrappers over the Postgres tables the jobs read and write.
"""

from .dao_repository import DaoRepository
from .notification_repository import NotificationRepository
from .proposal_repository import ProposalRepository
from .subscription_repository import SubscriptionRepository

__all__ = [
    "DaoRepository",
    "NotificationRepository",
    "ProposalRepository",
    "SubscriptionRepository",
]
