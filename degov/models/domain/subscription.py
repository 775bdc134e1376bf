"""
Domain models for user subscriptions consulted by notification jobs.
"""

from dataclasses import dataclass
from enum import StrEnum


class SubscribeFeature(StrEnum):
    ENABLE_PROPOSAL = "ENABLE_PROPOSAL"
    ENABLE_VOTING_END_REMINDER = "ENABLE_VOTING_END_REMINDER"
    ENABLE_VOTED = "ENABLE_VOTED"
    ENABLE_STATE_CHANGED = "ENABLE_STATE_CHANGED"


@dataclass(slots=True, frozen=True)
class SubscribedUser:
    user_id: str
    user_address: str
    dao_code: str
    proposal_id: str | None = None
