"""
Domain models for queued notification records.
"""

from dataclasses import dataclass
from enum import StrEnum


class NotificationType(StrEnum):
    PROPOSAL_NEW = "PROPOSAL_NEW"
    PROPOSAL_STATE_CHANGED = "PROPOSAL_STATE_CHANGED"
    VOTE_END = "VOTE_END"
    VOTE_EMITTED = "VOTE_EMITTED"


@dataclass(slots=True, frozen=True)
class NotificationRecord:
    """One message for one user, keyed by (type, event_id, user_id)."""

    type: NotificationType
    event_id: str
    dao_code: str
    proposal_id: str
    user_id: str
    user_address: str
    vote_id: str | None = None
    payload: str | None = None
