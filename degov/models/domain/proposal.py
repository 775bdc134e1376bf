"""
Domain models for proposal vote tracking.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class ProposalState(StrEnum):
    """Governor lifecycle states as stored on tracking rows."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    CANCELED = "CANCELED"
    DEFEATED = "DEFEATED"
    SUCCEEDED = "SUCCEEDED"
    QUEUED = "QUEUED"
    EXPIRED = "EXPIRED"
    EXECUTED = "EXECUTED"


@dataclass(slots=True)
class ProposalTracking:
    """Represents a dgv_proposal_tracking row."""

    id: str
    dao_code: str
    proposal_id: str
    state: ProposalState
    offset_tracking_vote: int = 0
    title: str | None = None
    times_track: int = 0
    utime: datetime | None = None
