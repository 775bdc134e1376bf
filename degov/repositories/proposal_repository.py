"""
Postgres repository for proposal tracking rows.
"""

from collections.abc import Sequence

from degov.db.helpers import execute_query, fetch_all, with_db_retry
from degov.infrastructure.observability.logging import get_logger
from degov.models.domain.proposal import ProposalState, ProposalTracking

logger = get_logger(__name__)


class ProposalRepository:
    """Persistence helpers for dgv_proposal_tracking."""

    @staticmethod
    async def list_tracking_proposals(
        dao_code: str, states: Sequence[ProposalState], limit: int
    ) -> list[ProposalTracking]:
        """Most recently tracked proposals of a DAO in any of `states`."""
        query = """
            SELECT id, dao_code, proposal_id, state, offset_tracking_vote,
                   title, times_track, utime
            FROM dgv_proposal_tracking
            WHERE dao_code = %s
              AND state = ANY(%s::text[])
            ORDER BY ctime DESC, id DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (dao_code, [state.value for state in states], limit))
        return [
            ProposalTracking(
                id=row["id"],
                dao_code=row["dao_code"],
                proposal_id=row["proposal_id"],
                state=ProposalState(row["state"]),
                offset_tracking_vote=row.get("offset_tracking_vote") or 0,
                title=row.get("title"),
                times_track=row.get("times_track") or 0,
                utime=row.get("utime"),
            )
            for row in rows
        ]

    @staticmethod
    @with_db_retry()
    async def update_offset_tracking_vote(proposal_id: str, dao_code: str, offset: int) -> int:
        """
        Advance the vote cursor of a proposal.

        The guard keeps the stored offset non-decreasing even if two runs
        interleave; a stale write affects zero rows. A NULL offset counts as 0.
        """
        query = """
            UPDATE dgv_proposal_tracking
            SET offset_tracking_vote = %s,
                utime = NOW()
            WHERE proposal_id = %s
              AND dao_code = %s
              AND COALESCE(offset_tracking_vote, 0) < %s
        """
        affected = await execute_query(query, (offset, proposal_id, dao_code, offset))
        if not affected:
            logger.debug(
                "Offset not advanced",
                dao=dao_code,
                proposal=proposal_id,
                offset=offset,
            )
        return affected
