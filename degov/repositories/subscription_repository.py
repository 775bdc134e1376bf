"""
Read-only lookups of subscribed users for notification fan-out.
"""

from collections.abc import Sequence
from datetime import datetime

from degov.db.helpers import fetch_all
from degov.models.domain.subscription import SubscribedUser, SubscribeFeature


class SubscriptionRepository:
    """Queries over dgv_user_subscribed_dao and dgv_user_subscribed_feature."""

    @staticmethod
    async def list_subscribed_users(
        feature: SubscribeFeature,
        dao_code: str,
        proposal_id: str | None,
        event_time: datetime,
        limit: int,
        offset: int,
        strategies: Sequence[str] = ("true",),
    ) -> list[SubscribedUser]:
        """
        Users subscribed to `dao_code` with `feature` enabled at `event_time`.

        A feature row scoped to the proposal or to the whole DAO (NULL
        proposal_id) both count. Ordered by user id for stable paging.
        """
        query = """
            SELECT f.user_id, f.user_address
            FROM dgv_user_subscribed_feature f
            JOIN dgv_user_subscribed_dao s
              ON s.user_id = f.user_id
             AND s.dao_code = f.dao_code
            WHERE f.feature = %s
              AND f.strategy = ANY(%s::text[])
              AND f.dao_code = %s
              AND (f.proposal_id = %s OR f.proposal_id IS NULL)
              AND f.ctime <= %s
              AND s.state = 'SUBSCRIBED'
            GROUP BY f.user_id, f.user_address
            ORDER BY f.user_id
            LIMIT %s OFFSET %s
        """
        rows = await fetch_all(
            query,
            (feature.value, list(strategies), dao_code, proposal_id, event_time, limit, offset),
        )
        return [
            SubscribedUser(
                user_id=row["user_id"],
                user_address=row["user_address"],
                dao_code=dao_code,
                proposal_id=proposal_id,
            )
            for row in rows
        ]
