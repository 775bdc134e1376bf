"""
Outbox for notification records consumed by the dispatcher.
"""

import uuid
from collections.abc import Iterable

import psycopg

from degov.db.helpers import DatabaseError
from degov.db.pool import get_db_connection
from degov.infrastructure.observability.logging import get_logger
from degov.models.domain.notification import NotificationRecord

logger = get_logger(__name__)


class NotificationRepository:
    """Persistence helpers for dgv_notification_record."""

    @staticmethod
    async def enqueue(records: Iterable[NotificationRecord]) -> int:
        """Insert records; an existing (type, event_id, user_id) row is left alone."""
        payload = [
            (
                str(uuid.uuid4()),
                record.type.value,
                record.event_id,
                record.dao_code,
                record.proposal_id,
                record.vote_id,
                record.user_id,
                record.user_address,
                record.payload,
            )
            for record in records
        ]

        if not payload:
            return 0

        query = """
            INSERT INTO dgv_notification_record (
                id, type, event_id, dao_code, proposal_id, vote_id,
                user_id, user_address, payload, state, ctime
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, 'PENDING', NOW())
            ON CONFLICT (type, event_id, user_id) DO NOTHING
        """

        try:
            async with await get_db_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.executemany(query, payload)
                    inserted = max(cur.rowcount, 0)
        except psycopg.Error as e:
            logger.error("Failed to enqueue notifications", count=len(payload), error=str(e))
            raise DatabaseError(f"Enqueue failed: {e}", operation="enqueue_notifications") from e

        logger.info("Notification records enqueued", requested=len(payload), inserted=inserted)
        return inserted
