"""
Vote Tracking Job.

For every active DAO, pulls votes cast on its active proposals from the
DAO's indexer, page by page from each proposal's stored offset. The offset
is persisted after every page so a restart resumes where the last
persisted page ended. Once a proposal's new votes are in, users subscribed
to vote notifications are resolved and handed to the notification sink.
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from pydantic import ValidationError

from degov.config import Settings, settings
from degov.db.helpers import DatabaseError
from degov.infrastructure.observability.logging import get_logger, log_job_run
from degov.models.domain.dao import DaoRecord, DaoState
from degov.models.domain.notification import NotificationRecord, NotificationType
from degov.models.domain.proposal import ProposalState, ProposalTracking
from degov.models.domain.subscription import SubscribedUser, SubscribeFeature
from degov.models.external.dao_config import DaoConfig
from degov.models.external.indexer import VoteCast
from degov.repositories.dao_repository import DaoRepository
from degov.repositories.notification_repository import NotificationRepository
from degov.repositories.proposal_repository import ProposalRepository
from degov.repositories.subscription_repository import SubscriptionRepository
from degov.services.indexer_client import DegovIndexer, IndexerError
from degov.services.notification_payload import vote_payload

logger = get_logger(__name__)

JOB_NAME = "tracking-vote"

NotificationSink = Callable[[ProposalTracking, list[VoteCast], list[SubscribedUser]], Awaitable[int]]
IndexerFactory = Callable[[str], DegovIndexer]


class TrackingVoteJobError(Exception):
    """Raised when a tracking run cannot start."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def build_vote_notifications(
    proposal: ProposalTracking, votes: list[VoteCast], recipients: list[SubscribedUser]
) -> list[NotificationRecord]:
    """One VOTE_EMITTED record per (vote, recipient); voters are not told about their own vote."""
    records = []
    for vote in votes:
        if vote.weight_value() is None:
            logger.warning(
                "Vote has malformed weight, not notifying",
                dao=proposal.dao_code,
                proposal=proposal.proposal_id,
                vote=vote.id,
                weight=vote.weight,
            )
            continue

        payload = vote_payload(vote)
        voter = vote.voter.lower()
        for user in recipients:
            if user.user_address.lower() == voter:
                continue
            records.append(
                NotificationRecord(
                    type=NotificationType.VOTE_EMITTED,
                    event_id=vote.id,
                    dao_code=proposal.dao_code,
                    proposal_id=proposal.proposal_id,
                    user_id=user.user_id,
                    user_address=user.user_address,
                    vote_id=vote.id,
                    payload=payload,
                )
            )
    return records


async def enqueue_vote_notifications(
    proposal: ProposalTracking, votes: list[VoteCast], recipients: list[SubscribedUser]
) -> int:
    return await NotificationRepository.enqueue(build_vote_notifications(proposal, votes, recipients))


class TrackingVoteMetrics:
    """Metrics tracking for one tracking run."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.daos_total = 0
        self.daos_processed = 0
        self.daos_skipped = 0
        self.daos_aborted = 0
        self.proposals_tracked = 0
        self.votes_ingested = 0
        self.vote_pages = 0
        self.subscribers_resolved = 0
        self.notifications_enqueued = 0
        self.total_duration_seconds = 0.0
        self.errors: list[dict] = []

    def record_error(self, dao_code: str, error: str, proposal_id: str | None = None):
        self.errors.append(
            {
                "dao": dao_code,
                "proposal": proposal_id,
                "error": error,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "daos_total": self.daos_total,
            "daos_processed": self.daos_processed,
            "daos_skipped": self.daos_skipped,
            "daos_aborted": self.daos_aborted,
            "proposals_tracked": self.proposals_tracked,
            "votes_ingested": self.votes_ingested,
            "vote_pages": self.vote_pages,
            "subscribers_resolved": self.subscribers_resolved,
            "notifications_enqueued": self.notifications_enqueued,
            "errors_count": len(self.errors),
        }


class TrackingVoteJob:
    """Incrementally ingests votes for active proposals and notifies subscribers."""

    name = JOB_NAME

    def __init__(
        self,
        config: Settings | None = None,
        *,
        dao_repository=DaoRepository,
        proposal_repository=ProposalRepository,
        subscription_repository=SubscriptionRepository,
        notification_sink: NotificationSink | None = None,
        indexer_factory: IndexerFactory | None = None,
    ):
        self.config = config or settings
        self.dao_repository = dao_repository
        self.proposal_repository = proposal_repository
        self.subscription_repository = subscription_repository
        self.notification_sink = notification_sink or enqueue_vote_notifications
        self.indexer_factory = indexer_factory or DegovIndexer
        self.metrics = TrackingVoteMetrics()
        self.last_run_time: datetime | None = None

    async def execute(self) -> None:
        await self.tracking_vote()

    async def tracking_vote(self) -> dict:
        """
        Run one tracking pass over every active DAO.

        Returns:
            Dict: run metrics

        Raises:
            TrackingVoteJobError: the DAO list could not be loaded
        """
        self.metrics.reset()
        logger.info("Starting vote tracking")

        try:
            daos = await self.dao_repository.list_daos(DaoState.ACTIVE)
        except Exception as e:
            self.metrics.finalize()
            log_job_run(JOB_NAME, self.metrics.to_dict(), error=str(e))
            raise TrackingVoteJobError(f"failed to list DAOs: {e}", operation="list_daos") from e

        self.metrics.daos_total = len(daos)

        for dao in daos:
            await self._track_dao(dao)

        self.metrics.finalize()
        self.last_run_time = datetime.now(UTC)
        metrics = self.metrics.to_dict()
        log_job_run(JOB_NAME, metrics)
        return metrics

    async def _track_dao(self, dao: DaoRecord) -> None:
        endpoint = self._indexer_endpoint(dao)
        if not endpoint:
            self.metrics.daos_skipped += 1
            return

        try:
            proposals = await self.proposal_repository.list_tracking_proposals(
                dao.code, [ProposalState.ACTIVE], self.config.TRACKING_MAX_PROPOSALS
            )
        except DatabaseError as e:
            logger.error("Failed to list tracking proposals", dao=dao.code, error=str(e))
            self.metrics.daos_skipped += 1
            self.metrics.record_error(dao.code, str(e))
            return

        indexer = self.indexer_factory(endpoint)

        for proposal in proposals:
            try:
                await self.track_proposal(indexer, proposal)
            except (IndexerError, DatabaseError) as e:
                # Remaining proposals of this DAO wait for the next run
                logger.error(
                    "Failed to track votes for proposal, aborting DAO for this run",
                    dao=dao.code,
                    proposal=proposal.proposal_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self.metrics.daos_aborted += 1
                self.metrics.record_error(dao.code, str(e), proposal.proposal_id)
                return

            self.metrics.proposals_tracked += 1
            logger.info("Tracked votes for proposal", dao=dao.code, proposal=proposal.proposal_id)

        self.metrics.daos_processed += 1

    def _indexer_endpoint(self, dao: DaoRecord) -> str | None:
        if not dao.config:
            logger.error("DAO has no stored config", dao=dao.code)
            return None

        try:
            config = DaoConfig.model_validate(dao.config)
        except ValidationError as e:
            logger.error("Stored DAO config is invalid", dao=dao.code, error=str(e))
            return None

        if not config.indexer.endpoint:
            logger.error("DAO config has no indexer endpoint", dao=dao.code)
            return None
        return config.indexer.endpoint

    async def track_proposal(self, indexer: DegovIndexer, proposal: ProposalTracking) -> list[VoteCast]:
        """
        Ingest all votes past the proposal's stored offset.

        Each non-empty page advances the offset by its length and persists it
        before the next page is requested. An empty page ends polling for
        this run; it says nothing about the proposal's lifecycle.

        Returns:
            List: votes ingested in this pass
        """
        page_size = self.config.TRACKING_VOTE_PAGE_SIZE
        offset = proposal.offset_tracking_vote
        new_votes: list[VoteCast] = []

        while True:
            votes = await indexer.query_votes_offset(proposal.proposal_id, offset, page_size)
            if not votes:
                logger.debug(
                    "No more votes found for proposal",
                    dao=proposal.dao_code,
                    proposal=proposal.proposal_id,
                    offset=offset,
                )
                break

            offset += len(votes)
            await self.proposal_repository.update_offset_tracking_vote(
                proposal.proposal_id, proposal.dao_code, offset
            )
            proposal.offset_tracking_vote = offset
            new_votes.extend(votes)
            self.metrics.vote_pages += 1
            self.metrics.votes_ingested += len(votes)

        if new_votes:
            try:
                await self._notify(proposal, new_votes)
            except DatabaseError as e:
                # Offsets already moved past these votes; a later run will not retry them
                logger.error(
                    "Vote notifications dropped, votes already ingested",
                    dao=proposal.dao_code,
                    proposal=proposal.proposal_id,
                    vote_ids=[vote.id for vote in new_votes],
                    error=str(e),
                )
                raise

        return new_votes

    async def _notify(self, proposal: ProposalTracking, votes: list[VoteCast]) -> None:
        recipients = await self.resolve_subscribers(proposal)
        self.metrics.subscribers_resolved += len(recipients)
        if recipients:
            self.metrics.notifications_enqueued += await self.notification_sink(
                proposal, votes, recipients
            )

    async def resolve_subscribers(self, proposal: ProposalTracking) -> list[SubscribedUser]:
        """All users subscribed to vote notifications for the proposal, page by page."""
        limit = self.config.SUBSCRIBER_PAGE_SIZE
        event_time = datetime.now(UTC)
        offset = 0
        users: list[SubscribedUser] = []

        while True:
            page = await self.subscription_repository.list_subscribed_users(
                SubscribeFeature.ENABLE_VOTED,
                proposal.dao_code,
                proposal.proposal_id,
                event_time,
                limit,
                offset,
            )
            users.extend(page)
            if len(page) < limit:
                break
            offset += limit

        return users

    def get_job_status(self) -> dict:
        return {
            "job_name": JOB_NAME,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "last_run_metrics": self.metrics.to_dict() if self.last_run_time else None,
        }
