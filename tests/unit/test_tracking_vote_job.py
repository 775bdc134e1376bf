import pytest
from structlog.testing import capture_logs

from conftest import FakeIndexer, FakeSubscriptionRepository, make_settings, make_vote
from degov.db.helpers import DatabaseError
from degov.jobs.tracking_vote_job import (
    TrackingVoteJob,
    TrackingVoteJobError,
    build_vote_notifications,
)
from degov.models.domain.dao import DaoState
from degov.models.domain.notification import NotificationType
from degov.models.domain.proposal import ProposalState, ProposalTracking
from degov.models.domain.subscription import SubscribedUser, SubscribeFeature
from degov.services.notification_payload import parse_payload


class RecordingSink:
    def __init__(self):
        self.calls = []

    async def __call__(self, proposal, votes, recipients) -> int:
        self.calls.append((proposal.proposal_id, list(votes), list(recipients)))
        return len(build_vote_notifications(proposal, votes, recipients))


def _job(dao_repo, proposal_repo, subscription_repo, indexers, sink=None, **overrides):
    def factory(endpoint):
        return indexers[endpoint]

    return TrackingVoteJob(
        make_settings(**overrides),
        dao_repository=dao_repo,
        proposal_repository=proposal_repo,
        subscription_repository=subscription_repo,
        notification_sink=sink or RecordingSink(),
        indexer_factory=factory,
    )


def _user(index: int, address: str | None = None) -> SubscribedUser:
    return SubscribedUser(
        user_id=f"user-{index}",
        user_address=address or f"0xuser{index}",
        dao_code="foo",
        proposal_id="p1",
    )


@pytest.mark.asyncio
async def test_offset_advances_by_votes_ingested_and_stops_on_empty_page(
    fake_dao_repository, fake_proposal_repository, fake_subscription_repository
):
    fake_dao_repository.add_dao("foo", endpoint="https://foo/graphql")
    fake_proposal_repository.add("foo", "p1", offset=5)
    votes = [make_vote(i) for i in range(8)]
    indexer = FakeIndexer("https://foo/graphql", {"p1": votes})
    job = _job(
        fake_dao_repository,
        fake_proposal_repository,
        fake_subscription_repository,
        {"https://foo/graphql": indexer},
    )

    metrics = await job.tracking_vote()

    assert fake_proposal_repository.offsets[("foo", "p1")] == 8
    assert indexer.calls == [("p1", 5, 100), ("p1", 8, 100)]
    assert metrics["votes_ingested"] == 3


@pytest.mark.asyncio
async def test_offset_is_persisted_after_every_page(
    fake_dao_repository, fake_proposal_repository, fake_subscription_repository
):
    fake_dao_repository.add_dao("foo", endpoint="https://foo/graphql")
    fake_proposal_repository.add("foo", "p1", offset=0)
    indexer = FakeIndexer("https://foo/graphql", {"p1": [make_vote(i) for i in range(5)]})
    job = _job(
        fake_dao_repository,
        fake_proposal_repository,
        fake_subscription_repository,
        {"https://foo/graphql": indexer},
        TRACKING_VOTE_PAGE_SIZE=2,
    )

    await job.tracking_vote()

    assert fake_proposal_repository.offset_writes == [
        ("foo", "p1", 2),
        ("foo", "p1", 4),
        ("foo", "p1", 5),
    ]
    assert fake_proposal_repository.offsets[("foo", "p1")] == 5


@pytest.mark.asyncio
async def test_no_new_votes_skips_subscriber_lookup(
    fake_dao_repository, fake_proposal_repository, fake_subscription_repository
):
    fake_dao_repository.add_dao("foo", endpoint="https://foo/graphql")
    fake_proposal_repository.add("foo", "p1", offset=3)
    indexer = FakeIndexer("https://foo/graphql", {"p1": [make_vote(i) for i in range(3)]})
    sink = RecordingSink()
    job = _job(
        fake_dao_repository,
        fake_proposal_repository,
        fake_subscription_repository,
        {"https://foo/graphql": indexer},
        sink,
    )

    await job.tracking_vote()

    assert indexer.calls == [("p1", 3, 100)]
    assert fake_proposal_repository.offset_writes == []
    assert fake_subscription_repository.calls == []
    assert sink.calls == []


@pytest.mark.asyncio
async def test_indexer_failure_is_isolated_to_its_dao(fake_dao_repository, fake_proposal_repository):
    fake_dao_repository.add_dao("bad", endpoint="https://bad/graphql")
    fake_dao_repository.add_dao("good", endpoint="https://good/graphql")
    fake_proposal_repository.add("bad", "p1")
    fake_proposal_repository.add("bad", "p2")
    fake_proposal_repository.add("good", "p3")
    bad = FakeIndexer("https://bad/graphql", {"p2": [make_vote(0, "p2")]}, fail={"p1"})
    good = FakeIndexer("https://good/graphql", {"p3": [make_vote(0, "p3")]})
    job = _job(
        fake_dao_repository,
        fake_proposal_repository,
        FakeSubscriptionRepository(),
        {"https://bad/graphql": bad, "https://good/graphql": good},
    )

    metrics = await job.tracking_vote()

    # p1 failed, so p2 of the same DAO waits for the next run
    assert [call[0] for call in bad.calls] == ["p1"]
    assert fake_proposal_repository.offsets[("bad", "p2")] == 0
    assert fake_proposal_repository.offsets[("good", "p3")] == 1
    assert metrics["daos_aborted"] == 1
    assert metrics["daos_processed"] == 1


@pytest.mark.asyncio
async def test_dao_without_indexer_endpoint_is_skipped(fake_dao_repository, fake_proposal_repository):
    fake_dao_repository.add_dao("noindexer", endpoint="")
    fake_proposal_repository.add("noindexer", "p1")

    metrics = await _job(
        fake_dao_repository, fake_proposal_repository, FakeSubscriptionRepository(), {}
    ).tracking_vote()

    assert metrics["daos_skipped"] == 1


@pytest.mark.asyncio
async def test_proposal_listing_failure_skips_only_that_dao(
    fake_dao_repository, fake_proposal_repository
):
    fake_dao_repository.add_dao("broken", endpoint="https://broken/graphql")
    fake_dao_repository.add_dao("foo", endpoint="https://foo/graphql")
    fake_proposal_repository.fail_list_codes.add("broken")
    fake_proposal_repository.add("foo", "p1")
    indexer = FakeIndexer("https://foo/graphql", {"p1": [make_vote(0)]})

    metrics = await _job(
        fake_dao_repository,
        fake_proposal_repository,
        FakeSubscriptionRepository(),
        {"https://foo/graphql": indexer},
    ).tracking_vote()

    assert fake_proposal_repository.offsets[("foo", "p1")] == 1
    assert metrics["daos_skipped"] == 1


@pytest.mark.asyncio
async def test_inactive_daos_and_proposals_are_not_tracked(
    fake_dao_repository, fake_proposal_repository
):
    fake_dao_repository.add_dao("gone", endpoint="https://gone/graphql", state=DaoState.INACTIVE)
    fake_dao_repository.add_dao("foo", endpoint="https://foo/graphql")
    fake_proposal_repository.add("gone", "p1")
    fake_proposal_repository.add("foo", "p2", state=ProposalState.EXECUTED)
    indexer = FakeIndexer("https://foo/graphql", {})

    await _job(
        fake_dao_repository,
        fake_proposal_repository,
        FakeSubscriptionRepository(),
        {"https://foo/graphql": indexer},
    ).tracking_vote()

    assert indexer.calls == []


@pytest.mark.asyncio
async def test_dao_listing_failure_fails_run(fake_dao_repository, fake_proposal_repository):
    fake_dao_repository.fail_list = True

    with pytest.raises(TrackingVoteJobError):
        await _job(
            fake_dao_repository, fake_proposal_repository, FakeSubscriptionRepository(), {}
        ).tracking_vote()


@pytest.mark.asyncio
async def test_subscriber_paging_stops_on_short_page(fake_dao_repository, fake_proposal_repository):
    fake_dao_repository.add_dao("foo", endpoint="https://foo/graphql")
    fake_proposal_repository.add("foo", "p1")
    subscriptions = FakeSubscriptionRepository([_user(i) for i in range(5)])
    sink = RecordingSink()
    job = _job(
        fake_dao_repository,
        fake_proposal_repository,
        subscriptions,
        {"https://foo/graphql": FakeIndexer("https://foo/graphql", {"p1": [make_vote(0)]})},
        sink,
        SUBSCRIBER_PAGE_SIZE=2,
    )

    await job.tracking_vote()

    assert [call["offset"] for call in subscriptions.calls] == [0, 2, 4]
    assert all(call["feature"] == SubscribeFeature.ENABLE_VOTED for call in subscriptions.calls)
    assert len(sink.calls[0][2]) == 5


@pytest.mark.asyncio
async def test_subscriber_paging_stops_on_empty_page_after_full_page(
    fake_dao_repository, fake_proposal_repository
):
    fake_dao_repository.add_dao("foo", endpoint="https://foo/graphql")
    fake_proposal_repository.add("foo", "p1")
    subscriptions = FakeSubscriptionRepository([_user(i) for i in range(4)])
    job = _job(
        fake_dao_repository,
        fake_proposal_repository,
        subscriptions,
        {"https://foo/graphql": FakeIndexer("https://foo/graphql", {"p1": [make_vote(0)]})},
        SUBSCRIBER_PAGE_SIZE=2,
    )

    await job.tracking_vote()

    assert [call["offset"] for call in subscriptions.calls] == [0, 2, 4]


def test_vote_notifications_skip_the_voter():
    proposal = ProposalTracking(id="t1", dao_code="foo", proposal_id="p1", state=ProposalState.ACTIVE)
    vote = make_vote(1, voter="0xAbC")
    recipients = [_user(1, "0xabc"), _user(2, "0xdef")]

    records = build_vote_notifications(proposal, [vote], recipients)

    assert [r.user_id for r in records] == ["user-2"]
    record = records[0]
    assert record.type == NotificationType.VOTE_EMITTED
    assert record.event_id == vote.id
    assert parse_payload(record.payload).data["support_label"] == "For"


def test_vote_with_malformed_weight_is_not_notified():
    proposal = ProposalTracking(id="t1", dao_code="foo", proposal_id="p1", state=ProposalState.ACTIVE)
    vote = make_vote(1).model_copy(update={"weight": "lots"})

    assert build_vote_notifications(proposal, [vote], [_user(2)]) == []


@pytest.mark.asyncio
async def test_null_stored_offset_is_advanced_from_zero(
    fake_dao_repository, fake_proposal_repository, fake_subscription_repository
):
    fake_dao_repository.add_dao("foo", endpoint="https://foo/graphql")
    fake_proposal_repository.add("foo", "p1", offset=None)
    indexer = FakeIndexer("https://foo/graphql", {"p1": [make_vote(i) for i in range(3)]})
    job = _job(
        fake_dao_repository,
        fake_proposal_repository,
        fake_subscription_repository,
        {"https://foo/graphql": indexer},
    )

    await job.tracking_vote()
    assert fake_proposal_repository.offsets[("foo", "p1")] == 3

    metrics = await job.tracking_vote()
    assert metrics["votes_ingested"] == 0
    assert indexer.calls[-1] == ("p1", 3, 100)


class FailingSink:
    async def __call__(self, proposal, votes, recipients) -> int:
        raise DatabaseError("enqueue failed", operation="execute_transaction")


@pytest.mark.asyncio
async def test_enqueue_failure_after_ingest_logs_dropped_vote_ids(
    fake_dao_repository, fake_proposal_repository
):
    fake_dao_repository.add_dao("foo", endpoint="https://foo/graphql")
    fake_proposal_repository.add("foo", "p1", offset=0)
    indexer = FakeIndexer("https://foo/graphql", {"p1": [make_vote(i) for i in range(2)]})
    job = _job(
        fake_dao_repository,
        fake_proposal_repository,
        FakeSubscriptionRepository([_user(1)]),
        {"https://foo/graphql": indexer},
        sink=FailingSink(),
    )

    with capture_logs() as logs:
        metrics = await job.tracking_vote()

    dropped = [entry for entry in logs if entry["event"] == "Vote notifications dropped, votes already ingested"]
    assert len(dropped) == 1
    assert dropped[0]["log_level"] == "error"
    assert dropped[0]["vote_ids"] == ["p1-vote-0", "p1-vote-1"]
    assert fake_proposal_repository.offsets[("foo", "p1")] == 2
    assert metrics["daos_aborted"] == 1
