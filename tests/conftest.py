import httpx
import pytest

from degov.config import Settings
from degov.db.helpers import DatabaseError
from degov.models.domain.dao import DaoRecord, DaoState
from degov.models.domain.proposal import ProposalState, ProposalTracking
from degov.models.external.indexer import VoteCast
from degov.services.indexer_client import IndexerError


def make_settings(**overrides) -> Settings:
    values = {
        "REGISTRY_CONFIG_MODE": None,
        "REGISTRY_CONFIG_REFS": None,
        "AGENT_DAOS_URL": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_vote(index: int, proposal_id: str = "p1", voter: str | None = None) -> VoteCast:
    return VoteCast(
        id=f"{proposal_id}-vote-{index}",
        voter=voter or f"0x{index:040x}",
        proposal_id=proposal_id,
        support=1,
        weight="1000",
        block_number=str(100 + index),
        transaction_hash=f"0xtx{index}",
    )


def route_transport(routes: dict[str, httpx.Response | Exception]) -> httpx.MockTransport:
    """MockTransport answering by exact URL; unknown URLs get a 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        answer = routes.get(str(request.url))
        if isinstance(answer, Exception):
            raise answer
        if answer is None:
            return httpx.Response(404, text="not found")
        return answer

    return httpx.MockTransport(handler)


class FakeDaoRepository:
    def __init__(self):
        self.daos: dict[str, dict] = {}
        self.chips: dict[str, dict] = {}
        self.writes = 0
        self.fail_list = False
        self.fail_upsert_codes: set[str] = set()
        self.fail_chip_codes: set[str] = set()

    async def upsert_dao(self, dao) -> int:
        if dao.code in self.fail_upsert_codes:
            raise DatabaseError("upsert failed", operation="execute_transaction")

        row = {
            "code": dao.code,
            "name": dao.name,
            "state": DaoState.ACTIVE,
            "chain_id": dao.chain_id,
            "chain_name": dao.chain_name,
            "logo": dao.logo,
            "endpoint": dao.endpoint,
            "tags": list(dao.tags),
            "config_link": dao.config_link,
            "raw_config": dao.raw_config,
            "config": dao.config,
        }
        if self.daos.get(dao.code) == row:
            return 0
        self.daos[dao.code] = row
        self.writes += 1
        return 2

    async def mark_inactive(self, active_codes) -> int:
        active = set(active_codes)
        affected = 0
        for code, row in self.daos.items():
            if code not in active and row["state"] != DaoState.INACTIVE:
                row["state"] = DaoState.INACTIVE
                affected += 1
        self.writes += affected
        return affected

    async def list_daos(self, state=DaoState.ACTIVE) -> list[DaoRecord]:
        if self.fail_list:
            raise DatabaseError("list failed", operation="fetch_all")
        return [
            DaoRecord(
                code=row["code"],
                name=row["name"],
                state=row["state"],
                chain_id=row["chain_id"],
                chain_name=row["chain_name"],
                config_link=row["config_link"],
                tags=row["tags"],
                config=row["config"],
            )
            for row in sorted(self.daos.values(), key=lambda r: r["code"])
            if state is None or row["state"] == state
        ]

    async def store_chip_agent(self, chip) -> int:
        if chip.code in self.fail_chip_codes:
            raise DatabaseError("chip failed", operation="execute_query")
        self.chips[chip.code] = chip.agent_config
        return 1

    def add_dao(self, code: str, endpoint: str = "https://indexer.test/graphql", state=DaoState.ACTIVE):
        self.daos[code] = {
            "code": code,
            "name": f"{code} DAO",
            "state": state,
            "chain_id": 1,
            "chain_name": "ethereum",
            "logo": None,
            "endpoint": None,
            "tags": [],
            "config_link": f"https://registry.test/{code}.yml",
            "raw_config": "",
            "config": {"name": f"{code} DAO", "indexer": {"endpoint": endpoint}},
        }


class FakeProposalRepository:
    def __init__(self):
        self.proposals: list[ProposalTracking] = []
        self.offsets: dict[tuple[str, str], int | None] = {}
        self.offset_writes: list[tuple[str, str, int]] = []
        self.fail_list_codes: set[str] = set()

    def add(
        self, dao_code: str, proposal_id: str, offset: int | None = 0, state=ProposalState.ACTIVE
    ):
        self.proposals.append(
            ProposalTracking(
                id=f"{dao_code}-{proposal_id}",
                dao_code=dao_code,
                proposal_id=proposal_id,
                state=state,
                offset_tracking_vote=offset or 0,
            )
        )
        # None stands for a NULL column
        self.offsets[(dao_code, proposal_id)] = offset

    async def list_tracking_proposals(self, dao_code, states, limit):
        if dao_code in self.fail_list_codes:
            raise DatabaseError("list failed", operation="fetch_all")
        matching = [p for p in self.proposals if p.dao_code == dao_code and p.state in states]
        return [
            ProposalTracking(
                id=p.id,
                dao_code=p.dao_code,
                proposal_id=p.proposal_id,
                state=p.state,
                offset_tracking_vote=self.offsets[(p.dao_code, p.proposal_id)] or 0,
            )
            for p in matching[:limit]
        ]

    async def update_offset_tracking_vote(self, proposal_id, dao_code, offset) -> int:
        self.offset_writes.append((dao_code, proposal_id, offset))
        key = (dao_code, proposal_id)
        if (self.offsets.get(key) or 0) >= offset:
            return 0
        self.offsets[key] = offset
        return 1


class FakeSubscriptionRepository:
    def __init__(self, users=None):
        self.users = list(users or [])
        self.calls: list[dict] = []

    async def list_subscribed_users(
        self, feature, dao_code, proposal_id, event_time, limit, offset, strategies=("true",)
    ):
        self.calls.append(
            {
                "feature": feature,
                "dao_code": dao_code,
                "proposal_id": proposal_id,
                "limit": limit,
                "offset": offset,
            }
        )
        return self.users[offset : offset + limit]


class FakeIndexer:
    """Serves votes per proposal by offset, like the indexer's voteCasts query."""

    def __init__(self, endpoint: str, votes: dict[str, list[VoteCast]], fail: set[str] | None = None):
        self.endpoint = endpoint
        self.votes = votes
        self.fail = fail or set()
        self.calls: list[tuple[str, int, int]] = []

    async def query_votes_offset(self, proposal_id, offset, limit):
        self.calls.append((proposal_id, offset, limit))
        if proposal_id in self.fail:
            raise IndexerError("indexer down", self.endpoint, "QueryVotesOffset")
        return self.votes.get(proposal_id, [])[offset : offset + limit]


@pytest.fixture
def fake_dao_repository():
    return FakeDaoRepository()


@pytest.fixture
def fake_proposal_repository():
    return FakeProposalRepository()


@pytest.fixture
def fake_subscription_repository():
    return FakeSubscriptionRepository()
