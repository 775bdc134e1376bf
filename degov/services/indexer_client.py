"""
GraphQL client for the DeGov indexer.

Each DAO publishes its own indexer endpoint in its config document; one
DegovIndexer instance wraps one endpoint. Every call is bounded by the
configured HTTP timeout and surfaces failures as IndexerError.
"""

from typing import Any

import httpx
from pydantic import ValidationError

from degov.config import settings
from degov.infrastructure.observability.logging import get_logger
from degov.models.external.indexer import (
    DataMetrics,
    GraphQLResponse,
    Proposal,
    ProposalQuorum,
    VoteCast,
)

logger = get_logger(__name__)

VOTE_FIELDS = """
    id
    voter
    proposalId
    support
    weight
    reason
    params
    blockNumber
    blockTimestamp
    transactionHash
"""

QUERY_GLOBAL_DATA_METRICS = """
query QueryDataMetrics {
  dataMetrics(where: {id_eq: "global"}) {
    proposalsCount
    memberCount
    powerSum
    votesCount
    votesWeightAbstainSum
    votesWeightAgainstSum
    votesWeightForSum
    votesWithParamsCount
    votesWithoutParamsCount
    id
  }
}
"""

QUERY_PROPOSALS_AFTER_BLOCK = """
query QueryProposalsAfterBlock($limit: Int!, $offset: Int!, $blockNumber: BigInt!) {
  proposals(orderBy: blockNumber_ASC_NULLS_FIRST, limit: $limit, offset: $offset, where: {blockNumber_gt: $blockNumber}) {
    id
    blockNumber
    blockTimestamp
    proposalId
  }
}
"""

QUERY_VOTES_OFFSET = f"""
query QueryVotesOffset($limit: Int!, $offset: Int!, $proposalId: String!) {{
  voteCasts(orderBy: [blockNumber_ASC_NULLS_FIRST, id_ASC], limit: $limit, offset: $offset, where: {{proposalId_eq: $proposalId}}) {{
{VOTE_FIELDS}
  }}
}}
"""

QUERY_VOTE = f"""
query QueryVote($id: String!) {{
  voteCasts(where: {{id_eq: $id}}, limit: 1) {{
{VOTE_FIELDS}
  }}
}}
"""

QUERY_VOTE_BY_VOTER = f"""
query QueryVoteByVoter($proposalId: String!, $voter: String!) {{
  voteCasts(where: {{proposalId_eq: $proposalId, voter_eq: $voter}}, limit: 1) {{
{VOTE_FIELDS}
  }}
}}
"""

QUERY_PROPOSAL_QUORUM = """
query QueryProposalQuorum($proposalId: String!) {
  proposals(where: {proposalId_eq: $proposalId}, limit: 1) {
    proposalId
    quorum
    decimals
  }
}
"""


class IndexerError(Exception):
    """Raised when an indexer query fails at transport, HTTP or GraphQL level."""

    def __init__(self, message: str, endpoint: str, operation: str | None = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.operation = operation


class DegovIndexer:
    """Typed queries over one DAO's indexer endpoint."""

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not endpoint:
            raise ValueError("Indexer endpoint is required")
        self.endpoint = endpoint
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    async def _run(self, operation: str, query: str, variables: dict[str, Any] | None = None) -> dict:
        payload = {"query": query, "variables": variables or {}}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, json=payload)
        except httpx.TimeoutException as e:
            raise IndexerError(
                f"{operation} timed out after {self.timeout}s", self.endpoint, operation
            ) from e
        except httpx.RequestError as e:
            raise IndexerError(
                f"{operation} request failed: {e}", self.endpoint, operation
            ) from e

        if response.status_code != 200:
            logger.warning(
                "Indexer returned unexpected status",
                endpoint=self.endpoint,
                operation=operation,
                status_code=response.status_code,
            )
            raise IndexerError(
                f"{operation} returned status {response.status_code}", self.endpoint, operation
            )

        try:
            body = GraphQLResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise IndexerError(
                f"{operation} returned an unreadable body: {e}", self.endpoint, operation
            ) from e

        if body.errors:
            messages = "; ".join(str(err.get("message", err)) for err in body.errors)
            raise IndexerError(f"{operation} failed: {messages}", self.endpoint, operation)

        return body.data or {}

    @staticmethod
    def _parse(model, rows: list[dict], operation: str, endpoint: str) -> list:
        try:
            return [model.model_validate(row) for row in rows or []]
        except ValidationError as e:
            raise IndexerError(f"{operation} returned malformed rows: {e}", endpoint, operation) from e

    async def query_global_data_metrics(self) -> DataMetrics:
        data = await self._run("QueryDataMetrics", QUERY_GLOBAL_DATA_METRICS)
        metrics = self._parse(DataMetrics, data.get("dataMetrics"), "QueryDataMetrics", self.endpoint)
        if not metrics:
            raise IndexerError("no data metrics found for global id", self.endpoint, "QueryDataMetrics")
        return metrics[0]

    async def query_proposals_after_block(self, block_number: int, limit: int) -> list[Proposal]:
        data = await self._run(
            "QueryProposalsAfterBlock",
            QUERY_PROPOSALS_AFTER_BLOCK,
            {"limit": limit, "offset": 0, "blockNumber": str(block_number)},
        )
        return self._parse(Proposal, data.get("proposals"), "QueryProposalsAfterBlock", self.endpoint)

    async def query_votes_offset(self, proposal_id: str, offset: int, limit: int) -> list[VoteCast]:
        """Votes for a proposal in indexer order, starting at `offset`."""
        data = await self._run(
            "QueryVotesOffset",
            QUERY_VOTES_OFFSET,
            {"limit": limit, "offset": offset, "proposalId": proposal_id},
        )
        return self._parse(VoteCast, data.get("voteCasts"), "QueryVotesOffset", self.endpoint)

    async def query_vote(self, vote_id: str) -> VoteCast | None:
        data = await self._run("QueryVote", QUERY_VOTE, {"id": vote_id})
        votes = self._parse(VoteCast, data.get("voteCasts"), "QueryVote", self.endpoint)
        return votes[0] if votes else None

    async def query_vote_by_voter(self, proposal_id: str, voter: str) -> VoteCast | None:
        data = await self._run(
            "QueryVoteByVoter",
            QUERY_VOTE_BY_VOTER,
            {"proposalId": proposal_id, "voter": voter.lower()},
        )
        votes = self._parse(VoteCast, data.get("voteCasts"), "QueryVoteByVoter", self.endpoint)
        return votes[0] if votes else None

    async def query_proposal_quorum(self, proposal_id: str) -> ProposalQuorum | None:
        data = await self._run(
            "QueryProposalQuorum", QUERY_PROPOSAL_QUORUM, {"proposalId": proposal_id}
        )
        rows = self._parse(ProposalQuorum, data.get("proposals"), "QueryProposalQuorum", self.endpoint)
        return rows[0] if rows else None
