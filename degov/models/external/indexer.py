"""
Indexer GraphQL response models.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _IndexerModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class DataMetrics(_IndexerModel):
    id: str
    proposals_count: int = 0
    member_count: int = 0
    power_sum: str = "0"
    votes_count: int = 0
    votes_weight_abstain_sum: str = "0"
    votes_weight_against_sum: str = "0"
    votes_weight_for_sum: str = "0"
    votes_with_params_count: int = 0
    votes_without_params_count: int = 0


class Proposal(_IndexerModel):
    id: str
    proposal_id: str
    block_number: str
    block_timestamp: str


class VoteCast(_IndexerModel):
    """One vote as emitted by the governor's VoteCast event."""

    id: str
    voter: str
    proposal_id: str
    support: int
    weight: str = "0"
    reason: str | None = None
    params: str | None = None
    block_number: str | None = None
    block_timestamp: str | None = None
    transaction_hash: str | None = None

    def weight_value(self) -> int | None:
        """Vote weight as an integer, or None when the indexer value is not a bigint."""
        try:
            return int(self.weight)
        except (TypeError, ValueError):
            return None


class ProposalQuorum(_IndexerModel):
    proposal_id: str
    quorum: str = "0"
    decimals: str | None = None


class GraphQLResponse(BaseModel):
    data: dict | None = None
    errors: list[dict] = Field(default_factory=list)
