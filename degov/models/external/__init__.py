"""
Pydantic models for documents and responses from external services.
"""

from .agent import AgentDaoConfig, AgentDaosResponse
from .dao_config import DaoConfig, DaoConfigResult
from .indexer import DataMetrics, Proposal, ProposalQuorum, VoteCast
from .registry import DaoRegistryConfig, GitHubTag, RegistryConfigResult, RegistryLink

__all__ = [
    "AgentDaoConfig",
    "AgentDaosResponse",
    "DaoConfig",
    "DaoConfigResult",
    "DaoRegistryConfig",
    "DataMetrics",
    "GitHubTag",
    "Proposal",
    "ProposalQuorum",
    "RegistryConfigResult",
    "RegistryLink",
    "VoteCast",
]
