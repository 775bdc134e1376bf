"""
Domain models for DAOs mirrored from the registry.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class DaoState(StrEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


@dataclass(slots=True)
class RefreshDaoInput:
    """Everything the sync job writes for one DAO on one run."""

    code: str
    name: str
    chain_name: str
    config_link: str
    raw_config: str
    config: dict[str, Any]
    tags: list[str] = field(default_factory=list)
    chain_id: int | None = None
    logo: str | None = None
    endpoint: str | None = None
    count_proposals: int = 0


@dataclass(slots=True)
class DaoRecord:
    """A stored DAO row joined with its parsed config."""

    code: str
    name: str
    state: DaoState
    chain_id: int | None = None
    chain_name: str | None = None
    config_link: str | None = None
    tags: list[str] = field(default_factory=list)
    config: dict[str, Any] | None = None


@dataclass(slots=True)
class StoreDaoChipInput:
    code: str
    agent_config: dict[str, Any]
