"""
DAO configuration document models.

Only the fields the worker reads are typed; everything else in the YAML is
kept (extra="allow") so the stored parsed config round-trips the document.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class ChainConfig(_ConfigModel):
    id: int | None = None
    name: str | None = None
    rpcs: list[str] = Field(default_factory=list)


class IndexerConfig(_ConfigModel):
    endpoint: str = ""
    start_block: int | None = None


class GovernorTokenConfig(_ConfigModel):
    address: str | None = None
    standard: str | None = None


class ContractsConfig(_ConfigModel):
    governor: str | None = None
    governor_token: GovernorTokenConfig | None = None
    time_lock: str | None = None


class DaoConfig(_ConfigModel):
    name: str = ""
    code: str | None = None
    logo: str | None = None
    site_url: str | None = None
    description: str | None = None
    chain: ChainConfig | None = None
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    contracts: ContractsConfig | None = None

    @property
    def chain_id(self) -> int | None:
        return self.chain.id if self.chain else None

    def to_storage(self) -> dict:
        """JSON-safe dict using the document's own (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DaoConfigResult(BaseModel):
    raw: str
    config: DaoConfig
