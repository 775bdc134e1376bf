"""
Registry document models.
The registry is a YAML mapping of chain name -> list of DAO descriptors.
"""

from dataclasses import dataclass

from pydantic import BaseModel, Field, field_validator


class DaoRegistryConfig(BaseModel):
    """One DAO descriptor inside the registry document."""

    code: str = Field(default="", description="Stable DAO identifier")
    tags: list[str] = Field(default_factory=list, description="Optional registry tags")
    config: str = Field(default="", description="Config document path, relative or absolute")

    @field_validator("code", "config", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else str(value).strip()

    @field_validator("tags", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value


class GitHubTag(BaseModel):
    name: str


@dataclass(slots=True, frozen=True)
class RegistryLink:
    """Base directory and registry document URL for one ref."""

    base_link: str
    config_link: str

    def resolve(self, path: str) -> str:
        """Join a DAO config path onto the base link unless it is absolute."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_link}/{path.lstrip('/')}"


@dataclass(slots=True)
class RegistryConfigResult:
    remote_link: RegistryLink
    chains: dict[str, list[DaoRegistryConfig]]

    def dao_count(self) -> int:
        return sum(len(daos) for daos in self.chains.values())
