"""
Agent registry models (auxiliary chip configuration per DAO).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AgentDaoConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: str = ""


class AgentDaosResponse(BaseModel):
    """Envelope returned by the agent service: code 0 means success."""

    code: int = 0
    message: str | None = None
    data: list[AgentDaoConfig] = Field(default_factory=list)

    def configs_by_code(self) -> dict[str, dict[str, Any]]:
        return {item.code: item.model_dump() for item in self.data if item.code}
