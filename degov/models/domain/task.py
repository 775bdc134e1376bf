"""
Domain models for scheduled background tasks.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable


@runtime_checkable
class Task(Protocol):
    """A named unit of recurring work driven by the scheduler."""

    @property
    def name(self) -> str: ...

    async def execute(self) -> None: ...


@dataclass(slots=True, frozen=True)
class TaskConfig:
    name: str
    interval_seconds: float
    enabled: bool = True


@dataclass(slots=True, frozen=True)
class TaskDefinition:
    """Pairs a task's schedule with the constructor that builds it."""

    config: TaskConfig
    constructor: Callable[[], Task]


@dataclass(slots=True)
class TaskState:
    """Execution state of a registered task. Owned by the scheduler."""

    name: str
    interval_seconds: float
    enabled: bool = True
    is_running: bool = False
    last_run_at: datetime | None = None
    last_error: str | None = None
    runs: int = 0
    failures: int = 0
    skipped_ticks: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "enabled": self.enabled,
            "is_running": self.is_running,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
            "runs": self.runs,
            "failures": self.failures,
            "skipped_ticks": self.skipped_ticks,
        }
