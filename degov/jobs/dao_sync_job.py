"""
DAO Sync Job.

Mirrors the remote DAO registry into the local store: fetches the registry
document, loads each DAO's config, upserts it, attaches agent chip configs
and marks DAOs that left the registry inactive.
"""

from datetime import UTC, datetime
from typing import Any

from degov.infrastructure.observability.logging import get_logger, log_job_run
from degov.models.domain.dao import RefreshDaoInput, StoreDaoChipInput
from degov.models.external.registry import DaoRegistryConfig, RegistryLink
from degov.repositories.dao_repository import DaoRepository
from degov.services.registry_fetcher import (
    AgentRegistryError,
    DaoConfigError,
    RegistryFetcher,
    RegistryFetchError,
)

logger = get_logger(__name__)

JOB_NAME = "dao-sync"


class DaoSyncJobError(Exception):
    """Raised when a sync run cannot complete."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class DaoSyncMetrics:
    """Metrics tracking for one sync run."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.registry_ref: str | None = None
        self.chains = 0
        self.daos_seen = 0
        self.daos_synced = 0
        self.daos_changed = 0
        self.daos_skipped = 0
        self.daos_failed = 0
        self.daos_marked_inactive = 0
        self.chips_stored = 0
        self.chip_failures = 0
        self.agent_registry_available = False
        self.total_duration_seconds = 0.0
        self.errors: list[dict] = []

    def record_failure(self, code: str, chain: str, error: str, skipped: bool = False):
        if skipped:
            self.daos_skipped += 1
        else:
            self.daos_failed += 1
        self.errors.append(
            {
                "dao": code,
                "chain": chain,
                "error": error,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "registry_ref": self.registry_ref,
            "chains": self.chains,
            "daos_seen": self.daos_seen,
            "daos_synced": self.daos_synced,
            "daos_changed": self.daos_changed,
            "daos_skipped": self.daos_skipped,
            "daos_failed": self.daos_failed,
            "daos_marked_inactive": self.daos_marked_inactive,
            "chips_stored": self.chips_stored,
            "chip_failures": self.chip_failures,
            "agent_registry_available": self.agent_registry_available,
            "errors_count": len(self.errors),
        }


class DaoSyncJob:
    """Refreshes DAO registry entries from the remote registry."""

    name = JOB_NAME

    def __init__(self, fetcher: RegistryFetcher | None = None, dao_repository=DaoRepository):
        self.fetcher = fetcher or RegistryFetcher()
        self.dao_repository = dao_repository
        self.metrics = DaoSyncMetrics()
        self.last_run_time: datetime | None = None

    async def execute(self) -> None:
        await self.sync_daos()

    async def sync_daos(self) -> dict:
        """
        Run one sync.

        Returns:
            Dict: run metrics

        Raises:
            DaoSyncJobError: registry unreachable, or marking inactive DAOs failed
        """
        async with self.fetcher.session():
            return await self._sync()

    async def _sync(self) -> dict:
        self.metrics.reset()
        logger.info("Starting DAO synchronization")

        try:
            registry = await self.fetcher.fetch_registry_config()
        except RegistryFetchError as e:
            self.metrics.finalize()
            log_job_run(JOB_NAME, self.metrics.to_dict(), error=str(e))
            raise DaoSyncJobError(
                f"failed to fetch registry config: {e}", operation="fetch_registry"
            ) from e

        self.metrics.registry_ref = registry.remote_link.base_link
        self.metrics.chains = len(registry.chains)
        logger.info(
            "Fetched registry config",
            chains=len(registry.chains),
            daos=registry.dao_count(),
            base_link=registry.remote_link.base_link,
        )

        agent_configs = await self._load_agent_configs()
        active_codes: set[str] = set()

        for chain_name, daos in registry.chains.items():
            for dao_info in daos:
                self.metrics.daos_seen += 1
                synced = await self._process_single_dao(
                    registry.remote_link, dao_info, chain_name, active_codes
                )
                if synced and agent_configs is not None:
                    await self._process_chip(agent_configs, dao_info.code)

        try:
            self.metrics.daos_marked_inactive = await self.dao_repository.mark_inactive(active_codes)
        except Exception as e:
            self.metrics.finalize()
            log_job_run(JOB_NAME, self.metrics.to_dict(), error=str(e))
            raise DaoSyncJobError(
                f"failed to mark inactive DAOs: {e}", operation="mark_inactive"
            ) from e

        self.metrics.finalize()
        self.last_run_time = datetime.now(UTC)
        metrics = self.metrics.to_dict()
        metrics["active_daos"] = len(active_codes)
        log_job_run(JOB_NAME, metrics)
        return metrics

    async def _load_agent_configs(self) -> dict[str, dict[str, Any]] | None:
        try:
            configs = await self.fetcher.fetch_agent_daos()
        except AgentRegistryError as e:
            logger.warning("Failed to fetch agent DAOs, continuing without them", error=str(e))
            return None

        self.metrics.agent_registry_available = True
        return configs

    async def _process_single_dao(
        self,
        remote_link: RegistryLink,
        dao_info: DaoRegistryConfig,
        chain_name: str,
        active_codes: set[str],
    ) -> bool:
        """Sync one DAO. Returns False when it was skipped or failed."""
        code = dao_info.code

        if not code or not dao_info.config:
            logger.warning(
                "DAO registry entry missing essential fields",
                chain=chain_name,
                dao=code or None,
                config=dao_info.config or None,
            )
            self.metrics.record_failure(code, chain_name, "missing code or config", skipped=True)
            return False

        config_url = remote_link.resolve(dao_info.config)

        try:
            result = await self.fetcher.fetch_dao_config(config_url, code)
        except DaoConfigError as e:
            logger.error("Failed to fetch DAO config", dao=code, chain=chain_name, error=str(e))
            self.metrics.record_failure(code, chain_name, str(e))
            return False

        config = result.config
        if not config.name:
            logger.warning("DAO config missing name", dao=code, config_url=config_url)
            self.metrics.record_failure(code, chain_name, "missing name", skipped=True)
            return False

        active_codes.add(code)

        try:
            changed = await self.dao_repository.upsert_dao(
                RefreshDaoInput(
                    code=code,
                    name=config.name,
                    chain_name=chain_name,
                    chain_id=config.chain_id,
                    logo=config.logo,
                    endpoint=config.site_url,
                    tags=list(dao_info.tags),
                    config_link=config_url,
                    raw_config=result.raw,
                    config=config.to_storage(),
                )
            )
        except Exception as e:
            logger.error("Failed to store DAO", dao=code, chain=chain_name, error=str(e))
            self.metrics.record_failure(code, chain_name, str(e))
            return False

        self.metrics.daos_synced += 1
        if changed:
            self.metrics.daos_changed += 1
        logger.debug("Synced DAO", dao=code, chain=chain_name, changed=bool(changed))
        return True

    async def _process_chip(self, agent_configs: dict[str, dict[str, Any]], code: str) -> None:
        agent_config = agent_configs.get(code)
        if agent_config is None:
            return

        try:
            await self.dao_repository.store_chip_agent(
                StoreDaoChipInput(code=code, agent_config=agent_config)
            )
        except Exception as e:
            self.metrics.chip_failures += 1
            logger.warning("Failed to store chip for DAO", dao=code, error=str(e))
            return

        self.metrics.chips_stored += 1
        logger.info("Stored chip for DAO", dao=code)

    def get_job_status(self) -> dict:
        return {
            "job_name": JOB_NAME,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "last_run_metrics": self.metrics.to_dict() if self.last_run_time else None,
        }
