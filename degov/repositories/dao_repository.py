"""
Postgres repository for mirrored DAO registry entries.

Rows are written only by the DAO sync job. Upserts compare the stored
values first, so re-running a sync with unchanged input touches nothing.
"""

import uuid
from collections.abc import Iterable

from psycopg.types.json import Jsonb

from degov.db.helpers import execute_query, execute_transaction, fetch_all, with_db_retry
from degov.infrastructure.observability.logging import get_logger
from degov.models.domain.dao import DaoRecord, DaoState, RefreshDaoInput, StoreDaoChipInput

logger = get_logger(__name__)

AGENT_CHIP_CODE = "AGENT"


class DaoRepository:
    """Persistence helpers for dgv_dao, dgv_dao_config and dgv_dao_chip."""

    @staticmethod
    async def upsert_dao(dao: RefreshDaoInput) -> int:
        """Insert or refresh a DAO and its config. Returns the number of rows changed."""
        dao_query = """
            INSERT INTO dgv_dao (
                id, code, name, chain_id, chain_name, logo, endpoint, tags,
                config_link, state, count_proposals, ctime, utime
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
            ON CONFLICT (code)
            DO UPDATE SET
                name = EXCLUDED.name,
                chain_id = EXCLUDED.chain_id,
                chain_name = EXCLUDED.chain_name,
                logo = EXCLUDED.logo,
                endpoint = EXCLUDED.endpoint,
                tags = EXCLUDED.tags,
                config_link = EXCLUDED.config_link,
                state = EXCLUDED.state,
                utime = NOW()
            WHERE (
                dgv_dao.name, dgv_dao.chain_id, dgv_dao.chain_name, dgv_dao.logo,
                dgv_dao.endpoint, dgv_dao.tags, dgv_dao.config_link, dgv_dao.state
            ) IS DISTINCT FROM (
                EXCLUDED.name, EXCLUDED.chain_id, EXCLUDED.chain_name, EXCLUDED.logo,
                EXCLUDED.endpoint, EXCLUDED.tags, EXCLUDED.config_link, EXCLUDED.state
            )
        """

        config_query = """
            INSERT INTO dgv_dao_config (dao_code, raw, config, ctime, utime)
            VALUES (%s, %s, %s, NOW(), NOW())
            ON CONFLICT (dao_code)
            DO UPDATE SET
                raw = EXCLUDED.raw,
                config = EXCLUDED.config,
                utime = NOW()
            WHERE (dgv_dao_config.raw, dgv_dao_config.config)
                IS DISTINCT FROM (EXCLUDED.raw, EXCLUDED.config)
        """

        return await execute_transaction(
            [
                (
                    dao_query,
                    (
                        str(uuid.uuid4()),
                        dao.code,
                        dao.name,
                        dao.chain_id,
                        dao.chain_name,
                        dao.logo,
                        dao.endpoint,
                        list(dao.tags),
                        dao.config_link,
                        DaoState.ACTIVE.value,
                        dao.count_proposals,
                    ),
                ),
                (config_query, (dao.code, dao.raw_config, Jsonb(dao.config))),
            ]
        )

    @staticmethod
    @with_db_retry()
    async def mark_inactive(active_codes: Iterable[str]) -> int:
        """Mark every DAO not in `active_codes` inactive. Rows are never deleted."""
        query = """
            UPDATE dgv_dao
            SET state = %s, utime = NOW()
            WHERE state <> %s
              AND NOT (code = ANY(%s::text[]))
        """
        codes = sorted(set(active_codes))
        affected = await execute_query(
            query, (DaoState.INACTIVE.value, DaoState.INACTIVE.value, codes)
        )
        if affected:
            logger.info("Marked DAOs inactive", count=affected, active_count=len(codes))
        return affected

    @staticmethod
    async def list_daos(state: DaoState | None = DaoState.ACTIVE) -> list[DaoRecord]:
        query = """
            SELECT d.code, d.name, d.state, d.chain_id, d.chain_name,
                   d.config_link, d.tags, c.config
            FROM dgv_dao d
            LEFT JOIN dgv_dao_config c ON c.dao_code = d.code
            WHERE (%s::text IS NULL OR d.state = %s::text)
            ORDER BY d.code
        """
        state_value = state.value if state else None
        rows = await fetch_all(query, (state_value, state_value))
        return [
            DaoRecord(
                code=row["code"],
                name=row["name"],
                state=DaoState(row["state"]),
                chain_id=row.get("chain_id"),
                chain_name=row.get("chain_name"),
                config_link=row.get("config_link"),
                tags=list(row.get("tags") or []),
                config=row.get("config"),
            )
            for row in rows
        ]

    @staticmethod
    async def store_chip_agent(chip: StoreDaoChipInput) -> int:
        query = """
            INSERT INTO dgv_dao_chip (id, dao_code, chip_code, agent_config, ctime, utime)
            VALUES (%s, %s, %s, %s, NOW(), NOW())
            ON CONFLICT (dao_code, chip_code)
            DO UPDATE SET
                agent_config = EXCLUDED.agent_config,
                utime = NOW()
            WHERE dgv_dao_chip.agent_config IS DISTINCT FROM EXCLUDED.agent_config
        """
        return await execute_query(
            query,
            (str(uuid.uuid4()), chip.code, AGENT_CHIP_CODE, Jsonb(chip.agent_config)),
        )
