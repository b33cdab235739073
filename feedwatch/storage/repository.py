"""PostgreSQL-backed store for watch targets, tenants and delivery outcomes.

Follows the asyncpg repository pattern: module-level SQL, thin async
methods over ``Database`` and ``_row_to_*`` converters. Engine writes
(marker, resolved feed id) update a single column each.
"""

import logging
from datetime import datetime
from typing import Any

from feedwatch.notifications.schemas import DeliveryOutcome
from feedwatch.plans.gate import PlanLimitExceededError
from feedwatch.plans.tiers import PlanConfig, PlanTier, TierLimits
from feedwatch.storage.database import Database
from feedwatch.storage.interfaces import TargetNotFoundError, validate_config_changes
from feedwatch.upstream.schemas import Platform, WatchTarget

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS tenants (
    tenant_id   TEXT PRIMARY KEY,
    plan        TEXT NOT NULL DEFAULT 'free',
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS watch_targets (
    id                TEXT PRIMARY KEY,
    tenant_id         TEXT NOT NULL,
    platform          TEXT NOT NULL,
    external_id       TEXT NOT NULL,
    webhook_url       TEXT NOT NULL,
    enabled_types     TEXT[] NOT NULL DEFAULT '{}',
    template          TEXT NOT NULL DEFAULT '',
    name              TEXT,
    last_seen_marker  TEXT,
    resolved_feed_id  TEXT,
    created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_watch_targets_platform
    ON watch_targets(platform);
CREATE INDEX IF NOT EXISTS idx_watch_targets_tenant
    ON watch_targets(tenant_id);

CREATE TABLE IF NOT EXISTS delivery_outcomes (
    outcome_id    TEXT PRIMARY KEY,
    target_id     TEXT NOT NULL,
    platform      TEXT NOT NULL,
    content_type  TEXT NOT NULL,
    content_id    TEXT,
    message       TEXT NOT NULL,
    status        TEXT NOT NULL,
    error_detail  TEXT,
    delivered_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_delivery_outcomes_target
    ON delivery_outcomes(target_id, delivered_at DESC);
"""

_INSERT_TARGET_SQL = """
INSERT INTO watch_targets (
    id, tenant_id, platform, external_id, webhook_url, enabled_types,
    template, name, last_seen_marker, resolved_feed_id, created_at
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
RETURNING *
"""

_UPDATE_CONFIG_SQL = """
UPDATE watch_targets SET
    name = $2,
    external_id = $3,
    webhook_url = $4,
    enabled_types = $5,
    template = $6,
    resolved_feed_id = $7
WHERE id = $1
RETURNING *
"""

_INSERT_OUTCOME_SQL = """
INSERT INTO delivery_outcomes (
    outcome_id, target_id, platform, content_type, content_id,
    message, status, error_detail, delivered_at
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
"""


class PostgresStore:
    """Store, outcome log and plan lookup backed by PostgreSQL."""

    def __init__(self, database: Database, plan_config: PlanConfig | None = None) -> None:
        self._db = database
        self._plan_config = plan_config or PlanConfig()

    async def create_tables(self) -> None:
        """Create tables and indexes if they don't exist."""
        await self._db.execute(_CREATE_TABLES_SQL)
        logger.info("Database tables ready")

    async def health_check(self) -> bool:
        return await self._db.health_check()

    async def close(self) -> None:
        await self._db.close()

    # Engine-facing operations

    async def list_eligible_targets(self, platform: Platform) -> list[WatchTarget]:
        sql = """
            SELECT * FROM watch_targets
            WHERE platform = $1 AND cardinality(enabled_types) > 0
            ORDER BY created_at
        """
        rows = await self._db.fetch(sql, Platform(platform).value)
        return [_row_to_target(row) for row in rows]

    async def update_marker(self, target_id: str, marker: str) -> None:
        sql = "UPDATE watch_targets SET last_seen_marker = $2 WHERE id = $1"
        await self._db.execute(sql, target_id, marker)

    async def update_resolved_feed_id(self, target_id: str, feed_id: str) -> None:
        sql = "UPDATE watch_targets SET resolved_feed_id = $2 WHERE id = $1"
        await self._db.execute(sql, target_id, feed_id)

    async def append_delivery_outcome(self, outcome: DeliveryOutcome) -> None:
        await self._db.execute(
            _INSERT_OUTCOME_SQL,
            outcome.outcome_id,
            outcome.target_id,
            outcome.platform,
            outcome.content_type,
            outcome.content_id,
            outcome.message,
            outcome.status,
            outcome.error_detail,
            outcome.delivered_at,
        )

    async def count_targets(self, tenant_id: str) -> int:
        sql = "SELECT COUNT(*) FROM watch_targets WHERE tenant_id = $1"
        count = await self._db.fetchval(sql, tenant_id)
        return count or 0

    # Plan lookup

    async def get_tier(self, tenant_id: str) -> TierLimits:
        """Limits for the tenant's plan; tenants without a row are on the free tier."""
        plan = await self._db.fetchval("SELECT plan FROM tenants WHERE tenant_id = $1", tenant_id)
        return self._plan_config.limits_for(PlanTier(plan or PlanTier.FREE))

    async def set_tier(self, tenant_id: str, tier: PlanTier | str) -> None:
        sql = """
            INSERT INTO tenants (tenant_id, plan) VALUES ($1, $2)
            ON CONFLICT (tenant_id) DO UPDATE SET plan = EXCLUDED.plan
        """
        await self._db.execute(sql, tenant_id, PlanTier(tier).value)

    # Configuration operations

    async def create_target(
        self, target: WatchTarget, max_targets: int | None = None,
    ) -> WatchTarget:
        """
        Insert a target.

        With ``max_targets``, the tenant's count and the insert run in one
        transaction under a per-tenant advisory lock, so concurrent
        registrations cannot both pass the limit.
        """
        args = (
            target.id,
            target.tenant_id,
            target.platform.value,
            target.external_id,
            target.webhook_url,
            sorted(ct.value for ct in target.enabled_types),
            target.template,
            target.name,
            target.last_seen_marker,
            target.resolved_feed_id,
            target.created_at,
        )
        if max_targets is None:
            return _row_to_target(await self._db.fetchrow(_INSERT_TARGET_SQL, *args))

        async with self._db.transaction() as conn:
            await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", target.tenant_id)
            current = await conn.fetchval(
                "SELECT COUNT(*) FROM watch_targets WHERE tenant_id = $1", target.tenant_id,
            ) or 0
            if current >= max_targets:
                raise PlanLimitExceededError(target.tenant_id, max_targets, current)
            row = await conn.fetchrow(_INSERT_TARGET_SQL, *args)
        return _row_to_target(row)

    async def get_target(self, target_id: str) -> WatchTarget | None:
        row = await self._db.fetchrow("SELECT * FROM watch_targets WHERE id = $1", target_id)
        if row is None:
            return None
        return _row_to_target(row)

    async def list_targets(self, tenant_id: str) -> list[WatchTarget]:
        sql = "SELECT * FROM watch_targets WHERE tenant_id = $1 ORDER BY created_at DESC"
        rows = await self._db.fetch(sql, tenant_id)
        return [_row_to_target(row) for row in rows]

    async def update_target(self, target_id: str, changes: dict[str, Any]) -> WatchTarget:
        """Apply configuration changes; a changed external id clears the cached feed id."""
        validate_config_changes(changes)
        async with self._db.transaction() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM watch_targets WHERE id = $1 FOR UPDATE", target_id,
            )
            if row is None:
                raise TargetNotFoundError(target_id)

            current = _row_to_target(row)
            data = current.model_dump()
            data.update(changes)
            updated = WatchTarget.model_validate(data)
            feed_id = current.resolved_feed_id
            if updated.external_id != current.external_id:
                feed_id = None

            row = await conn.fetchrow(
                _UPDATE_CONFIG_SQL,
                target_id,
                updated.name,
                updated.external_id,
                updated.webhook_url,
                sorted(ct.value for ct in updated.enabled_types),
                updated.template,
                feed_id,
            )
        return _row_to_target(row)

    async def delete_target(self, target_id: str) -> bool:
        sql = "DELETE FROM watch_targets WHERE id = $1 RETURNING id"
        result = await self._db.fetchval(sql, target_id)
        return result is not None

    # Outcome queries

    async def recent_outcomes(
        self, target_id: str | None = None, limit: int = 10,
    ) -> list[DeliveryOutcome]:
        if target_id is None:
            sql = "SELECT * FROM delivery_outcomes ORDER BY delivered_at DESC LIMIT $1"
            rows = await self._db.fetch(sql, limit)
        else:
            sql = """
                SELECT * FROM delivery_outcomes
                WHERE target_id = $1
                ORDER BY delivered_at DESC
                LIMIT $2
            """
            rows = await self._db.fetch(sql, target_id, limit)
        return [_row_to_outcome(row) for row in rows]

    async def delete_outcomes_before(self, cutoff: datetime) -> int:
        """Delete outcome records older than ``cutoff``; returns the count removed."""
        status = await self._db.execute(
            "DELETE FROM delivery_outcomes WHERE delivered_at < $1", cutoff,
        )
        # asyncpg returns e.g. "DELETE 12"
        try:
            return int(status.split()[-1])
        except (ValueError, IndexError):
            return 0


def _row_to_target(row: Any) -> WatchTarget:
    """Convert an asyncpg Record to a WatchTarget."""
    return WatchTarget(
        id=row["id"],
        tenant_id=row["tenant_id"],
        platform=row["platform"],
        external_id=row["external_id"],
        webhook_url=row["webhook_url"],
        enabled_types=frozenset(row["enabled_types"] or []),
        template=row["template"] or "",
        name=row["name"],
        last_seen_marker=row["last_seen_marker"],
        resolved_feed_id=row["resolved_feed_id"],
        created_at=row["created_at"],
    )


def _row_to_outcome(row: Any) -> DeliveryOutcome:
    """Convert an asyncpg Record to a DeliveryOutcome."""
    return DeliveryOutcome(
        outcome_id=row["outcome_id"],
        target_id=row["target_id"],
        platform=row["platform"],
        content_type=row["content_type"],
        content_id=row["content_id"],
        message=row["message"],
        status=row["status"],
        error_detail=row["error_detail"],
        delivered_at=row["delivered_at"],
    )
