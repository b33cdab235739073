"""
In-memory store for development, demos and tests.

Implements the engine-facing store, the configuration operations, outcome
queries and the plan lookup in one object. Optionally seeded from a JSON
file:

    {
        "tenants": {"tenant-a": "standard"},
        "targets": [{"id": "1", "tenant_id": "tenant-a", "platform": "video-feed", ...}]
    }
"""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from feedwatch.notifications.schemas import DeliveryOutcome
from feedwatch.plans.gate import PlanLimitExceededError
from feedwatch.plans.tiers import PlanConfig, PlanTier, TierLimits
from feedwatch.storage.interfaces import TargetNotFoundError, validate_config_changes
from feedwatch.upstream.schemas import Platform, WatchTarget

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Dict-backed store. Returned targets are copies."""

    def __init__(
        self,
        targets: list[WatchTarget] | None = None,
        tenant_tiers: dict[str, PlanTier | str] | None = None,
        plan_config: PlanConfig | None = None,
        default_tier: PlanTier = PlanTier.FREE,
    ) -> None:
        self._targets: dict[str, WatchTarget] = {t.id: t.model_copy() for t in targets or []}
        self._tiers: dict[str, PlanTier] = {
            tenant: PlanTier(tier) for tenant, tier in (tenant_tiers or {}).items()
        }
        self._plan_config = plan_config or PlanConfig()
        self._default_tier = default_tier
        self._outcomes: list[DeliveryOutcome] = []
        self._lock = asyncio.Lock()

    @classmethod
    def from_json_file(
        cls, path: str | Path, plan_config: PlanConfig | None = None,
    ) -> "InMemoryStore":
        """Build a store from a JSON seed file."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        targets = [WatchTarget.model_validate(t) for t in data.get("targets", [])]
        store = cls(
            targets=targets,
            tenant_tiers=data.get("tenants", {}),
            plan_config=plan_config,
        )
        logger.info("Memory store seeded with %d targets from %s", len(targets), path)
        return store

    # Engine-facing operations

    async def list_eligible_targets(self, platform: Platform) -> list[WatchTarget]:
        async with self._lock:
            targets = [
                t.model_copy()
                for t in self._targets.values()
                if t.platform == platform and t.is_enabled
            ]
        return sorted(targets, key=lambda t: t.created_at)

    async def update_marker(self, target_id: str, marker: str) -> None:
        async with self._lock:
            target = self._targets.get(target_id)
            if target is None:
                logger.warning("Marker update for unknown target %s ignored", target_id)
                return
            target.last_seen_marker = marker

    async def update_resolved_feed_id(self, target_id: str, feed_id: str) -> None:
        async with self._lock:
            target = self._targets.get(target_id)
            if target is not None:
                target.resolved_feed_id = feed_id

    async def append_delivery_outcome(self, outcome: DeliveryOutcome) -> None:
        async with self._lock:
            self._outcomes.append(outcome)

    async def count_targets(self, tenant_id: str) -> int:
        async with self._lock:
            return sum(1 for t in self._targets.values() if t.tenant_id == tenant_id)

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        """Nothing to release."""

    # Plan lookup

    async def get_tier(self, tenant_id: str) -> TierLimits:
        tier = self._tiers.get(tenant_id, self._default_tier)
        return self._plan_config.limits_for(tier)

    def set_tier(self, tenant_id: str, tier: PlanTier | str) -> None:
        self._tiers[tenant_id] = PlanTier(tier)

    # Configuration operations

    async def create_target(
        self, target: WatchTarget, max_targets: int | None = None,
    ) -> WatchTarget:
        async with self._lock:
            if target.id in self._targets:
                raise ValueError(f"Target {target.id} already exists")
            if max_targets is not None:
                current = sum(1 for t in self._targets.values() if t.tenant_id == target.tenant_id)
                if current >= max_targets:
                    raise PlanLimitExceededError(target.tenant_id, max_targets, current)
            self._targets[target.id] = target.model_copy()
        return target.model_copy()

    async def get_target(self, target_id: str) -> WatchTarget | None:
        async with self._lock:
            target = self._targets.get(target_id)
            return target.model_copy() if target else None

    async def list_targets(self, tenant_id: str) -> list[WatchTarget]:
        async with self._lock:
            targets = [t.model_copy() for t in self._targets.values() if t.tenant_id == tenant_id]
        return sorted(targets, key=lambda t: t.created_at, reverse=True)

    async def update_target(self, target_id: str, changes: dict[str, Any]) -> WatchTarget:
        validate_config_changes(changes)
        async with self._lock:
            current = self._targets.get(target_id)
            if current is None:
                raise TargetNotFoundError(target_id)

            data = current.model_dump()
            data.update(changes)
            if changes.get("external_id", current.external_id) != current.external_id:
                data["resolved_feed_id"] = None
            updated = WatchTarget.model_validate(data)
            self._targets[target_id] = updated
            return updated.model_copy()

    async def delete_target(self, target_id: str) -> bool:
        async with self._lock:
            return self._targets.pop(target_id, None) is not None

    # Outcome queries

    async def recent_outcomes(
        self, target_id: str | None = None, limit: int = 10,
    ) -> list[DeliveryOutcome]:
        async with self._lock:
            outcomes = [
                o for o in self._outcomes
                if target_id is None or o.target_id == target_id
            ]
        outcomes.sort(key=lambda o: o.delivered_at, reverse=True)
        return outcomes[:limit]

    async def delete_outcomes_before(self, cutoff: datetime) -> int:
        async with self._lock:
            before = len(self._outcomes)
            self._outcomes = [o for o in self._outcomes if o.delivered_at >= cutoff]
            return before - len(self._outcomes)

    @property
    def outcomes(self) -> list[DeliveryOutcome]:
        """All recorded outcomes in append order (for inspection/testing)."""
        return list(self._outcomes)
