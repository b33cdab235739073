"""Plan gate: tier-based admission for checks and registrations.

A tenant's check runs on a tick only when the wall-clock minute is a
multiple of its tier cadence. Registration is allowed while the tenant's
combined target count across both platforms is below the tier limit.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from feedwatch.plans.tiers import TierLimits, format_cadence
from feedwatch.upstream.schemas import Platform

logger = logging.getLogger(__name__)


class PlanLookup(Protocol):
    async def get_tier(self, tenant_id: str) -> TierLimits: ...


class TargetCounter(Protocol):
    async def count_targets(self, tenant_id: str) -> int: ...


class PlanLimitExceededError(Exception):
    """Raised when a tenant tries to register beyond its tier limit."""

    def __init__(self, tenant_id: str, limit: int, current: int):
        super().__init__(
            f"Tenant {tenant_id} has {current} of {limit} allowed watch targets"
        )
        self.tenant_id = tenant_id
        self.limit = limit
        self.current = current


@dataclass(frozen=True)
class RegistrationCheck:
    allowed: bool
    limit: int
    current: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.current)


def cadence_admits(cadence_minutes: int, now: datetime) -> bool:
    """True when ``now``'s minute falls on the cadence (cadence 1 always admits)."""
    return now.minute % cadence_minutes == 0


class PlanGate:
    """Admission control backed by the plan lookup and the target store."""

    def __init__(self, plans: PlanLookup, targets: TargetCounter) -> None:
        self._plans = plans
        self._targets = targets

    async def should_run(self, tenant_id: str, now: datetime | None = None) -> bool:
        """
        Decide whether ``tenant_id``'s checks may run on this tick.

        A failing plan lookup denies the tick; the tenant is retried on the
        next one.
        """
        now = now or datetime.now(timezone.utc)
        try:
            limits = await self._plans.get_tier(tenant_id)
        except Exception as e:
            logger.warning("Plan lookup failed for tenant %s, denying tick: %s", tenant_id, e)
            return False
        return cadence_admits(limits.cadence_minutes, now)

    async def can_register(self, tenant_id: str, platform: Platform) -> RegistrationCheck:
        """
        Check whether ``tenant_id`` may add another target.

        The count covers both platforms; ``platform`` names the platform of
        the target being added and only appears in the log line.
        """
        limits = await self._plans.get_tier(tenant_id)
        current = await self._targets.count_targets(tenant_id)
        check = RegistrationCheck(
            allowed=current < limits.max_targets,
            limit=limits.max_targets,
            current=current,
        )
        if not check.allowed:
            logger.info(
                "Registration of %s target denied for tenant %s (%d/%d)",
                platform.value, tenant_id, current, limits.max_targets,
            )
        return check

    async def ensure_can_register(self, tenant_id: str, platform: Platform) -> RegistrationCheck:
        """Like can_register, but raises PlanLimitExceededError when denied."""
        check = await self.can_register(tenant_id, platform)
        if not check.allowed:
            raise PlanLimitExceededError(tenant_id, check.limit, check.current)
        return check

    async def display_info(self, tenant_id: str) -> dict:
        """Plan summary for tenant-facing surfaces."""
        limits = await self._plans.get_tier(tenant_id)
        current = await self._targets.count_targets(tenant_id)
        return {
            "plan_name": limits.display_name,
            "current_count": current,
            "max_count": limits.max_targets,
            "remaining": max(0, limits.max_targets - current),
            "check_interval": format_cadence(limits.cadence_minutes),
        }
