"""Store interfaces consumed by the engine.

The engine touches persistence only through these narrow protocols. The
engine-side writes (marker, resolved feed id) are column-scoped so they
never overwrite fields owned by tenant-facing configuration updates.
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from feedwatch.notifications.schemas import DeliveryOutcome
from feedwatch.plans.tiers import TierLimits
from feedwatch.upstream.schemas import Platform, WatchTarget

# Fields tenant-facing configuration updates may change.
CONFIG_FIELDS: frozenset[str] = frozenset({
    "name",
    "external_id",
    "webhook_url",
    "enabled_types",
    "template",
})


class TargetNotFoundError(KeyError):
    """Raised by configuration operations on an unknown target id."""


@runtime_checkable
class WatchTargetStore(Protocol):
    """Engine-facing store operations."""

    async def list_eligible_targets(self, platform: Platform) -> list[WatchTarget]: ...

    async def update_marker(self, target_id: str, marker: str) -> None: ...

    async def update_resolved_feed_id(self, target_id: str, feed_id: str) -> None: ...

    async def append_delivery_outcome(self, outcome: DeliveryOutcome) -> None: ...

    async def count_targets(self, tenant_id: str) -> int: ...


class TargetConfigStore(Protocol):
    """Tenant-facing configuration operations."""

    async def create_target(
        self, target: WatchTarget, max_targets: int | None = None,
    ) -> WatchTarget:
        """Insert ``target``; with ``max_targets``, count and insert atomically."""
        ...

    async def get_target(self, target_id: str) -> WatchTarget | None: ...

    async def list_targets(self, tenant_id: str) -> list[WatchTarget]: ...

    async def update_target(self, target_id: str, changes: dict[str, Any]) -> WatchTarget: ...

    async def delete_target(self, target_id: str) -> bool: ...


class OutcomeQueries(Protocol):
    async def recent_outcomes(
        self, target_id: str | None = None, limit: int = 10,
    ) -> list[DeliveryOutcome]: ...

    async def delete_outcomes_before(self, cutoff: datetime) -> int: ...


class PlanStore(Protocol):
    async def get_tier(self, tenant_id: str) -> TierLimits: ...


def validate_config_changes(changes: dict[str, Any]) -> None:
    """Reject configuration updates touching engine-owned fields."""
    unknown = set(changes) - CONFIG_FIELDS
    if unknown:
        raise ValueError(f"Fields not updatable through configuration: {sorted(unknown)}")
