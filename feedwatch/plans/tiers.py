"""Subscription tier limits.

Each tier caps the number of watch targets a tenant may register (across
both platforms) and sets the check cadence in minutes. Defaults can be
overridden via ``PLANS_*`` environment variables.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlanTier(str, Enum):
    FREE = "free"
    STANDARD = "standard"
    PREMIUM = "premium"


@dataclass(frozen=True)
class TierLimits:
    """Limits of one tier as returned by the plan lookup."""

    max_targets: int
    cadence_minutes: int
    display_name: str = ""

    def __post_init__(self) -> None:
        if self.cadence_minutes < 1:
            raise ValueError(f"cadence_minutes must be >= 1, got {self.cadence_minutes}")
        if self.max_targets < 0:
            raise ValueError(f"max_targets must be >= 0, got {self.max_targets}")


class PlanConfig(BaseSettings):
    """Configuration for tier limits."""

    model_config = SettingsConfigDict(
        env_prefix="PLANS_",
        case_sensitive=False,
        extra="ignore",
    )

    free_max_targets: int = Field(default=1, ge=0)
    free_cadence_minutes: int = Field(default=30, ge=1, le=60)
    standard_max_targets: int = Field(default=5, ge=0)
    standard_cadence_minutes: int = Field(default=5, ge=1, le=60)
    premium_max_targets: int = Field(default=20, ge=0)
    premium_cadence_minutes: int = Field(default=1, ge=1, le=60)

    def limits_for(self, tier: PlanTier | str) -> TierLimits:
        """Limits for ``tier``; raises ValueError for unknown tier names."""
        tier = PlanTier(tier)
        if tier == PlanTier.FREE:
            return TierLimits(self.free_max_targets, self.free_cadence_minutes, "Free")
        if tier == PlanTier.STANDARD:
            return TierLimits(self.standard_max_targets, self.standard_cadence_minutes, "Standard")
        return TierLimits(self.premium_max_targets, self.premium_cadence_minutes, "Premium")


def format_cadence(minutes: int) -> str:
    """Human-readable check cadence."""
    if minutes >= 60 and minutes % 60 == 0:
        hours = minutes // 60
        return "every hour" if hours == 1 else f"every {hours} hours"
    if minutes == 1:
        return "every minute"
    return f"every {minutes} minutes"
