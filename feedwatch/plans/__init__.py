"""Subscription tiers and the plan gate."""

from feedwatch.plans.gate import (
    PlanGate,
    PlanLimitExceededError,
    PlanLookup,
    RegistrationCheck,
    TargetCounter,
    cadence_admits,
)
from feedwatch.plans.tiers import PlanConfig, PlanTier, TierLimits

__all__ = [
    "PlanConfig",
    "PlanGate",
    "PlanLimitExceededError",
    "PlanLookup",
    "PlanTier",
    "RegistrationCheck",
    "TargetCounter",
    "TierLimits",
    "cadence_admits",
]
