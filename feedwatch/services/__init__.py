"""Long-running services: per-target pipeline, poll schedulers, watch service."""

from feedwatch.services.pipeline import KeyedLocks, TargetPipeline
from feedwatch.services.poll_scheduler import PollScheduler, SchedulerState, SweepSummary
from feedwatch.services.watch_service import WatchService

__all__ = [
    "KeyedLocks",
    "PollScheduler",
    "SchedulerState",
    "SweepSummary",
    "TargetPipeline",
    "WatchService",
]
