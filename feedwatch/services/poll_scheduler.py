"""
Poll scheduler - one periodic sweep loop per platform.

States:
    idle     no timer armed
    running  timer armed; one sweep fired immediately on start

Only one sweep is in flight per scheduler. A tick that would overlap an
unfinished sweep is skipped, not queued. ``stop()`` disarms the timer and
lets an in-flight sweep drain before returning.

A sweep lists the platform's eligible targets, asks the plan gate once per
tenant, then runs admitted targets through the pipeline with bounded
concurrency. A failing target is logged and counted; credential exhaustion
abandons the rest of the sweep until the next tick.
"""

import asyncio
import time
import uuid
from collections import defaultdict
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import TracebackType
from typing import Any

import structlog

from feedwatch.observability.metrics import get_metrics
from feedwatch.plans.gate import PlanGate
from feedwatch.services.pipeline import TargetPipeline
from feedwatch.storage.interfaces import WatchTargetStore
from feedwatch.upstream.credential_pool import CredentialsExhaustedError, UpstreamClientError
from feedwatch.upstream.schemas import Platform, WatchTarget

logger = structlog.get_logger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SweepSummary:
    """Counts for one sweep."""

    platform: str
    sweep_id: str
    outcome: str = "completed"  # completed, unconfigured, abandoned, failed
    targets: int = 0
    denied: int = 0
    notified: int = 0
    filtered: int = 0
    unchanged: int = 0
    absent: int = 0
    errors: int = 0
    skipped: int = 0
    elapsed_seconds: float = 0.0

    @property
    def checked(self) -> int:
        return self.notified + self.filtered + self.unchanged + self.absent + self.errors

    def record(self, result: str) -> None:
        setattr(self, result, getattr(self, result) + 1)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["checked"] = self.checked
        return data


@dataclass
class _SweepState:
    summary: SweepSummary
    abandoned: asyncio.Event = field(default_factory=asyncio.Event)


class PollScheduler:
    """
    Periodic sweep loop for a single platform.

    Usage:
        async with PollScheduler(platform, pipeline, store, gate, 300) as scheduler:
            ...  # sweeps run every interval until the block exits
    """

    def __init__(
        self,
        platform: Platform,
        pipeline: TargetPipeline,
        store: WatchTargetStore,
        gate: PlanGate,
        interval_seconds: float,
        max_concurrent: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._platform = Platform(platform)
        self._pipeline = pipeline
        self._store = store
        self._gate = gate
        self._interval = interval_seconds
        self._max_concurrent = max_concurrent
        self._clock = clock

        self._state = SchedulerState.IDLE
        self._timer: asyncio.Task | None = None
        self._sweep_task: asyncio.Task | None = None
        self._last_summary: SweepSummary | None = None
        self._lifecycle = asyncio.Lock()
        self._metrics = get_metrics()

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def pipeline(self) -> TargetPipeline:
        return self._pipeline

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    @property
    def sweep_in_flight(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    @property
    def last_summary(self) -> SweepSummary | None:
        return self._last_summary

    async def start(self) -> None:
        """
        Fire an immediate sweep and arm the timer. No-op when already running.

        A start issued while ``stop()`` is draining waits for the drain to
        finish and then starts a fresh run.
        """
        async with self._lifecycle:
            if self._state == SchedulerState.RUNNING:
                return

            self._state = SchedulerState.RUNNING
            self._metrics.set_scheduler_running(self._platform, True)
            logger.info(
                "Scheduler started",
                platform=self._platform.value,
                interval_seconds=self._interval,
            )

            self._tick()
            self._timer = asyncio.create_task(
                self._run_timer(), name=f"scheduler_{self._platform.value}",
            )

    async def stop(self) -> None:
        """Disarm the timer and drain the in-flight sweep. No-op when idle."""
        async with self._lifecycle:
            if self._state == SchedulerState.IDLE:
                return

            self._state = SchedulerState.IDLE
            if self._timer is not None:
                self._timer.cancel()
                await asyncio.gather(self._timer, return_exceptions=True)
                self._timer = None

            if self.sweep_in_flight:
                logger.info("Waiting for in-flight sweep", platform=self._platform.value)
                await asyncio.gather(self._sweep_task, return_exceptions=True)
            self._sweep_task = None

            await self._pipeline.reader.close()
            self._metrics.set_scheduler_running(self._platform, False)
            logger.info("Scheduler stopped", platform=self._platform.value)

    async def __aenter__(self) -> "PollScheduler":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def _run_timer(self) -> None:
        while self._state == SchedulerState.RUNNING:
            await asyncio.sleep(self._interval)
            if self._state != SchedulerState.RUNNING:
                break
            self._tick()

    def _tick(self) -> None:
        if self.sweep_in_flight:
            logger.warning("Previous sweep still running, tick skipped", platform=self._platform.value)
            self._metrics.record_sweep(self._platform, "skipped_overlap")
            return
        self._sweep_task = asyncio.create_task(
            self.sweep(), name=f"sweep_{self._platform.value}",
        )

    async def run_once(self) -> SweepSummary:
        """
        Run one sweep now, outside the timer.

        When a sweep is already in flight no second one is started; the
        caller waits for the running sweep and gets its summary.
        """
        if self.sweep_in_flight:
            logger.info("Sweep already in flight, waiting for it", platform=self._platform.value)
        else:
            self._sweep_task = asyncio.create_task(
                self.sweep(), name=f"sweep_{self._platform.value}",
            )
        return await asyncio.shield(self._sweep_task)

    async def sweep(self) -> SweepSummary:
        """Run a full sweep over the platform's eligible targets."""
        summary = SweepSummary(platform=self._platform.value, sweep_id=uuid.uuid4().hex[:12])
        start = time.monotonic()

        with structlog.contextvars.bound_contextvars(
            platform=self._platform.value, sweep_id=summary.sweep_id,
        ):
            try:
                await self._sweep(summary)
            except Exception as e:
                summary.outcome = "failed"
                logger.error("Sweep failed", error=str(e), error_type=type(e).__name__)

            summary.elapsed_seconds = round(time.monotonic() - start, 3)
            self._metrics.record_sweep(
                self._platform, summary.outcome, latency=summary.elapsed_seconds,
            )
            logger.info("Sweep finished", **summary.to_dict())

        self._last_summary = summary
        return summary

    async def _sweep(self, summary: SweepSummary) -> None:
        if not self._pipeline.reader.is_configured:
            summary.outcome = "unconfigured"
            logger.warning("Platform has no usable credentials, sweep skipped")
            return

        targets = await self._store.list_eligible_targets(self._platform)
        self._pipeline.retain({t.id for t in targets})
        summary.targets = len(targets)
        logger.info("Sweep started", targets=len(targets))

        admitted = await self._admit(targets, summary)
        if not admitted:
            return

        state = _SweepState(summary)
        semaphore = asyncio.Semaphore(self._max_concurrent)

        async def check(target: WatchTarget) -> None:
            async with semaphore:
                await self._check_target(target, state)

        await asyncio.gather(*(check(t) for t in admitted))

        if state.abandoned.is_set():
            summary.outcome = "abandoned"

    async def _admit(self, targets: list[WatchTarget], summary: SweepSummary) -> list[WatchTarget]:
        by_tenant: dict[str, list[WatchTarget]] = defaultdict(list)
        for target in targets:
            by_tenant[target.tenant_id].append(target)

        now = self._clock()
        admitted: list[WatchTarget] = []
        for tenant_id, tenant_targets in by_tenant.items():
            if await self._gate.should_run(tenant_id, now):
                admitted.extend(tenant_targets)
                continue
            summary.denied += len(tenant_targets)
            self._metrics.record_target(self._platform, "denied", len(tenant_targets))
            logger.debug(
                "Plan gate denied tenant",
                tenant_id=tenant_id,
                targets=len(tenant_targets),
                minute=now.minute,
            )
        return admitted

    async def _check_target(self, target: WatchTarget, state: _SweepState) -> None:
        summary = state.summary
        if state.abandoned.is_set():
            summary.skipped += 1
            return

        try:
            result = await self._pipeline.process(target)
        except CredentialsExhaustedError as e:
            state.abandoned.set()
            summary.errors += 1
            self._metrics.record_target(self._platform, "error")
            logger.error(
                "Credentials exhausted, abandoning sweep",
                target_id=target.id,
                error=str(e),
            )
        except UpstreamClientError as e:
            summary.errors += 1
            self._metrics.record_target(self._platform, "error")
            logger.error(
                "Upstream rejected request, target skipped",
                target_id=target.id,
                tenant_id=target.tenant_id,
                status_code=e.status_code,
                error=str(e),
            )
        except Exception as e:
            summary.errors += 1
            self._metrics.record_target(self._platform, "error")
            logger.error(
                "Target check failed",
                target_id=target.id,
                tenant_id=target.tenant_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        else:
            summary.record(result)

    def status(self) -> dict[str, Any]:
        """State snapshot for health reports."""
        return {
            "platform": self._platform.value,
            "state": self._state.value,
            "configured": self._pipeline.reader.is_configured,
            "interval_seconds": self._interval,
            "sweep_in_flight": self.sweep_in_flight,
            "last_sweep": self._last_summary.to_dict() if self._last_summary else None,
        }
