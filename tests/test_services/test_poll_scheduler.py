"""Tests for PollScheduler state machine and sweep behavior."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import REGISTRY

from feedwatch.plans.gate import PlanGate
from feedwatch.services.poll_scheduler import PollScheduler, SchedulerState, SweepSummary
from feedwatch.storage.memory import InMemoryStore
from feedwatch.upstream.credential_pool import CredentialsExhaustedError, UpstreamClientError
from feedwatch.upstream.schemas import ContentType, Platform, WatchTarget


def _clock(minute: int = 0):
    return lambda: datetime(2024, 1, 1, 12, minute, tzinfo=timezone.utc)


def _targets(count: int, tenant_id: str = "tenant-a") -> list[WatchTarget]:
    return [
        WatchTarget(
            id=f"{tenant_id}-t{i}",
            tenant_id=tenant_id,
            platform=Platform.LIVE_STREAM,
            external_id=f"streamer{i}",
            webhook_url="https://hooks.example.com/x",
            enabled_types={ContentType.STREAM},
        )
        for i in range(count)
    ]


def _pipeline(result: str = "notified", configured: bool = True) -> MagicMock:
    pipeline = MagicMock()
    pipeline.reader.is_configured = configured
    pipeline.reader.close = AsyncMock()
    pipeline.process = AsyncMock(return_value=result)
    return pipeline


def _scheduler(pipeline, store, interval: float = 3600, max_concurrent: int = 4, minute: int = 0):
    return PollScheduler(
        Platform.LIVE_STREAM,
        pipeline,
        store,
        PlanGate(store, store),
        interval_seconds=interval,
        max_concurrent=max_concurrent,
        clock=_clock(minute),
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore(targets=_targets(2), tenant_tiers={"tenant-a": "premium"})


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


# ── State machine ───────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_runs_immediate_sweep(self, store):
        pipeline = _pipeline()
        scheduler = _scheduler(pipeline, store)

        await scheduler.start()
        await _settle()

        assert scheduler.state == SchedulerState.RUNNING
        assert pipeline.process.await_count == 2
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, store):
        pipeline = _pipeline()
        scheduler = _scheduler(pipeline, store)

        await scheduler.start()
        await scheduler.start()
        await _settle()

        assert pipeline.process.await_count == 2
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, store):
        pipeline = _pipeline()
        scheduler = _scheduler(pipeline, store)

        await scheduler.stop()

        assert scheduler.state == SchedulerState.IDLE
        pipeline.reader.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_returns_to_idle_and_closes_reader(self, store):
        pipeline = _pipeline()
        scheduler = _scheduler(pipeline, store)

        await scheduler.start()
        await scheduler.stop()

        assert scheduler.state == SchedulerState.IDLE
        assert scheduler.is_running is False
        pipeline.reader.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timer_fires_repeated_sweeps(self, store):
        pipeline = _pipeline()
        scheduler = _scheduler(pipeline, store, interval=0.01)

        await scheduler.start()
        await asyncio.sleep(0.08)
        await scheduler.stop()

        assert pipeline.process.await_count >= 4

    @pytest.mark.asyncio
    async def test_no_sweeps_after_stop(self, store):
        pipeline = _pipeline()
        scheduler = _scheduler(pipeline, store, interval=0.01)

        await scheduler.start()
        await asyncio.sleep(0.03)
        await scheduler.stop()
        calls = pipeline.process.await_count
        await asyncio.sleep(0.05)

        assert pipeline.process.await_count == calls

    @pytest.mark.asyncio
    async def test_async_context_manager(self, store):
        pipeline = _pipeline()

        async with _scheduler(pipeline, store) as scheduler:
            assert scheduler.is_running

        assert scheduler.state == SchedulerState.IDLE


# ── Single flight and draining ──────────────────────────


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self, store):
        release = asyncio.Event()

        async def slow(target):
            await release.wait()
            return "unchanged"

        pipeline = _pipeline()
        pipeline.process = AsyncMock(side_effect=slow)
        scheduler = _scheduler(pipeline, store, interval=0.01)

        await scheduler.start()
        await asyncio.sleep(0.05)

        assert scheduler.sweep_in_flight is True
        assert pipeline.process.await_count == 2

        release.set()
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_drains_in_flight_sweep(self, store):
        release = asyncio.Event()

        async def slow(target):
            await release.wait()
            return "notified"

        pipeline = _pipeline()
        pipeline.process = AsyncMock(side_effect=slow)
        scheduler = _scheduler(pipeline, store)

        await scheduler.start()
        await _settle()
        stopping = asyncio.create_task(scheduler.stop())
        await _settle()

        assert not stopping.done()
        release.set()
        await stopping

        assert scheduler.last_summary.notified == 2
        assert scheduler.last_summary.outcome == "completed"

    @pytest.mark.asyncio
    async def test_manual_sweep_joins_timer_sweep(self, store):
        release = asyncio.Event()

        async def slow(target):
            await release.wait()
            return "notified"

        pipeline = _pipeline()
        pipeline.process = AsyncMock(side_effect=slow)
        scheduler = _scheduler(pipeline, store)

        await scheduler.start()
        await _settle()
        manual = asyncio.create_task(scheduler.run_once())
        await _settle()

        assert pipeline.process.await_count == 2

        release.set()
        summary = await manual

        assert pipeline.process.await_count == 2
        assert summary.notified == 2
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_manual_sweep_blocks_timer_tick(self, store):
        release = asyncio.Event()

        async def slow(target):
            await release.wait()
            return "unchanged"

        pipeline = _pipeline()
        pipeline.process = AsyncMock(side_effect=slow)
        scheduler = _scheduler(pipeline, store, interval=0.01)

        manual = asyncio.create_task(scheduler.run_once())
        await _settle()
        assert scheduler.sweep_in_flight is True

        await scheduler.start()
        await asyncio.sleep(0.05)

        assert pipeline.process.await_count == 2

        release.set()
        await manual
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_restart_during_drain_keeps_new_run_intact(self, store):
        release = asyncio.Event()

        async def slow(target):
            await release.wait()
            return "unchanged"

        pipeline = _pipeline()
        pipeline.process = AsyncMock(side_effect=slow)
        scheduler = _scheduler(pipeline, store)

        await scheduler.start()
        await _settle()
        stopping = asyncio.create_task(scheduler.stop())
        await _settle()
        starting = asyncio.create_task(scheduler.start())
        await _settle()

        assert not starting.done()

        release.set()
        await stopping
        await starting
        await _settle()

        assert scheduler.state == SchedulerState.RUNNING
        assert pipeline.reader.close.await_count == 1
        assert REGISTRY.get_sample_value(
            "feedwatch_scheduler_running", {"platform": "live-stream"}
        ) == 1
        assert pipeline.process.await_count == 4

        await scheduler.stop()
        assert pipeline.reader.close.await_count == 2
        assert REGISTRY.get_sample_value(
            "feedwatch_scheduler_running", {"platform": "live-stream"}
        ) == 0


# ── Sweep ───────────────────────────────────────────────


class TestSweep:
    @pytest.mark.asyncio
    async def test_summary_counts(self, store):
        pipeline = _pipeline()
        pipeline.process.side_effect = ["notified", "unchanged"]

        summary = await _scheduler(pipeline, store).run_once()

        assert isinstance(summary, SweepSummary)
        assert summary.targets == 2
        assert summary.notified == 1
        assert summary.unchanged == 1
        assert summary.checked == 2
        assert summary.outcome == "completed"

    @pytest.mark.asyncio
    async def test_failure_on_one_target_does_not_abort_sweep(self):
        store = InMemoryStore(targets=_targets(3), tenant_tiers={"tenant-a": "premium"})
        pipeline = _pipeline()
        pipeline.process.side_effect = [
            "notified",
            UpstreamClientError("not found", status_code=404),
            RuntimeError("boom"),
        ]

        summary = await _scheduler(pipeline, store, max_concurrent=1).run_once()

        assert pipeline.process.await_count == 3
        assert summary.notified == 1
        assert summary.errors == 2
        assert summary.outcome == "completed"

    @pytest.mark.asyncio
    async def test_exhaustion_abandons_rest_of_sweep(self):
        store = InMemoryStore(targets=_targets(3), tenant_tiers={"tenant-a": "premium"})
        pipeline = _pipeline()
        pipeline.process.side_effect = CredentialsExhaustedError("all keys failed")

        summary = await _scheduler(pipeline, store, max_concurrent=1).run_once()

        assert pipeline.process.await_count == 1
        assert summary.outcome == "abandoned"
        assert summary.errors == 1
        assert summary.skipped == 2

    @pytest.mark.asyncio
    async def test_unconfigured_platform_skips_sweep(self, store):
        pipeline = _pipeline(configured=False)
        store.list_eligible_targets = AsyncMock()

        summary = await _scheduler(pipeline, store).run_once()

        assert summary.outcome == "unconfigured"
        store.list_eligible_targets.assert_not_awaited()
        pipeline.process.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_plan_gate_filters_tenants(self):
        store = InMemoryStore(
            targets=_targets(2, "tenant-free") + _targets(1, "tenant-std"),
            tenant_tiers={"tenant-free": "free", "tenant-std": "standard"},
        )
        pipeline = _pipeline()

        # minute 10: standard (every 5) runs, free (every 30) does not
        summary = await _scheduler(pipeline, store, minute=10).run_once()

        processed = [c.args[0].tenant_id for c in pipeline.process.await_args_list]
        assert processed == ["tenant-std"]
        assert summary.denied == 2
        assert summary.notified == 1

    @pytest.mark.asyncio
    async def test_listed_targets_passed_to_pipeline_retention(self, store):
        pipeline = _pipeline()

        await _scheduler(pipeline, store).run_once()

        pipeline.retain.assert_called_once_with({"tenant-a-t0", "tenant-a-t1"})

    @pytest.mark.asyncio
    async def test_store_failure_marks_sweep_failed(self, store):
        pipeline = _pipeline()
        store.list_eligible_targets = AsyncMock(side_effect=ConnectionError("db down"))

        summary = await _scheduler(pipeline, store).run_once()

        assert summary.outcome == "failed"

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        store = InMemoryStore(targets=_targets(6), tenant_tiers={"tenant-a": "premium"})
        active = 0
        peak = 0

        async def track(target):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.001)
            active -= 1
            return "unchanged"

        pipeline = _pipeline()
        pipeline.process = AsyncMock(side_effect=track)

        await _scheduler(pipeline, store, max_concurrent=2).run_once()

        assert peak == 2

    @pytest.mark.asyncio
    async def test_status_snapshot(self, store):
        scheduler = _scheduler(_pipeline(), store)
        await scheduler.run_once()

        status = scheduler.status()

        assert status["platform"] == "live-stream"
        assert status["state"] == "idle"
        assert status["configured"] is True
        assert status["last_sweep"]["notified"] == 2
