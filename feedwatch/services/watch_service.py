"""
Watch service - wires readers, pipelines and schedulers for all platforms.

Each platform gets its own PollScheduler; there is no shared timer. The
service owns the webhook channel and dispatcher shared by every pipeline.

Features:
- Per-platform start/stop
- Manual sweeps (run_once)
- Plan-checked target registration
- Health reporting
"""

import asyncio
from typing import Any

import structlog

from feedwatch.config.settings import Settings, get_settings
from feedwatch.notifications.channels import WebhookChannel
from feedwatch.notifications.dispatcher import NotificationDispatcher
from feedwatch.plans.gate import PlanGate
from feedwatch.services.pipeline import TargetPipeline
from feedwatch.services.poll_scheduler import PollScheduler, SweepSummary
from feedwatch.upstream.base_reader import ContentReader
from feedwatch.upstream.factory import create_reader
from feedwatch.upstream.schemas import Platform, WatchTarget

logger = structlog.get_logger(__name__)


class WatchService:
    """
    Runs one poll scheduler per platform against a shared store.

    ``store`` must provide the engine operations, the outcome log, the plan
    lookup and ``create_target`` (both bundled stores do).

    Usage:
        service = WatchService(store)
        await service.start()
        ...
        await service.stop()
    """

    def __init__(
        self,
        store: Any,
        platforms: list[Platform] | None = None,
        settings: Settings | None = None,
        readers: dict[Platform, ContentReader] | None = None,
        channel: WebhookChannel | None = None,
    ) -> None:
        settings = settings or get_settings()
        platforms = platforms or list(Platform)
        readers = readers or {}

        self._store = store
        self._gate = PlanGate(plans=store, targets=store)
        self._channel = channel or WebhookChannel(
            username=settings.webhook_username,
            avatar_url=settings.webhook_avatar_url,
            timeout=settings.webhook_timeout_seconds,
        )
        self._dispatcher = NotificationDispatcher(self._channel, outcome_log=store)

        intervals = {
            Platform.VIDEO_FEED: settings.video_feed_interval_seconds,
            Platform.LIVE_STREAM: settings.live_stream_interval_seconds,
        }

        self._schedulers: dict[Platform, PollScheduler] = {}
        for platform in platforms:
            platform = Platform(platform)
            reader = readers.get(platform) or create_reader(platform, settings, store=store)
            pipeline = TargetPipeline(reader, store, self._dispatcher, settings)
            self._schedulers[platform] = PollScheduler(
                platform,
                pipeline,
                store,
                self._gate,
                interval_seconds=intervals[platform],
                max_concurrent=settings.max_concurrent_checks,
            )

        logger.info(
            "Watch service initialized",
            platforms=[p.value for p in self._schedulers],
            configured=[p.value for p, s in self._schedulers.items() if s.status()["configured"]],
        )

    @property
    def gate(self) -> PlanGate:
        return self._gate

    @property
    def schedulers(self) -> dict[Platform, PollScheduler]:
        return dict(self._schedulers)

    def scheduler(self, platform: Platform) -> PollScheduler:
        try:
            return self._schedulers[Platform(platform)]
        except KeyError:
            raise ValueError(f"Platform {platform} is not managed by this service") from None

    @property
    def is_running(self) -> bool:
        return any(s.is_running for s in self._schedulers.values())

    async def start(self) -> None:
        """Start every platform scheduler (idempotent per scheduler)."""
        for scheduler in self._schedulers.values():
            await scheduler.start()

    async def stop(self) -> None:
        """Stop all schedulers, letting in-flight sweeps drain."""
        logger.info("Stopping watch service")
        await asyncio.gather(*(s.stop() for s in self._schedulers.values()))

    async def run_once(self, platform: Platform) -> SweepSummary:
        """Run a single sweep for ``platform`` now."""
        return await self.scheduler(platform).run_once()

    async def close(self) -> None:
        """Release reader HTTP clients."""
        for scheduler in self._schedulers.values():
            await scheduler.pipeline.reader.close()

    async def register_target(self, target: WatchTarget) -> WatchTarget:
        """
        Persist a new target if the tenant's plan allows another one.

        The gate check rejects early; the store re-checks the limit
        atomically with the insert.

        Raises:
            PlanLimitExceededError: The tenant is at its tier limit.
        """
        check = await self._gate.ensure_can_register(target.tenant_id, target.platform)
        created = await self._store.create_target(target, max_targets=check.limit)
        logger.info(
            "Target registered",
            target_id=created.id,
            tenant_id=created.tenant_id,
            platform=created.platform.value,
            remaining=check.remaining - 1,
        )
        return created

    async def health_check(self) -> dict[str, Any]:
        """Store health plus per-platform configuration and scheduler state."""
        try:
            store_healthy = await self._store.health_check()
        except Exception as e:
            logger.warning("Store health check failed", error=str(e))
            store_healthy = False

        return {
            "running": self.is_running,
            "store_healthy": store_healthy,
            "platforms": {p.value: s.status() for p, s in self._schedulers.items()},
        }
