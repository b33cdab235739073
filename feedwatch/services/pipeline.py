"""
Per-target check pipeline: fetch, decide, advance marker, dispatch.

The marker is written before delivery is attempted, so a failed delivery
is recorded but never retried on a later tick. Checks for the same target
are serialized by a per-target lock; the pipeline also remembers the last
marker it wrote so a stale target snapshot cannot re-notify.
"""

import asyncio
import logging
from typing import Literal, Protocol

from feedwatch.config.settings import Settings, get_settings
from feedwatch.engine.novelty import evaluate
from feedwatch.notifications.dispatcher import NotificationDispatcher
from feedwatch.notifications.templates import render_item
from feedwatch.observability.metrics import get_metrics
from feedwatch.upstream.base_reader import ContentReader
from feedwatch.upstream.schemas import WatchTarget

logger = logging.getLogger(__name__)

CheckResult = Literal["notified", "filtered", "unchanged", "absent"]


class MarkerWriter(Protocol):
    async def update_marker(self, target_id: str, marker: str) -> None: ...


class KeyedLocks:
    """Lazily created asyncio locks keyed by target id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def retain(self, keys: set[str]) -> None:
        """Drop locks for keys not in ``keys`` unless currently held."""
        for key in list(self._locks):
            if key not in keys and not self._locks[key].locked():
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class TargetPipeline:
    """Runs one check for one target through the reader, engine and dispatcher."""

    def __init__(
        self,
        reader: ContentReader,
        store: MarkerWriter,
        dispatcher: NotificationDispatcher,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._reader = reader
        self._store = store
        self._dispatcher = dispatcher
        self._timezone = settings.display_timezone
        self._date_format = settings.display_date_format
        self._locks = KeyedLocks()
        self._written: dict[str, str] = {}
        self._metrics = get_metrics()

    @property
    def reader(self) -> ContentReader:
        return self._reader

    def retain(self, target_ids: set[str]) -> None:
        """Forget locks and remembered markers of targets no longer listed."""
        self._locks.retain(target_ids)
        for target_id in list(self._written):
            if target_id not in target_ids:
                del self._written[target_id]

    async def process(self, target: WatchTarget) -> CheckResult:
        """
        Check ``target`` once.

        Returns:
            notified, filtered, unchanged or absent.

        Raises:
            UpstreamError subclasses from the reader. Nothing is written
            when the fetch fails.
        """
        async with self._locks.get(target.id):
            if target.id in self._written:
                target = target.model_copy(
                    update={"last_seen_marker": self._written[target.id]}
                )

            item = await self._reader.fetch_latest(target)
            if item is None:
                self._metrics.record_target(target.platform, "absent")
                return "absent"

            decision = evaluate(item, target)
            if not decision.novel:
                self._metrics.record_target(target.platform, "unchanged")
                return "unchanged"

            await self._store.update_marker(target.id, decision.marker)
            self._written[target.id] = decision.marker
            self._metrics.record_target(target.platform, "novel")

            if not decision.should_notify:
                logger.info(
                    "Target %s: %s %s filtered out, marker advanced",
                    target.id, item.content_type.value, item.content_id,
                )
                return "filtered"

            message = render_item(
                target.template, decision.item, self._timezone, self._date_format,
            )
            await self._dispatcher.deliver(target, decision.item, message)
            return "notified"
