"""Novelty and filter decisions for fetched items.

Stateless functions, no I/O. Novelty is plain inequality against the
stored marker: content id for video-feed items, the upstream start
timestamp string for live streams. There is no ordering; a marker reset to
an older id makes the current item novel again, and a new live session
with an identical start timestamp is treated as already seen.
"""

from dataclasses import dataclass
from typing import Literal

from feedwatch.upstream.schemas import FetchedItem, WatchTarget

Verdict = Literal["unchanged", "filtered", "notify"]


@dataclass(frozen=True)
class NoveltyDecision:
    """What the pipeline should do with a fetched item.

    Attributes:
        item: The item with ``is_novel`` set.
        verdict: unchanged (no action), filtered (advance marker only), or
            notify (advance marker and dispatch).
    """

    item: FetchedItem
    verdict: Verdict

    @property
    def novel(self) -> bool:
        return self.verdict != "unchanged"

    @property
    def should_advance_marker(self) -> bool:
        return self.novel

    @property
    def should_notify(self) -> bool:
        return self.verdict == "notify"

    @property
    def marker(self) -> str:
        """Marker value to persist when the item is novel."""
        return self.item.identity


def is_novel(item: FetchedItem, target: WatchTarget) -> bool:
    """True when the item's identity differs from the target's marker."""
    return item.identity != target.last_seen_marker


def evaluate(item: FetchedItem, target: WatchTarget) -> NoveltyDecision:
    """
    Decide whether ``item`` is new for ``target`` and whether to notify.

    A novel item whose content type is filtered out still advances the
    marker so it is not reconsidered after a filter change.
    """
    novel = is_novel(item, target)
    marked = item.model_copy(update={"is_novel": novel})

    if not novel:
        return NoveltyDecision(marked, "unchanged")
    if not target.notifies(item.content_type):
        return NoveltyDecision(marked, "filtered")
    return NoveltyDecision(marked, "notify")
