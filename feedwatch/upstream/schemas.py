"""
Watch target and fetched item schemas.

A WatchTarget is one tenant's subscription to one external channel or
streamer. A FetchedItem is the ephemeral result of one upstream read; it is
never persisted and is consumed by the pipeline within the same sweep.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class Platform(str, Enum):
    """Upstream platforms a target can watch."""

    VIDEO_FEED = "video-feed"
    LIVE_STREAM = "live-stream"


class ContentType(str, Enum):
    """Resolved type of a fetched item."""

    NORMAL = "normal"
    SHORT_FORM = "short-form"
    LIVE = "live"
    PREMIERE = "premiere"
    STREAM = "stream"


VIDEO_FEED_TYPES: frozenset[ContentType] = frozenset({
    ContentType.NORMAL,
    ContentType.SHORT_FORM,
    ContentType.LIVE,
    ContentType.PREMIERE,
})

LIVE_STREAM_TYPES: frozenset[ContentType] = frozenset({ContentType.STREAM})

PLATFORM_CONTENT_TYPES: dict[Platform, frozenset[ContentType]] = {
    Platform.VIDEO_FEED: VIDEO_FEED_TYPES,
    Platform.LIVE_STREAM: LIVE_STREAM_TYPES,
}


class WatchTarget(BaseModel):
    """
    A tenant's configured watch on one external identity.

    ``enabled_types`` holds the content-type filters. Video-feed targets
    choose among normal/short-form/live/premiere; live-stream targets have a
    single flag, represented as ``{stream}`` when enabled.

    ``last_seen_marker`` is the last notified content id (video-feed) or the
    last stream start timestamp as reported upstream (live-stream).
    """

    id: str
    tenant_id: str
    platform: Platform
    external_id: str = Field(..., min_length=1, description="Channel id or streamer login")
    webhook_url: str = Field(..., min_length=1)
    enabled_types: frozenset[ContentType] = Field(default_factory=frozenset)
    template: str = ""
    name: str | None = None
    last_seen_marker: str | None = None
    resolved_feed_id: str | None = Field(
        default=None,
        description="Cached 'all uploads' feed id (video-feed only)",
    )
    created_at: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="after")
    def _check_types_match_platform(self) -> "WatchTarget":
        allowed = PLATFORM_CONTENT_TYPES[self.platform]
        invalid = set(self.enabled_types) - allowed
        if invalid:
            raise ValueError(
                f"Content types {sorted(t.value for t in invalid)} "
                f"are not valid for platform {self.platform.value}"
            )
        return self

    @property
    def is_enabled(self) -> bool:
        """A target is eligible for sweeps when any content type is enabled."""
        return bool(self.enabled_types)

    def notifies(self, content_type: ContentType) -> bool:
        """Whether this target's filters permit notifying on ``content_type``."""
        return content_type in self.enabled_types

    @property
    def display_name(self) -> str:
        return self.name or self.external_id


class FetchedItem(BaseModel):
    """
    Latest item read from an upstream for one target.

    ``published_at`` keeps the upstream timestamp string verbatim: stream
    novelty compares it by string equality against the stored marker.
    """

    target_id: str
    platform: Platform
    content_id: str
    title: str = ""
    url: str
    published_at: str = ""
    content_type: ContentType
    author: str | None = None
    is_novel: bool = False
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @property
    def identity(self) -> str:
        """The value written to the target's marker when this item is novel."""
        if self.platform == Platform.LIVE_STREAM:
            return self.published_at
        return self.content_id

    @property
    def published_datetime(self) -> datetime | None:
        """Parse ``published_at`` as an aware datetime, or None if unparsable."""
        if not self.published_at:
            return None
        try:
            parsed = datetime.fromisoformat(self.published_at.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
