"""Pytest fixtures for feedwatch tests."""

from datetime import datetime, timezone

import pytest

from feedwatch.config.settings import Settings
from feedwatch.storage.memory import InMemoryStore
from feedwatch.upstream.schemas import ContentType, FetchedItem, Platform, WatchTarget

YOUTUBE_API = "https://www.googleapis.com/youtube/v3"
TWITCH_API = "https://api.twitch.tv/helix"
TWITCH_TOKEN_URL = "https://id.twitch.tv/oauth2/token"
WEBHOOK_URL = "https://hooks.example.com/webhook/abc"


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing (no .env file)."""
    return Settings(
        _env_file=None,
        environment="development",
        log_level="DEBUG",
        youtube_api_keys="key-a,key-b",
        twitch_credentials="cid-a:secret-a",
        youtube_api_base_url=YOUTUBE_API,
        twitch_api_base_url=TWITCH_API,
        twitch_token_url=TWITCH_TOKEN_URL,
        webhook_username="feedwatch",
        display_timezone="UTC",
        display_date_format="%Y-%m-%d %H:%M",
        store_backend="memory",
    )


@pytest.fixture
def video_target() -> WatchTarget:
    """A video-feed target with every type except short-form enabled."""
    return WatchTarget(
        id="target-video-1",
        tenant_id="tenant-a",
        platform=Platform.VIDEO_FEED,
        external_id="UC_channel_1",
        webhook_url=WEBHOOK_URL,
        enabled_types=frozenset({ContentType.NORMAL, ContentType.LIVE, ContentType.PREMIERE}),
        template="New: {title} {link}",
        name="Channel One",
        last_seen_marker="v1",
        resolved_feed_id="UU_channel_1",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def stream_target() -> WatchTarget:
    """A live-stream target that has never seen a stream."""
    return WatchTarget(
        id="target-stream-1",
        tenant_id="tenant-b",
        platform=Platform.LIVE_STREAM,
        external_id="somestreamer",
        webhook_url=WEBHOOK_URL,
        enabled_types=frozenset({ContentType.STREAM}),
        template="{streamer} live: {title} {link} ({started})",
        created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
    )


@pytest.fixture
def video_item() -> FetchedItem:
    return FetchedItem(
        target_id="target-video-1",
        platform=Platform.VIDEO_FEED,
        content_id="v2",
        title="Second Upload",
        url="https://www.youtube.com/watch?v=v2",
        published_at="2024-03-01T12:30:00Z",
        content_type=ContentType.NORMAL,
        author="Channel One",
    )


@pytest.fixture
def stream_item() -> FetchedItem:
    return FetchedItem(
        target_id="target-stream-1",
        platform=Platform.LIVE_STREAM,
        content_id="stream-42",
        title="Speedrun Sunday",
        url="https://twitch.tv/somestreamer",
        published_at="2024-01-01T00:00:00Z",
        content_type=ContentType.STREAM,
        author="SomeStreamer",
    )


@pytest.fixture
def memory_store(video_target, stream_target) -> InMemoryStore:
    """Store holding both sample targets; tenants on the premium tier."""
    return InMemoryStore(
        targets=[video_target, stream_target],
        tenant_tiers={"tenant-a": "premium", "tenant-b": "premium"},
    )
