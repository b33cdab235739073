"""Tests for the video-feed reader with mocked YouTube Data API."""

from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from feedwatch.upstream.credential_pool import (
    CredentialPool,
    CredentialsExhaustedError,
    UpstreamClientError,
)
from feedwatch.upstream.schemas import ContentType, Platform
from feedwatch.upstream.youtube_reader import YouTubeReader, video_url

API = "https://www.googleapis.com/youtube/v3"


def _channels(uploads: str = "UU_channel_1") -> dict:
    return {"items": [{"contentDetails": {"relatedPlaylists": {"uploads": uploads}}}]}


def _playlist(video_id: str = "v2", title: str = "Second Upload") -> dict:
    return {
        "items": [{
            "snippet": {
                "title": title,
                "publishedAt": "2024-03-01T12:30:00Z",
                "channelTitle": "Channel One",
                "resourceId": {"videoId": video_id},
            }
        }]
    }


def _video(duration: str = "PT10M", broadcast: str = "none") -> dict:
    return {
        "items": [{
            "contentDetails": {"duration": duration},
            "snippet": {"liveBroadcastContent": broadcast},
            "liveStreamingDetails": {},
        }]
    }


@pytest.fixture
def store():
    return AsyncMock()


@pytest.fixture
def reader(store):
    return YouTubeReader(CredentialPool(["key-a", "key-b"], name="youtube"), store=store, base_url=API)


class TestVideoUrl:
    def test_short_form_uses_shorts_path(self):
        assert video_url("abc", ContentType.SHORT_FORM) == "https://www.youtube.com/shorts/abc"

    @pytest.mark.parametrize("ct", [ContentType.NORMAL, ContentType.LIVE, ContentType.PREMIERE])
    def test_other_types_use_watch_url(self, ct):
        assert video_url("abc", ct) == "https://www.youtube.com/watch?v=abc"


class TestResolveFeedId:
    @pytest.mark.asyncio
    @respx.mock
    async def test_resolves_and_persists(self, reader, store, video_target):
        target = video_target.model_copy(update={"resolved_feed_id": None})
        route = respx.get(f"{API}/channels").mock(
            return_value=httpx.Response(200, json=_channels("UU_resolved"))
        )

        feed_id = await reader.resolve_feed_id(target)

        assert feed_id == "UU_resolved"
        assert target.resolved_feed_id == "UU_resolved"
        store.update_resolved_feed_id.assert_awaited_once_with(target.id, "UU_resolved")
        params = route.calls.last.request.url.params
        assert params["id"] == "UC_channel_1"
        assert params["part"] == "contentDetails"
        assert params["key"] == "key-a"

    @pytest.mark.asyncio
    @respx.mock(assert_all_called=False)
    async def test_cached_feed_id_skips_lookup(self, reader, store, video_target):
        route = respx.get(f"{API}/channels")

        feed_id = await reader.resolve_feed_id(video_target)

        assert feed_id == "UU_channel_1"
        assert not route.called
        store.update_resolved_feed_id.assert_not_awaited()

    @pytest.mark.asyncio
    @respx.mock
    async def test_unknown_channel_is_client_error(self, reader, video_target):
        target = video_target.model_copy(update={"resolved_feed_id": None})
        respx.get(f"{API}/channels").mock(return_value=httpx.Response(200, json={"items": []}))

        with pytest.raises(UpstreamClientError) as exc_info:
            await reader.resolve_feed_id(target)

        assert exc_info.value.status_code == 404


class TestFetchLatest:
    @pytest.mark.asyncio
    @respx.mock
    async def test_normal_video(self, reader, video_target):
        respx.get(f"{API}/playlistItems").mock(return_value=httpx.Response(200, json=_playlist()))
        respx.get(f"{API}/videos").mock(return_value=httpx.Response(200, json=_video("PT10M")))

        item = await reader.fetch_latest(video_target)

        assert item is not None
        assert item.platform == Platform.VIDEO_FEED
        assert item.content_id == "v2"
        assert item.identity == "v2"
        assert item.title == "Second Upload"
        assert item.content_type == ContentType.NORMAL
        assert item.url == "https://www.youtube.com/watch?v=v2"
        assert item.author == "Channel One"
        assert item.is_novel is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_short_video_classified_and_linked(self, reader, video_target):
        respx.get(f"{API}/playlistItems").mock(return_value=httpx.Response(200, json=_playlist()))
        respx.get(f"{API}/videos").mock(return_value=httpx.Response(200, json=_video("PT1M30S")))

        item = await reader.fetch_latest(video_target)

        assert item.content_type == ContentType.SHORT_FORM
        assert item.url == "https://www.youtube.com/shorts/v2"

    @pytest.mark.asyncio
    @respx.mock
    async def test_upcoming_is_premiere(self, reader, video_target):
        respx.get(f"{API}/playlistItems").mock(return_value=httpx.Response(200, json=_playlist()))
        respx.get(f"{API}/videos").mock(
            return_value=httpx.Response(200, json=_video("P0D", "upcoming"))
        )

        item = await reader.fetch_latest(video_target)

        assert item.content_type == ContentType.PREMIERE

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_feed_returns_none(self, reader, video_target):
        respx.get(f"{API}/playlistItems").mock(return_value=httpx.Response(200, json={"items": []}))

        assert await reader.fetch_latest(video_target) is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_quota_error_fails_over_to_next_key(self, reader, video_target):
        playlist = respx.get(f"{API}/playlistItems").mock(side_effect=[
            httpx.Response(403, json={"error": {"message": "quotaExceeded"}}),
            httpx.Response(200, json=_playlist()),
        ])
        respx.get(f"{API}/videos").mock(return_value=httpx.Response(200, json=_video()))

        item = await reader.fetch_latest(video_target)

        assert item.content_id == "v2"
        keys = [call.request.url.params["key"] for call in playlist.calls]
        assert keys == ["key-a", "key-b"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_all_keys_over_quota_raises_exhausted(self, reader, video_target):
        respx.get(f"{API}/playlistItems").mock(
            return_value=httpx.Response(403, json={"error": {"message": "quotaExceeded"}})
        )

        with pytest.raises(CredentialsExhaustedError):
            await reader.fetch_latest(video_target)

        assert reader.pool.cursor == 0

    @pytest.mark.asyncio
    async def test_unconfigured_pool(self):
        reader = YouTubeReader(CredentialPool([], name="youtube"))
        assert reader.is_configured is False


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes_owned_client(self):
        async with YouTubeReader(CredentialPool(["k"], name="youtube")) as reader:
            client = reader._get_client()
            assert not client.is_closed

        assert client.is_closed

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        client = httpx.AsyncClient()
        reader = YouTubeReader(CredentialPool(["k"], name="youtube"), client=client)

        await reader.close()

        assert not client.is_closed
        await client.aclose()
