"""
Video-feed reader backed by the YouTube Data API v3.

Three calls per check, each routed through the credential pool:
1. channels: resolve the channel's "all uploads" playlist (once per target,
   then cached on the target and persisted through the store)
2. playlistItems: the single most recent upload
3. videos: duration and broadcast state used for classification
"""

import logging
from typing import Any, Protocol

import httpx

from feedwatch.upstream.base_reader import ContentReader
from feedwatch.upstream.classification import SHORT_FORM_MAX_SECONDS, classify_video
from feedwatch.upstream.credential_pool import CredentialPool, UpstreamClientError
from feedwatch.upstream.schemas import ContentType, FetchedItem, Platform, WatchTarget

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
SHORTS_URL = "https://www.youtube.com/shorts/{video_id}"


class FeedIdWriter(Protocol):
    async def update_resolved_feed_id(self, target_id: str, feed_id: str) -> None: ...


def video_url(video_id: str, content_type: ContentType) -> str:
    """Canonical link for a video; short-form items use the shorts URL."""
    if content_type == ContentType.SHORT_FORM:
        return SHORTS_URL.format(video_id=video_id)
    return WATCH_URL.format(video_id=video_id)


class YouTubeReader(ContentReader):
    """Reads the newest upload of a channel and classifies it."""

    def __init__(
        self,
        pool: CredentialPool[str],
        store: FeedIdWriter | None = None,
        base_url: str = "https://www.googleapis.com/youtube/v3",
        short_form_max_seconds: int = SHORT_FORM_MAX_SECONDS,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._pool = pool
        self._store = store
        self._base_url = base_url.rstrip("/")
        self._short_form_max_seconds = short_form_max_seconds

    @property
    def platform(self) -> Platform:
        return Platform.VIDEO_FEED

    @property
    def is_configured(self) -> bool:
        return self._pool.size > 0

    @property
    def pool(self) -> CredentialPool[str]:
        return self._pool

    async def _get_json(self, endpoint: str, params: dict[str, str]) -> dict[str, Any]:
        client = self._get_client()
        url = f"{self._base_url}/{endpoint}"

        async def request(api_key: str) -> httpx.Response:
            return await client.get(url, params={**params, "key": api_key})

        response = await self._pool.resolve(request)
        return response.json()

    async def resolve_feed_id(self, target: WatchTarget) -> str:
        """
        Return the target's uploads playlist id, resolving it if needed.

        Resolution is idempotent: persisting the same id twice is harmless.
        """
        if target.resolved_feed_id:
            return target.resolved_feed_id

        data = await self._get_json(
            "channels", {"part": "contentDetails", "id": target.external_id},
        )
        items = data.get("items") or []
        if not items:
            raise UpstreamClientError(
                f"Channel not found: {target.external_id}", status_code=404,
            )

        feed_id = items[0]["contentDetails"]["relatedPlaylists"]["uploads"]
        target.resolved_feed_id = feed_id
        if self._store is not None:
            await self._store.update_resolved_feed_id(target.id, feed_id)
        logger.info("Resolved uploads feed %s for channel %s", feed_id, target.external_id)
        return feed_id

    async def get_video_details(self, video_id: str) -> dict[str, Any]:
        data = await self._get_json(
            "videos",
            {"part": "contentDetails,snippet,liveStreamingDetails", "id": video_id},
        )
        items = data.get("items") or []
        if not items:
            raise UpstreamClientError(f"Video not found: {video_id}", status_code=404)
        return items[0]

    async def fetch_latest(self, target: WatchTarget) -> FetchedItem | None:
        feed_id = await self.resolve_feed_id(target)

        data = await self._get_json(
            "playlistItems",
            {"part": "snippet", "playlistId": feed_id, "maxResults": "1"},
        )
        items = data.get("items") or []
        if not items:
            logger.debug("No uploads in feed %s", feed_id)
            return None

        snippet = items[0].get("snippet", {})
        video_id = snippet.get("resourceId", {}).get("videoId")
        if not video_id:
            logger.warning("Feed %s entry has no video id", feed_id)
            return None

        details = await self.get_video_details(video_id)
        content_type = classify_video(
            details.get("contentDetails", {}).get("duration"),
            details.get("snippet", {}).get("liveBroadcastContent"),
            short_form_max_seconds=self._short_form_max_seconds,
        )

        return FetchedItem(
            target_id=target.id,
            platform=Platform.VIDEO_FEED,
            content_id=video_id,
            title=snippet.get("title", ""),
            url=video_url(video_id, content_type),
            published_at=snippet.get("publishedAt", ""),
            content_type=content_type,
            author=snippet.get("channelTitle"),
            raw={
                "duration": details.get("contentDetails", {}).get("duration"),
                "live_broadcast_content": details.get("snippet", {}).get("liveBroadcastContent"),
                "scheduled_start_time": details.get("liveStreamingDetails", {}).get("scheduledStartTime"),
                "actual_start_time": details.get("liveStreamingDetails", {}).get("actualStartTime"),
            },
        )
