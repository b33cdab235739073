"""Build platform readers from settings."""

from feedwatch.config.settings import Settings, get_settings
from feedwatch.upstream.base_reader import ContentReader
from feedwatch.upstream.credential_pool import CredentialPool
from feedwatch.upstream.schemas import Platform
from feedwatch.upstream.twitch_reader import TwitchReader
from feedwatch.upstream.youtube_reader import FeedIdWriter, YouTubeReader


def create_reader(
    platform: Platform,
    settings: Settings | None = None,
    store: FeedIdWriter | None = None,
) -> ContentReader:
    """
    Create the reader for ``platform``.

    Unconfigured platforms get an empty credential pool; the reader then
    reports ``is_configured == False`` and the scheduler skips its sweeps.
    """
    settings = settings or get_settings()

    if platform == Platform.VIDEO_FEED:
        keys = settings.youtube_keys
        return YouTubeReader(
            pool=CredentialPool(keys, name="youtube"),
            store=store,
            base_url=settings.youtube_api_base_url,
            short_form_max_seconds=settings.short_form_max_seconds,
            timeout=settings.upstream_timeout_seconds,
        )

    if platform == Platform.LIVE_STREAM:
        pairs = settings.twitch_client_pairs
        return TwitchReader(
            pool=TwitchReader.pool_from_pairs(pairs),
            base_url=settings.twitch_api_base_url,
            token_url=settings.twitch_token_url,
            timeout=settings.upstream_timeout_seconds,
        )

    raise ValueError(f"Unsupported platform: {platform}")
