"""Upstream access: credential rotation and platform readers.

Components:
- CredentialPool: round-robin credentials with capacity failover
- UpstreamError hierarchy: capacity / client / transient / exhausted
- ContentReader: common fetch_latest() capability
- YouTubeReader / TwitchReader: platform variants
- WatchTarget / FetchedItem / Platform / ContentType: schemas
"""

from feedwatch.upstream.base_reader import ContentReader
from feedwatch.upstream.credential_pool import (
    CapacityError,
    CredentialPool,
    CredentialsExhaustedError,
    NotConfiguredError,
    TransientUpstreamError,
    UpstreamClientError,
    UpstreamError,
)
from feedwatch.upstream.factory import create_reader
from feedwatch.upstream.schemas import ContentType, FetchedItem, Platform, WatchTarget
from feedwatch.upstream.twitch_reader import TwitchCredential, TwitchReader
from feedwatch.upstream.youtube_reader import YouTubeReader

__all__ = [
    "CapacityError",
    "ContentReader",
    "ContentType",
    "CredentialPool",
    "CredentialsExhaustedError",
    "FetchedItem",
    "NotConfiguredError",
    "Platform",
    "TransientUpstreamError",
    "TwitchCredential",
    "TwitchReader",
    "UpstreamClientError",
    "UpstreamError",
    "WatchTarget",
    "YouTubeReader",
    "create_reader",
]
