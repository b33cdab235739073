"""
Live-stream reader backed by the Twitch Helix API.

Each pool credential is a client id/secret pair holding its own app access
token (client-credentials grant). Tokens are reused until 90% of their
lifetime has passed. A 401 from Helix drops the cached token and fails over
to the next credential.
"""

import logging
import time
from dataclasses import dataclass, field

import httpx

from feedwatch.upstream.base_reader import ContentReader
from feedwatch.upstream.credential_pool import (
    CredentialPool,
    TransientUpstreamError,
    error_detail,
)
from feedwatch.upstream.schemas import ContentType, FetchedItem, Platform, WatchTarget

logger = logging.getLogger(__name__)

STREAM_URL = "https://twitch.tv/{login}"
TOKEN_LIFETIME_FRACTION = 0.9


@dataclass
class TwitchCredential:
    """A client id/secret pair with its cached app access token."""

    client_id: str
    client_secret: str = field(repr=False)
    access_token: str | None = field(default=None, repr=False)
    expires_at: float = 0.0

    @property
    def token_valid(self) -> bool:
        return self.access_token is not None and time.monotonic() < self.expires_at

    def invalidate(self) -> None:
        self.access_token = None
        self.expires_at = 0.0


class TwitchReader(ContentReader):
    """Reports a streamer's current live session, if any."""

    def __init__(
        self,
        pool: CredentialPool[TwitchCredential],
        base_url: str = "https://api.twitch.tv/helix",
        token_url: str = "https://id.twitch.tv/oauth2/token",
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._pool = pool
        self._base_url = base_url.rstrip("/")
        self._token_url = token_url

    @classmethod
    def pool_from_pairs(cls, pairs: list[tuple[str, str]]) -> CredentialPool[TwitchCredential]:
        """Build a pool from (client_id, client_secret) pairs. Only 429 counts as capacity."""
        return CredentialPool(
            [TwitchCredential(client_id=cid, client_secret=secret) for cid, secret in pairs],
            name="twitch",
            capacity_statuses=frozenset({429}),
        )

    @property
    def platform(self) -> Platform:
        return Platform.LIVE_STREAM

    @property
    def is_configured(self) -> bool:
        return self._pool.size > 0

    @property
    def pool(self) -> CredentialPool[TwitchCredential]:
        return self._pool

    async def _ensure_token(self, credential: TwitchCredential) -> str:
        if credential.token_valid:
            return credential.access_token

        client = self._get_client()
        response = await client.post(
            self._token_url,
            data={
                "client_id": credential.client_id,
                "client_secret": credential.client_secret,
                "grant_type": "client_credentials",
            },
        )
        if not response.is_success:
            raise TransientUpstreamError(
                f"Twitch token request failed: {error_detail(response)}",
                status_code=response.status_code,
                response_body=response.text,
            )

        data = response.json()
        credential.access_token = data["access_token"]
        credential.expires_at = time.monotonic() + data.get("expires_in", 0) * TOKEN_LIFETIME_FRACTION
        logger.debug("Obtained Twitch app token for client %s", credential.client_id)
        return credential.access_token

    async def get_stream(self, login: str) -> dict | None:
        """Return the live stream record for ``login`` or None when offline."""
        client = self._get_client()
        url = f"{self._base_url}/streams"

        async def request(credential: TwitchCredential) -> httpx.Response:
            token = await self._ensure_token(credential)
            response = await client.get(
                url,
                params={"user_login": login},
                headers={
                    "Authorization": f"Bearer {token}",
                    "Client-Id": credential.client_id,
                },
            )
            if response.status_code == 401:
                credential.invalidate()
                raise TransientUpstreamError(
                    f"Twitch token rejected: {error_detail(response)}",
                    status_code=401,
                    response_body=response.text,
                )
            return response

        response = await self._pool.resolve(request)
        streams = response.json().get("data") or []
        if streams and streams[0].get("type") == "live":
            return streams[0]
        return None

    async def fetch_latest(self, target: WatchTarget) -> FetchedItem | None:
        stream = await self.get_stream(target.external_id)
        if stream is None:
            return None

        login = stream.get("user_login") or target.external_id
        return FetchedItem(
            target_id=target.id,
            platform=Platform.LIVE_STREAM,
            content_id=str(stream.get("id", "")),
            title=stream.get("title", ""),
            url=STREAM_URL.format(login=login),
            published_at=stream.get("started_at", ""),
            content_type=ContentType.STREAM,
            author=stream.get("user_name") or login,
            raw={
                "game_name": stream.get("game_name"),
                "viewer_count": stream.get("viewer_count"),
            },
        )
