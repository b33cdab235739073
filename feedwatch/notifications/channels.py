"""Webhook delivery channel.

Sends one JSON POST per notification. The body carries the rendered text
as ``content`` plus an optional sender identity (``username`` and
``avatar_url``), the shape chat-style incoming webhooks accept.

Creates a new ``httpx.AsyncClient`` per call unless one is injected.
"""

import logging

import httpx

from feedwatch.notifications.schemas import DeliveryResult

logger = logging.getLogger(__name__)

# Response bodies are recorded in delivery logs; keep them bounded.
MAX_DETAIL_BODY = 500


class WebhookChannel:
    """Delivers rendered messages as JSON POSTs to tenant webhook URLs."""

    def __init__(
        self,
        username: str | None = None,
        avatar_url: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._username = username
        self._avatar_url = avatar_url
        self._timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return "webhook"

    def _build_payload(self, message: str) -> dict:
        payload: dict = {"content": message}
        if self._username:
            payload["username"] = self._username
        if self._avatar_url:
            payload["avatar_url"] = self._avatar_url
        return payload

    async def _post(self, client: httpx.AsyncClient, url: str, payload: dict) -> DeliveryResult:
        resp = await client.post(url, json=payload)
        if resp.is_success:
            return DeliveryResult(success=True, status_code=resp.status_code)

        body = resp.text[:MAX_DETAIL_BODY]
        logger.warning("Webhook returned %d: %s", resp.status_code, body)
        return DeliveryResult(
            success=False,
            detail=f"{resp.status_code} - {body}",
            status_code=resp.status_code,
        )

    async def send(self, url: str, message: str) -> DeliveryResult:
        """
        POST ``message`` to ``url``.

        Returns:
            DeliveryResult; any 2xx is success, anything else (including
            transport errors) is a failure carrying the detail text.
        """
        payload = self._build_payload(message)
        try:
            if self._client is not None:
                return await self._post(self._client, url, payload)
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await self._post(client, url, payload)
        except httpx.TimeoutException as e:
            logger.warning("Webhook timed out: %s", e)
            return DeliveryResult(success=False, detail=f"timeout: {e}")
        except httpx.HTTPError as e:
            logger.warning("Webhook transport error: %s", e)
            return DeliveryResult(success=False, detail=f"{type(e).__name__}: {e}")
