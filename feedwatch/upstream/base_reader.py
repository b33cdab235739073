"""
Base reader interface for upstream platforms.

Each platform reader implements ``fetch_latest(target)`` which returns the
single most recent item for a watch target, or None when there is nothing
to report (empty feed, streamer offline). The base class owns the shared
``httpx.AsyncClient`` and its lifecycle.
"""

import logging
from abc import ABC, abstractmethod
from types import TracebackType

import httpx

from feedwatch.upstream.schemas import FetchedItem, Platform, WatchTarget

logger = logging.getLogger(__name__)


class ContentReader(ABC):
    """
    Abstract base class for platform readers.

    Subclasses must implement:
        - platform: Platform enum value
        - is_configured: whether usable credentials exist
        - fetch_latest(): read the newest item for a target

    Readers may be used as async context managers; the HTTP client is
    created lazily and closed by ``close()``.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """Return the platform this reader handles."""
        ...

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials are available to read from the upstream."""
        ...

    @property
    def name(self) -> str:
        """Human-readable reader name."""
        return f"{self.platform.value}_reader"

    @abstractmethod
    async def fetch_latest(self, target: WatchTarget) -> FetchedItem | None:
        """
        Fetch the latest item for a watch target.

        Returns:
            FetchedItem (with ``is_novel`` unset) or None if nothing to report

        Raises:
            UpstreamError subclasses from the credential pool
        """
        ...

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this reader created it."""
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("%s HTTP client closed", self.name)
        self._client = None if self._owns_client else self._client

    async def __aenter__(self) -> "ContentReader":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
