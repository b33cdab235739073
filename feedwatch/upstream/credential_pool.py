"""
Credential rotation with failover for upstream API access.

Provides:
- UpstreamError hierarchy: capacity, client, transient and exhaustion errors
- CredentialPool: round-robin credentials, failing over on quota/rate-limit
  and transient failures, failing fast on other client errors

The pool does not know how a request is built. Callers pass an async
callable that performs one HTTP call with the credential it is given; the
pool classifies the response and decides whether to try the next one.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Generic, TypeVar

import httpx

from feedwatch.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

C = TypeVar("C")

DEFAULT_CAPACITY_STATUSES: frozenset[int] = frozenset({403, 429})


class UpstreamError(Exception):
    """Base exception for upstream API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class CapacityError(UpstreamError):
    """Quota exceeded or rate limited on the credential used."""


class TransientUpstreamError(UpstreamError):
    """Server-side or token failure that another credential may not hit."""


class UpstreamClientError(UpstreamError):
    """Malformed request or missing resource. Retrying will not help."""


class CredentialsExhaustedError(UpstreamError):
    """Every credential in the pool failed within one resolution."""


class NotConfiguredError(UpstreamError):
    """No usable credentials are configured for the upstream."""


def error_detail(response: httpx.Response) -> str:
    """Best-effort human-readable error message from an upstream response."""
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if data.get("message"):
            return str(data["message"])
    return response.text


class CredentialPool(Generic[C]):
    """
    Round-robin pool of interchangeable credentials for one upstream.

    ``resolve(request)`` tries the request with the next credential in
    rotation. Capacity errors (``capacity_statuses``), 5xx responses,
    transport failures and ``TransientUpstreamError`` advance to the next
    credential, for at most ``len(credentials)`` attempts. Any other 4xx
    raises ``UpstreamClientError`` immediately.

    When every credential fails, the cursor is reset to zero and
    ``CredentialsExhaustedError`` is raised.

    The cursor is shared by concurrent resolutions and guarded by a lock
    held only while it is read and advanced. Each resolution walks its own
    offsets from the position it started at, so no credential is used twice
    in one resolution even when other resolutions interleave.

    Example:
        pool = CredentialPool(["key1", "key2"], name="youtube")

        async def request(key):
            return await client.get(url, params={"key": key})

        response = await pool.resolve(request)
    """

    def __init__(
        self,
        credentials: Sequence[C],
        name: str = "upstream",
        capacity_statuses: frozenset[int] = DEFAULT_CAPACITY_STATUSES,
    ) -> None:
        self._credentials: list[C] = list(credentials)
        self._name = name
        self._capacity_statuses = capacity_statuses
        self._cursor = 0
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def size(self) -> int:
        """Return the number of credentials in the pool."""
        return len(self._credentials)

    @property
    def cursor(self) -> int:
        """Current rotation position (for inspection/testing)."""
        return self._cursor

    @property
    def credentials(self) -> list[C]:
        return list(self._credentials)

    async def _advance(self) -> int:
        async with self._lock:
            position = self._cursor
            self._cursor = (self._cursor + 1) % len(self._credentials)
            return position

    async def _reset(self) -> None:
        async with self._lock:
            self._cursor = 0

    def _classify(self, response: httpx.Response) -> UpstreamError | None:
        """Map a response to the error it represents, or None on success."""
        status = response.status_code
        if status < 400:
            return None

        detail = error_detail(response)
        message = f"{self._name} returned {status}: {detail}"
        if status in self._capacity_statuses:
            return CapacityError(message, status_code=status, response_body=response.text)
        if status < 500:
            return UpstreamClientError(message, status_code=status, response_body=response.text)
        return TransientUpstreamError(message, status_code=status, response_body=response.text)

    async def resolve(
        self,
        request: Callable[[C], Awaitable[httpx.Response]],
    ) -> httpx.Response:
        """
        Execute ``request`` with credentials from the pool until one succeeds.

        Args:
            request: Async callable performing one HTTP call with a credential

        Returns:
            The first successful (non-error) response

        Raises:
            NotConfiguredError: The pool is empty
            UpstreamClientError: A non-capacity 4xx was returned
            CredentialsExhaustedError: Every credential failed once
        """
        if not self._credentials:
            raise NotConfiguredError(f"No credentials configured for {self._name}")

        attempts = len(self._credentials)
        start = await self._advance()
        last_error: Exception | None = None

        for attempt in range(attempts):
            if attempt > 0:
                await self._advance()
            credential = self._credentials[(start + attempt) % attempts]

            try:
                response = await request(credential)
                error = self._classify(response)
            except UpstreamClientError:
                raise
            except (UpstreamError, httpx.TransportError) as e:
                error = e

            if error is None:
                if attempt > 0:
                    logger.info(
                        "%s request succeeded on credential %d/%d",
                        self._name, attempt + 1, attempts,
                    )
                return response

            if isinstance(error, UpstreamClientError):
                logger.error("%s unrecoverable client error: %s", self._name, error)
                raise error

            last_error = error
            reason = "capacity" if isinstance(error, CapacityError) else "transient"
            get_metrics().record_failover(self._name, reason)
            logger.warning(
                "%s %s error on credential %d/%d: %s",
                self._name, reason, attempt + 1, attempts, error,
            )

        await self._reset()
        get_metrics().record_exhaustion(self._name)
        logger.error(
            "All %d %s credentials failed: %s", attempts, self._name, last_error,
        )
        raise CredentialsExhaustedError(
            f"All {attempts} {self._name} credentials failed: {last_error}",
            status_code=getattr(last_error, "status_code", None),
            response_body=getattr(last_error, "response_body", None),
        ) from last_error
