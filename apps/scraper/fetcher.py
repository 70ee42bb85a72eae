"""
Retrying HTTP Fetcher

Issues GET requests through one shared httpx.AsyncClient and retries
transient failures with linear backoff.

Retryable:
- HTTP 429, 500, 502, 503, 504
- timeouts (connect/read/write/pool) and connections aborted mid-response

Backoff is retry_number * 2s after a 429 and retry_number * 1s otherwise,
for at most 3 retries (4 attempts). Any other non-2xx status is returned as a
FetchResult so callers can log and skip the page.

Usage:
    async with RetryingFetcher(events, user_agent=..., verify=True) as fetcher:
        result = await fetcher.fetch("https://ex.com/reports?page=2")
        if result.ok:
            ...
"""

import asyncio
import logging
import ssl
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from utils.errors import FetchError
from utils.events import EventSink

RETRYABLE_EXCEPTIONS = (httpx.TimeoutException, httpx.RemoteProtocolError)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt limit and backoff; shared read-only by every fetch."""

    max_retries: int = 3
    rate_limit_delay: float = 2.0
    default_delay: float = 1.0
    retry_statuses: frozenset[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, RetryableStatusError):
            return exc.status in self.retry_statuses
        return isinstance(exc, RETRYABLE_EXCEPTIONS)

    def delay_for(self, retry_number: int, status: Optional[int] = None) -> float:
        """Seconds to wait before retry ``retry_number`` (1-based)."""
        if status == 429:
            return retry_number * self.rate_limit_delay
        return retry_number * self.default_delay


@dataclass(frozen=True)
class FetchResult:
    url: str
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class RetryableStatusError(Exception):
    """Raised inside the retry loop for a response worth another attempt."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response
        self.status = response.status_code


def build_tls_verify(verify: bool = True, ca_bundle: Optional[str] = None) -> Union[bool, ssl.SSLContext]:
    """Trust configuration for httpx: a CA bundle context, or a plain bool."""
    if ca_bundle:
        return ssl.create_default_context(cafile=ca_bundle)
    return verify


class RetryingFetcher:
    """GET with bounded retry/backoff over a shared connection pool."""

    def __init__(
        self,
        events: EventSink,
        *,
        user_agent: str,
        verify: Union[bool, ssl.SSLContext] = True,
        timeout: float = 30.0,
        policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.events = events
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            headers={"User-Agent": user_agent},
            verify=verify,
            timeout=timeout,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "RetryingFetcher":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch ``url``, retrying transient failures.

        Returns:
            FetchResult with the final status; non-2xx terminal statuses are
            returned, not raised

        Raises:
            FetchError: If retries are exhausted or a terminal transport
                error occurs (DNS failure, refused connection, TLS error)
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            retry=retry_if_exception(self.policy.is_retryable),
            wait=self._backoff,
            before=self._before_attempt(url),
            before_sleep=self._before_retry(url),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self.client.get(url)
                    if response.status_code in self.policy.retry_statuses:
                        raise RetryableStatusError(response)
        except RetryableStatusError as e:
            raise FetchError(
                url,
                f"Gave up after {self.policy.max_attempts} attempts, last status {e.status}",
                status=e.status,
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(url, f"{type(e).__name__}: {e}") from e

        return FetchResult(url=url, status=response.status_code, body=response.text)

    def _backoff(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        status = exc.status if isinstance(exc, RetryableStatusError) else None
        return self.policy.delay_for(retry_state.attempt_number, status)

    def _before_attempt(self, url: str) -> Callable[[RetryCallState], None]:
        def hook(retry_state: RetryCallState) -> None:
            self.events.emit(
                "page_attempt",
                level=logging.DEBUG,
                url=url,
                attempt=retry_state.attempt_number,
            )

        return hook

    def _before_retry(self, url: str) -> Callable[[RetryCallState], None]:
        def hook(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            self.events.emit(
                "fetch_retry",
                level=logging.WARNING,
                url=url,
                attempt=retry_state.attempt_number,
                delay=delay,
                error=str(exc),
            )

        return hook
