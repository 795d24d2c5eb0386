"""
Shared HTTP gate for every product and catalog page fetch.

One RateLimitedFetcher is built per process and injected into every
component that talks to the bookstore. It caps the number of requests in
flight and spaces out dispatches; callers that hit the ceiling wait in line
instead of being rejected.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx
from fake_useragent import UserAgent

from utils.error_handling import FetchFailure

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class FetchMetrics:
    """Counters for the fetch gate"""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    max_in_flight: int = 0
    response_times: List[float] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    @property
    def avg_response_time(self) -> float:
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)


class RateLimitedFetcher:
    """
    Async HTTP fetcher with a global concurrency cap and minimum dispatch spacing.

    Example:
        >>> async with RateLimitedFetcher(max_concurrent=5, min_interval=0.2) as fetcher:
        ...     html = await fetcher.fetch_text("https://example.com/book")
    """

    def __init__(
        self,
        max_concurrent: int = 5,
        min_interval: float = 0.2,
        timeout: float = 30.0,
        user_agent_rotation: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if min_interval < 0:
            raise ValueError("min_interval cannot be negative")

        self.max_concurrent = max_concurrent
        self.min_interval = min_interval
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self.metrics = FetchMetrics()

        self._transport = transport
        self._clock = clock
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._spacing_lock = asyncio.Lock()
        self._next_dispatch_at = 0.0
        self._in_flight = 0

        self.ua = None
        if user_agent_rotation:
            try:
                self.ua = UserAgent()
            except Exception as e:
                self.logger.warning(f"Failed to initialize UserAgent: {e}")
                self.ua = None

        self.client: Optional[httpx.AsyncClient] = None

    def _get_httpx_client_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "timeout": httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
            "limits": httpx.Limits(
                max_keepalive_connections=self.max_concurrent,
                max_connections=self.max_concurrent,
            ),
            "follow_redirects": True,
        }
        if self._transport is not None:
            config["transport"] = self._transport
        return config

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "es-CL,es;q=0.9,en;q=0.5",
        }
        user_agent = DEFAULT_USER_AGENT
        if self.ua is not None:
            try:
                user_agent = self.ua.random
            except Exception:
                user_agent = DEFAULT_USER_AGENT
        headers["User-Agent"] = user_agent
        return headers

    async def __aenter__(self):
        self.client = httpx.AsyncClient(**self._get_httpx_client_config())
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def _wait_for_dispatch_slot(self) -> None:
        # Slots are reserved one at a time so spacing holds across all callers.
        async with self._spacing_lock:
            now = self._clock()
            delay = self._next_dispatch_at - now
            if delay > 0:
                await asyncio.sleep(delay)
                now = self._clock()
            self._next_dispatch_at = now + self.min_interval

    async def fetch_text(self, url: str) -> str:
        """
        Fetch a page body through the gate.

        Raises:
            FetchFailure: On network errors, timeouts and non-2xx responses
            RuntimeError: If used outside the async context manager
        """
        if not self.client:
            raise RuntimeError("HTTP client not initialized. Use async context manager.")

        async with self._semaphore:
            await self._wait_for_dispatch_slot()
            self._in_flight += 1
            self.metrics.max_in_flight = max(self.metrics.max_in_flight, self._in_flight)
            self.metrics.total_requests += 1
            started = self._clock()
            try:
                response = await self.client.get(url, headers=self._get_headers())
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                self.metrics.failed_requests += 1
                status = exc.response.status_code
                self.logger.warning(
                    "Fetch of %s returned HTTP %s", url, status,
                    extra={"event_type": "fetch"},
                )
                raise FetchFailure(
                    f"HTTP {status} for {url}", url=url, status_code=status
                ) from exc
            except httpx.TimeoutException as exc:
                self.metrics.failed_requests += 1
                self.logger.warning(
                    "Timeout fetching %s", url, extra={"event_type": "fetch"}
                )
                raise FetchFailure(f"Timeout fetching {url}", url=url) from exc
            except httpx.HTTPError as exc:
                self.metrics.failed_requests += 1
                self.logger.warning(
                    "Network error fetching %s: %s", url, exc,
                    extra={"event_type": "fetch"},
                )
                raise FetchFailure(f"Network error fetching {url}: {exc}", url=url) from exc
            finally:
                self._in_flight -= 1

            self.metrics.successful_requests += 1
            self.metrics.response_times.append(self._clock() - started)
            return response.text
