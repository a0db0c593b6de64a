# fetcher.py
"""
Resilient GET for an upstream that blocks, rate-limits and fails at random.

Strategy, in order:
1. Direct request, retried up to FetchConfig.max_retries times with linear
   backoff. A 403/429 answer abandons the direct path at once.
2. Each configured public relay, once, with a short pause between relays.

A response counts only when it is HTTP 200 with a body long enough to be a
real page. When nothing works, UpstreamUnavailable (or UpstreamBlocked if any
path answered 403/429) carries the elapsed time and every attempt made.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple
from urllib.parse import quote, urlparse

import httpx

from config import FetchConfig
from errors import UpstreamBlocked, UpstreamUnavailable

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/116.0.0.0 Safari/537.36"

BROWSER_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.8,*/*;q=0.7",
    "Accept-Language": "id-ID,id;q=0.9,en-US;q=0.8,en;q=0.7",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

# Shorter bodies are placeholder/challenge pages rather than real content
MIN_BODY_BYTES = 100
BLOCKED_STATUSES = (403, 429)
DIRECT_SOURCE = "direct"


@dataclass(frozen=True)
class FetchResult:
    url: str
    status_code: int
    body: bytes
    content_type: Optional[str]
    elapsed_ms: float
    source: str

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self):
        return json.loads(self.body)


@dataclass(frozen=True)
class FetchAttempt:
    source: str
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return self.status_code in BLOCKED_STATUSES

    def describe(self) -> str:
        if self.error:
            return f"{self.source} ({self.error})"
        return f"{self.source} (HTTP {self.status_code})"


@dataclass(frozen=True)
class RetryPolicy:
    """Direct-path retry budget: `max_attempts` tries, linear backoff between them."""
    max_attempts: int
    base_delay: float

    @classmethod
    def from_config(cls, config: FetchConfig) -> "RetryPolicy":
        return cls(max_attempts=config.max_retries, base_delay=config.retry_delay_ms / 1000)

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * attempt


def proxy_label(template: str) -> str:
    host = urlparse(template).hostname or template
    return f"proxy:{host}"


def proxy_url(template: str, target: str) -> str:
    return template.replace("{url}", quote(target, safe=""))


class ResilientFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        config: FetchConfig,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.config = config
        self.policy = RetryPolicy.from_config(config)
        self.user_agent = USER_AGENT
        self._sleep = sleep
        self._clock = clock
        self._timeout = httpx.Timeout(config.timeout_ms / 1000)

    async def fetch(self, url: str, *, min_body_bytes: int = MIN_BODY_BYTES) -> FetchResult:
        started = self._clock()
        attempts: List[FetchAttempt] = []

        if self.config.direct_enabled:
            result = await self._fetch_direct(url, attempts, min_body_bytes)
            if result:
                return result

        if self.config.proxy_enabled:
            result = await self._fetch_via_proxies(url, attempts, min_body_bytes)
            if result:
                return result

        elapsed_ms = (self._clock() - started) * 1000
        error_class = UpstreamBlocked if any(a.blocked for a in attempts) else UpstreamUnavailable
        error = error_class(url, elapsed_ms, attempts)
        logger.error(f"{error.message}. {error.details}")
        raise error

    async def _fetch_direct(self, url: str, attempts: List[FetchAttempt], min_body_bytes: int) -> Optional[FetchResult]:
        for attempt in range(1, self.policy.max_attempts + 1):
            result, record = await self._attempt(url, url, DIRECT_SOURCE, min_body_bytes)
            attempts.append(record)
            if result:
                return result

            if record.blocked:
                logger.warning(f"Direct fetch of {url} blocked (HTTP {record.status_code}), switching to proxies")
                return None

            if attempt < self.policy.max_attempts:
                delay = self.policy.delay_for(attempt)
                logger.info(f"Retrying {url} in {delay:.1f}s (attempt {attempt + 1}/{self.policy.max_attempts})")
                await self._sleep(delay)

        logger.warning(f"Direct fetch of {url} failed after {self.policy.max_attempts} attempts")
        return None

    async def _fetch_via_proxies(self, url: str, attempts: List[FetchAttempt], min_body_bytes: int) -> Optional[FetchResult]:
        for position, template in enumerate(self.config.proxy_endpoints):
            if position:
                await self._sleep(self.config.proxy_delay_ms / 1000)
            result, record = await self._attempt(url, proxy_url(template, url), proxy_label(template), min_body_bytes)
            attempts.append(record)
            if result:
                return result
        return None

    async def _attempt(self, url: str, target: str, source: str, min_body_bytes: int) -> Tuple[Optional[FetchResult], FetchAttempt]:
        started = self._clock()
        try:
            response = await self.client.get(target, headers=BROWSER_HEADERS, timeout=self._timeout, follow_redirects=True)
        except httpx.RequestError as e:
            reason = f"{type(e).__name__}: {e}".rstrip(": ")
            logger.warning(f"[{source}] network error fetching {url}: {reason}")
            return None, FetchAttempt(source=source, error=reason)

        elapsed_ms = (self._clock() - started) * 1000
        body = response.content
        if response.status_code != 200:
            logger.warning(f"[{source}] HTTP {response.status_code} for {url}")
            return None, FetchAttempt(source=source, status_code=response.status_code)

        if len(body) <= min_body_bytes:
            logger.warning(f"[{source}] response for {url} too short ({len(body)} bytes)")
            return None, FetchAttempt(source=source, status_code=response.status_code, error=f"body of {len(body)} bytes")

        logger.info(f"[{source}] fetched {url} ({len(body)} bytes, {elapsed_ms:.0f} ms)")
        result = FetchResult(
            url=url,
            status_code=response.status_code,
            body=body,
            content_type=response.headers.get("content-type"),
            elapsed_ms=elapsed_ms,
            source=source,
        )
        return result, FetchAttempt(source=source, status_code=response.status_code)
