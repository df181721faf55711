"""Rate-limit aware HTTP transport built on HTTPX and Tenacity.

GitHub signals exhausted quota either with ``429`` or with ``403`` and an
``x-ratelimit-remaining: 0`` header. Such responses are retried a bounded
number of times, waiting for the server-provided hint (``Retry-After`` or
``x-ratelimit-reset``) or, lacking one, an exponential backoff. Any other
response, including errors, is returned untouched, as is the last
rate-limited one once ``max_attempts`` requests have been made. Callers
decide what a non-success status means.
"""

from __future__ import annotations

import asyncio
import email.utils
import logging
import math
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
)

from kepler.net.ratelimit import RateLimitState

LOGGER = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0
USER_AGENT = "kepler/0.1"


def is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return (
        response.status_code == 403
        and response.headers.get("x-ratelimit-remaining") == "0"
    )


def _parse_retry_after(value: str, now: float) -> Optional[float]:
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return seconds if math.isfinite(seconds) else None
    try:
        when = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.timestamp() - now


def rate_limit_delay(
    headers: Mapping[str, str],
    attempt: int,
    *,
    base_delay: float = BASE_DELAY_SECONDS,
    now: Optional[float] = None,
) -> float:
    """Seconds to wait before retry number ``attempt + 1``.

    ``attempt`` counts from zero for the first rate-limited response.
    """
    now = time.time() if now is None else now

    retry_after = headers.get("Retry-After")
    if retry_after:
        delay = _parse_retry_after(retry_after.strip(), now)
        if delay is not None:
            return max(0.0, delay)

    reset = headers.get("x-ratelimit-reset")
    if reset:
        try:
            return max(0.0, int(reset) - now)
        except ValueError:
            pass

    return base_delay * (2 ** attempt)


def _last_response(retry_state: RetryCallState) -> httpx.Response:
    # Retry budget exhausted: hand the final rate-limited response back.
    return retry_state.outcome.result()


class RateLimitedTransport:
    """Drop-in ``request``/``get`` wrapper around :class:`httpx.AsyncClient`."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        rate_limit: RateLimitState | None = None,
        token: str | None = None,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = BASE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if client is None:
            headers = {"User-Agent": USER_AGENT}
            if token:
                headers["Authorization"] = f"Bearer {token}"
            client = httpx.AsyncClient(headers=headers, follow_redirects=True)
        self.client = client
        self.rate_limit = rate_limit or RateLimitState()
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep
        self._clock = clock

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "RateLimitedTransport":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _wait(self, retry_state: RetryCallState) -> float:
        response = retry_state.outcome.result()
        return rate_limit_delay(
            response.headers,
            retry_state.attempt_number - 1,
            base_delay=self.base_delay,
            now=self._clock(),
        )

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = await self.client.request(method, url, **kwargs)
        self.rate_limit.observe(response.headers, rate_limited=is_rate_limited(response))
        return response

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_result(is_rate_limited),
            sleep=self._sleep,
            before_sleep=before_sleep_log(LOGGER, logging.WARNING),
            retry_error_callback=_last_response,
        )
        return await retrying(self._send, method, url, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)
