"""Observable rate-limit state shared by the transport and its viewers."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Mapping, Optional

from kepler.models import RateLimitInfo

LOGGER = logging.getLogger(__name__)

Listener = Callable[[RateLimitInfo], None]


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class RateLimitState:
    """Holds the latest :class:`RateLimitInfo` and notifies subscribers on change."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._info = RateLimitInfo()
        self._listeners: List[Listener] = []

    def snapshot(self) -> RateLimitInfo:
        with self._lock:
            return self._info

    def update(self, **changes) -> RateLimitInfo:
        with self._lock:
            self._info = replace(self._info, **changes)
            info = self._info
            listeners = list(self._listeners)
        for listener in listeners:
            listener(info)
        return info

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def observe(self, headers: Mapping[str, str], *, rate_limited: bool) -> RateLimitInfo:
        """Fold the rate-limit headers of one response into the state."""
        changes: dict = {"is_rate_limited": rate_limited}
        remaining = _parse_int(headers.get("x-ratelimit-remaining"))
        if remaining is not None:
            changes["remaining"] = remaining
        limit = _parse_int(headers.get("x-ratelimit-limit"))
        if limit is not None:
            changes["limit"] = limit
        reset = _parse_int(headers.get("x-ratelimit-reset"))
        if reset is not None:
            changes["reset"] = datetime.fromtimestamp(reset, tz=timezone.utc)
        return self.update(**changes)


def format_reset(reset: Optional[datetime], now: Optional[datetime] = None) -> str:
    if reset is None:
        return ""
    now = now or datetime.now(timezone.utc)
    diff = (reset - now).total_seconds()
    if diff <= 0:
        return "now"
    minutes = math.ceil(diff / 60)
    if minutes < 60:
        return f"in {minutes}m"
    return f"in {math.ceil(minutes / 60)}h"


def describe(info: RateLimitInfo, now: Optional[datetime] = None) -> str:
    """Human-readable summary of the rate-limit state."""
    if info.is_rate_limited:
        return f"Rate limited, resets {format_reset(info.reset, now)}".rstrip()
    if info.remaining is None:
        return "No requests made yet"
    if info.limit:
        return f"{info.remaining}/{info.limit} requests remaining"
    return f"{info.remaining} requests remaining"


def is_low(info: RateLimitInfo) -> bool:
    """True when less than 10% of the quota is left."""
    if info.remaining is None or not info.limit:
        return False
    return info.remaining / info.limit < 0.1
