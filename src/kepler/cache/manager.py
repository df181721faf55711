"""Named cache slots with declared TTLs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from kepler.cache.store import PersistentCache

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _identity(value: Any) -> Any:
    return value


@dataclass(slots=True, frozen=True)
class CacheSlot(Generic[T]):
    """A cache key owned by one scope, with its own TTL and codec.

    Slots without a TTL never expire and are left alone by ``invalidate``.
    """

    key: str
    scope: str
    ttl_ms: Optional[int] = None
    encode: Callable[[T], Any] = _identity
    decode: Callable[[Any], T] = _identity
    tracks_freshness: bool = False


class CacheManager:
    """Coordinates the slots sharing one persistent store."""

    def __init__(self, store: PersistentCache) -> None:
        self.store = store
        self._slots: Dict[str, CacheSlot[Any]] = {}

    def register(self, slot: CacheSlot[T]) -> CacheSlot[T]:
        self._slots[slot.key] = slot
        return slot

    def slots(self, scope: Optional[str] = None) -> List[CacheSlot[Any]]:
        return [slot for slot in self._slots.values() if scope is None or slot.scope == scope]

    def get(self, slot: CacheSlot[T]) -> Optional[T]:
        raw = self.store.get(slot.key, slot.ttl_ms)
        if raw is None:
            return None
        try:
            return slot.decode(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            LOGGER.debug("Discarding malformed cache entry %s: %s", slot.key, exc)
            return None

    def set(self, slot: CacheSlot[T], value: T) -> None:
        try:
            encoded = slot.encode(value)
        except (TypeError, ValueError) as exc:
            LOGGER.debug("Unable to encode cache entry %s: %s", slot.key, exc)
            return
        self.store.set(slot.key, encoded)

    def invalidate(self, scope: Optional[str] = None) -> List[str]:
        """Delete every expiring slot in ``scope`` (all scopes when omitted)."""
        keys = [slot.key for slot in self.slots(scope) if slot.ttl_ms is not None]
        self.store.delete(*keys)
        LOGGER.debug("Invalidated cache keys: %s", keys)
        return keys

    def freshness(self, scope: Optional[str] = None) -> Optional[int]:
        """Age in milliseconds of the oldest populated freshness-tracking slot."""
        stamps = [
            self.store.timestamp(slot.key)
            for slot in self.slots(scope)
            if slot.tracks_freshness
        ]
        stamps = [stamp for stamp in stamps if stamp is not None]
        if not stamps:
            return None
        return self.store.now() - min(stamps)
