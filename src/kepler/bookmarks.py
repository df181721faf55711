"""Per-track bookmark sets persisted in the local cache database."""

from __future__ import annotations

from typing import FrozenSet, List

from kepler.cache.manager import CacheManager, CacheSlot


class BookmarkStore:
    def __init__(self, cache: CacheManager, slot: CacheSlot[List[str]]) -> None:
        self.cache = cache
        self.slot = slot

    def all(self) -> FrozenSet[str]:
        return frozenset(self.cache.get(self.slot) or [])

    def contains(self, number: str) -> bool:
        return number in self.all()

    def toggle(self, number: str) -> bool:
        """Flip the bookmark on ``number``; returns whether it is now bookmarked."""
        current = set(self.all())
        if number in current:
            current.remove(number)
            bookmarked = False
        else:
            current.add(number)
            bookmarked = True
        self.cache.set(self.slot, sorted(current))
        return bookmarked
