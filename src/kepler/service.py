"""Wiring of the data layer for every proposal track."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from kepler.bookmarks import BookmarkStore
from kepler.cache.manager import CacheManager
from kepler.cache.store import PersistentCache
from kepler.config import AppConfig
from kepler.fetch.activity import RecentActivityMiner
from kepler.fetch.documents import DocumentFetcher
from kepler.fetch.session import LoadSession
from kepler.fetch.slots import register_track_slots
from kepler.fetch.tree import TreeResolver
from kepler.net.ratelimit import RateLimitState
from kepler.net.transport import RateLimitedTransport
from kepler.sources import SOURCES, DocumentSource, get_source

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Track:
    """All components serving one proposal track."""

    source: DocumentSource
    tree: TreeResolver
    documents: DocumentFetcher
    activity: RecentActivityMiner
    bookmarks: BookmarkStore

    def session(self) -> LoadSession:
        return LoadSession(self.documents)


class Kepler:
    """Entry point owning the cache, the transport and the rate-limit state."""

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        store: PersistentCache | None = None,
        transport: RateLimitedTransport | None = None,
    ) -> None:
        self.config = config or AppConfig()
        if store is None:
            store = PersistentCache(self.config.resolve_cache_path(Path.cwd()))
        self.store = store
        self.cache = CacheManager(store)
        if transport is None:
            transport = RateLimitedTransport(
                rate_limit=RateLimitState(),
                token=self.config.github_token,
                max_attempts=self.config.max_attempts,
                base_delay=self.config.base_delay,
            )
        self.transport = transport
        self.tracks: Dict[str, Track] = {name: self._build(source) for name, source in SOURCES.items()}

    @property
    def rate_limit(self) -> RateLimitState:
        return self.transport.rate_limit

    def _build(self, source: DocumentSource) -> Track:
        config = self.config
        slots = register_track_slots(self.cache, source, config)
        tree = TreeResolver(source, self.transport, self.cache, slots.tree, api_base=config.api_base)
        documents = DocumentFetcher(
            source,
            self.transport,
            tree,
            self.cache,
            slots.collection,
            raw_base=config.raw_base,
            web_base=config.web_base,
            batch_size=config.batch_size,
            excerpt_chars=config.excerpt_chars,
        )
        activity = RecentActivityMiner(
            source,
            self.transport,
            self.cache,
            slots.activity,
            api_base=config.api_base,
            page_size=config.commit_page_size,
            batch_size=config.commit_batch_size,
        )
        return Track(source, tree, documents, activity, BookmarkStore(self.cache, slots.bookmarks))

    def track(self, name: str) -> Track:
        return self.tracks[get_source(name).name]

    def freshness(self) -> Optional[int]:
        """Age in milliseconds of the oldest cached collection, if any."""
        return self.cache.freshness()

    def invalidate(self, name: Optional[str] = None) -> None:
        scope = get_source(name).name if name else None
        self.cache.invalidate(scope)

    async def aclose(self) -> None:
        await self.transport.aclose()
        self.store.close()

    async def __aenter__(self) -> "Kepler":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
