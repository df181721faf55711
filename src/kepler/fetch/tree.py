"""Discovery of document paths through the recursive tree listing."""

from __future__ import annotations

import logging
from typing import List, Optional

from kepler.cache.manager import CacheManager, CacheSlot
from kepler.errors import RemoteApiError
from kepler.net.transport import RateLimitedTransport
from kepler.sources import DocumentSource

LOGGER = logging.getLogger(__name__)


class TreeResolver:
    """Lists the metadata files of one track, cached with a short TTL."""

    def __init__(
        self,
        source: DocumentSource,
        transport: RateLimitedTransport,
        cache: CacheManager,
        slot: CacheSlot[List[str]],
        *,
        api_base: str,
    ) -> None:
        self.source = source
        self.transport = transport
        self.cache = cache
        self.slot = slot
        self.api_base = api_base.rstrip("/")

    @property
    def tree_url(self) -> str:
        return f"{self.api_base}/repos/{self.source.full_name}/git/trees/HEAD"

    def cached_paths(self) -> Optional[List[str]]:
        return self.cache.get(self.slot)

    async def resolve_paths(self) -> List[str]:
        """Return every metadata path of the track.

        Raises :class:`RemoteApiError` when the listing call fails or its body
        is not a tree listing.
        """
        cached = self.cached_paths()
        if cached is not None:
            return cached

        response = await self.transport.get(self.tree_url, params={"recursive": "1"})
        if not response.is_success:
            raise RemoteApiError(response.status_code, self.tree_url, response.reason_phrase)

        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteApiError(response.status_code, self.tree_url, "malformed tree listing") from exc
        tree = payload.get("tree") if isinstance(payload, dict) else None
        if not isinstance(tree, list):
            raise RemoteApiError(response.status_code, self.tree_url, "malformed tree listing")

        paths = [
            item["path"]
            for item in tree
            if isinstance(item, dict)
            and item.get("type") == "blob"
            and self.source.pattern.match(str(item.get("path", "")))
        ]
        LOGGER.info("Found %d %s documents in %s", len(paths), self.source.label, self.source.full_name)
        self.cache.set(self.slot, paths)
        return paths
