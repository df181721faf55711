"""Recently changed documents, mined from the commit history."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from kepler.cache.manager import CacheManager, CacheSlot
from kepler.errors import RemoteApiError
from kepler.models import ChangeEvent
from kepler.net.transport import RateLimitedTransport
from kepler.sources import DocumentSource

LOGGER = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


def _commit_date(commit: Dict[str, Any]) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(commit["commit"]["author"]["date"])
    except (KeyError, TypeError, ValueError):
        return None


class RecentActivityMiner:
    """Walks recent commits and reports the documents they touched.

    Commits arrive newest first, so the first time a document shows up is
    its most recent change; later sightings are ignored. Only the first page
    of history is read and scanning stops as soon as ``limit`` distinct
    documents have been seen, which makes the result an approximation biased
    towards recency.
    """

    def __init__(
        self,
        source: DocumentSource,
        transport: RateLimitedTransport,
        cache: CacheManager,
        slot: CacheSlot[Dict[str, Any]],
        *,
        api_base: str,
        page_size: int = 100,
        batch_size: int = 10,
    ) -> None:
        self.source = source
        self.transport = transport
        self.cache = cache
        self.slot = slot
        self.api_base = api_base.rstrip("/")
        self.page_size = page_size
        self.batch_size = batch_size

    @property
    def commits_url(self) -> str:
        return f"{self.api_base}/repos/{self.source.full_name}/commits"

    async def _list_commits(self) -> List[Dict[str, Any]]:
        response = await self.transport.get(
            self.commits_url,
            params={"path": self.source.root, "per_page": str(self.page_size)},
        )
        if not response.is_success:
            raise RemoteApiError(response.status_code, self.commits_url, response.reason_phrase)
        commits = response.json()
        return commits if isinstance(commits, list) else []

    async def _changed_files(self, sha: str) -> List[str]:
        try:
            response = await self.transport.get(f"{self.commits_url}/{sha}")
            if not response.is_success:
                return []
            return [item["filename"] for item in response.json().get("files") or []]
        except Exception as exc:
            LOGGER.debug("Skipping commit %s: %s", sha, exc)
            return []

    async def find_recently_changed(self, limit: int = DEFAULT_LIMIT) -> List[ChangeEvent]:
        """Up to ``limit`` distinct documents, most recently changed first.

        Never raises; upstream failures yield an empty list.
        """
        cached = self.cache.get(self.slot)
        if cached is not None and cached["limit"] >= limit:
            return cached["events"][:limit]

        try:
            events = await self._mine(limit)
        except Exception as exc:
            LOGGER.warning("Unable to read recent %s activity: %s", self.source.label, exc)
            return []

        self.cache.set(self.slot, {"limit": limit, "events": events})
        return events

    async def _mine(self, limit: int) -> List[ChangeEvent]:
        commits = await self._list_commits()
        events: List[ChangeEvent] = []
        seen: Set[str] = set()

        for start in range(0, len(commits), self.batch_size):
            if len(events) >= limit:
                break
            batch = commits[start : start + self.batch_size]
            changed = await asyncio.gather(*(self._changed_files(commit["sha"]) for commit in batch))
            for commit, filenames in zip(batch, changed):
                date = _commit_date(commit)
                if date is None:
                    continue
                for filename in filenames:
                    info = self.source.parse_changed_file(filename)
                    if info is None or info.number in seen:
                        continue
                    seen.add(info.number)
                    events.append(ChangeEvent(info.number, date))
                    if len(events) >= limit:
                        return events
        return events
