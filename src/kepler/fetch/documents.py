"""Bulk and single-document fetching for one proposal track."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from kepler.cache.manager import CacheManager, CacheSlot
from kepler.errors import DocumentNotFoundError, RemoteApiError
from kepler.fetch.tree import TreeResolver
from kepler.models import BatchOutcome, DocumentRecord, Failure, Progress, Result, Success
from kepler.net.transport import RateLimitedTransport
from kepler.sources import DocumentSource
from kepler.utils.text import make_excerpt

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

DEFAULT_BATCH_SIZE = 15


def _same_number(candidate: str, number: str) -> bool:
    if candidate == number:
        return True
    return candidate.isdigit() and number.isdigit() and int(candidate) == int(number)


def sort_by_number(records: List[DocumentRecord]) -> List[DocumentRecord]:
    """Newest proposals first, comparing numbers numerically."""
    return sorted(records, key=lambda record: int(record.number), reverse=True)


class DocumentFetcher:
    """Assembles the full collection of a track.

    Documents are fetched in batches of ``batch_size`` concurrent requests;
    a batch only starts once the previous one has fully settled. A document
    whose metadata cannot be fetched or parsed is dropped from the result,
    while the narrative excerpt is purely best-effort.
    """

    def __init__(
        self,
        source: DocumentSource,
        transport: RateLimitedTransport,
        tree: TreeResolver,
        cache: CacheManager,
        slot: CacheSlot[List[DocumentRecord]],
        *,
        raw_base: str,
        web_base: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
        excerpt_chars: int = 280,
        with_excerpts: bool = True,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.source = source
        self.transport = transport
        self.tree = tree
        self.cache = cache
        self.slot = slot
        self.raw_base = raw_base
        self.web_base = web_base
        self.batch_size = batch_size
        self.excerpt_chars = excerpt_chars
        self.with_excerpts = with_excerpts
        self.progress = Progress()
        self.last_outcome: Optional[BatchOutcome[DocumentRecord]] = None

    def _report(self, loaded: int, total: int, on_progress: Optional[ProgressCallback]) -> None:
        self.progress = Progress(loaded, total)
        if on_progress is not None:
            on_progress(loaded, total)

    def cached_records(self) -> Optional[List[DocumentRecord]]:
        return self.cache.get(self.slot)

    async def fetch_all(self, on_progress: Optional[ProgressCallback] = None) -> List[DocumentRecord]:
        """Return every document of the track, newest first.

        Only a failing tree listing raises; per-document failures shrink the
        result instead.
        """
        cached = self.cached_records()
        if cached is not None:
            self._report(len(cached), len(cached), on_progress)
            return cached

        self.progress = Progress()
        paths = await self.tree.resolve_paths()
        valid = [path for path in paths if self.source.parse_path(path) is not None]
        total = len(valid)

        outcome: BatchOutcome[DocumentRecord] = BatchOutcome()
        for start in range(0, total, self.batch_size):
            batch = valid[start : start + self.batch_size]
            results = await asyncio.gather(*(self._settle(path) for path in batch))
            for result in results:
                outcome.add(result)
            self._report(min(start + self.batch_size, total), total, on_progress)

        if outcome.failed:
            LOGGER.warning(
                "%d of %d %s documents failed to load", outcome.failed, total, self.source.label
            )
        LOGGER.info("Loaded %d %s documents", len(outcome.successes), self.source.label)

        records = sort_by_number(outcome.successes)
        self.last_outcome = outcome
        self.cache.set(self.slot, records)
        return records

    async def _settle(self, path: str) -> Result[DocumentRecord]:
        try:
            record = await self.fetch_record(path, with_excerpt=self.with_excerpts)
        except Exception as exc:
            LOGGER.debug("Failed to load %s: %s", path, exc)
            return Failure(path, exc)
        return Success(path, record)

    async def _fetch_text(self, path: str) -> str:
        url = self.source.raw_url(self.raw_base, path)
        response = await self.transport.get(url)
        if not response.is_success:
            raise RemoteApiError(response.status_code, url, f"failed to fetch {path}")
        return response.text

    async def fetch_narrative(self, path: str) -> Optional[str]:
        """Full companion Markdown of the document at ``path``, or ``None``."""
        try:
            return await self._fetch_text(self.source.narrative_path(path))
        except Exception as exc:
            LOGGER.debug("No narrative for %s: %s", path, exc)
            return None

    async def _fetch_excerpt(self, path: str) -> Optional[str]:
        narrative = await self.fetch_narrative(path)
        if narrative is None:
            return None
        return make_excerpt(narrative, max_chars=self.excerpt_chars)

    async def fetch_record(self, path: str, *, with_excerpt: bool = False) -> DocumentRecord:
        """Fetch and parse the metadata at ``path``.

        Raises :class:`RemoteApiError` or :class:`InvalidDocumentError`.
        """
        if not with_excerpt:
            text = await self._fetch_text(path)
            return self.source.build_record(path, text, web_base=self.web_base)

        text, excerpt = await asyncio.gather(self._fetch_text(path), self._fetch_excerpt(path))
        record = self.source.build_record(path, text, web_base=self.web_base)
        record.excerpt = excerpt
        return record

    def _find_path(self, paths: List[str], number: str) -> Optional[str]:
        for path in paths:
            info = self.source.parse_path(path)
            if info is not None and _same_number(info.number, number):
                return path
        return None

    async def fetch_document(self, number: str) -> DocumentRecord:
        """Look up one document, preferring cached data over the network.

        Raises :class:`DocumentNotFoundError` when the track has no such
        number, and lets fetch errors propagate.
        """
        number = str(number).strip()

        for record in self.cached_records() or []:
            if _same_number(record.number, number):
                return record

        cached_paths = self.tree.cached_paths()
        path = self._find_path(cached_paths, number) if cached_paths else None
        if path is None:
            path = self.source.build_path(number)
        if path is None:
            path = self._find_path(await self.tree.resolve_paths(), number)
        if path is None:
            raise DocumentNotFoundError(self.source.name, number)

        try:
            return await self.fetch_record(path, with_excerpt=True)
        except RemoteApiError as exc:
            if exc.status == 404:
                raise DocumentNotFoundError(self.source.name, number) from exc
            raise

    def invalidate(self) -> List[str]:
        """Forget every cached listing and collection of this track."""
        return self.cache.invalidate(self.source.name)

    async def reload(self, on_progress: Optional[ProgressCallback] = None) -> List[DocumentRecord]:
        self.invalidate()
        return await self.fetch_all(on_progress)
