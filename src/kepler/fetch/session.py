"""Stateful loading of a track's collection for long-lived consumers."""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from kepler.errors import KeplerError
from kepler.fetch.documents import DocumentFetcher
from kepler.models import DocumentRecord, Progress

LOGGER = logging.getLogger(__name__)


class LoadSession:
    """Tracks the records, progress and error of successive load passes.

    Each call to :meth:`load` starts a new pass. Starting another pass or
    calling :meth:`cancel` retires the previous one: its progress updates and
    final result are ignored when they arrive, although its requests are
    left to complete.
    """

    def __init__(self, fetcher: DocumentFetcher) -> None:
        self.fetcher = fetcher
        self.records: List[DocumentRecord] = []
        self.loading = False
        self.progress = Progress()
        self.error: Optional[str] = None
        self._generation = 0

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def cancel(self) -> None:
        self._generation += 1
        self.loading = False

    async def load(self) -> List[DocumentRecord]:
        self._generation += 1
        generation = self._generation
        self.loading = True
        self.error = None
        self.records = []
        self.progress = Progress()

        def on_progress(loaded: int, total: int) -> None:
            if self._is_current(generation):
                self.progress = Progress(loaded, total)

        try:
            records = await self.fetcher.fetch_all(on_progress)
        except (KeplerError, httpx.HTTPError) as exc:
            LOGGER.error("Failed to load %s documents: %s", self.fetcher.source.label, exc)
            if self._is_current(generation):
                self.error = str(exc) or f"Failed to load {self.fetcher.source.label}s"
                self.loading = False
            return []

        if not self._is_current(generation):
            LOGGER.debug("Discarding results of a cancelled %s load", self.fetcher.source.label)
            return records
        self.records = records
        self.progress = Progress(len(records), len(records))
        self.loading = False
        return records

    async def reload(self) -> List[DocumentRecord]:
        self.fetcher.invalidate()
        return await self.load()
