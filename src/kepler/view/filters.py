"""Filtering, sorting and pagination over an in-memory collection.

Everything here is pure and synchronous: callers recompute a view from the
full record list whenever the filter, sort or page input changes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence

from kepler.models import DocumentRecord

PAGE_SIZE = 48
STALE_STATUSES = frozenset({"provisional", "implementable"})
STALE_THRESHOLD = timedelta(days=365)


class SelectionMode(str, Enum):
    UNSET = "unset"
    SOME = "some"
    NONE = "none"


@dataclass(slots=True, frozen=True)
class Selection:
    """A categorical filter with an explicit "nothing selected" state.

    ``UNSET`` lets every record through, ``NONE`` lets nothing through and
    ``SOME`` keeps records whose value is among ``values``.
    """

    mode: SelectionMode = SelectionMode.UNSET
    values: FrozenSet[str] = frozenset()

    @classmethod
    def unset(cls) -> "Selection":
        return cls()

    @classmethod
    def none(cls) -> "Selection":
        return cls(SelectionMode.NONE)

    @classmethod
    def of(cls, values: Iterable[str]) -> "Selection":
        selected = frozenset(value for value in values if value)
        if not selected:
            return cls.none()
        return cls(SelectionMode.SOME, selected)

    @property
    def active(self) -> bool:
        return self.mode is not SelectionMode.UNSET

    def matches(self, value: Optional[str]) -> bool:
        if self.mode is SelectionMode.UNSET:
            return True
        if self.mode is SelectionMode.NONE:
            return False
        return value in self.values


@dataclass(slots=True, frozen=True)
class FilterState:
    query: str = ""
    subgroup: Selection = field(default_factory=Selection)
    status: Selection = field(default_factory=Selection)
    stage: Selection = field(default_factory=Selection)
    stale_only: bool = False
    bookmarked_only: bool = False
    bookmarks: FrozenSet[str] = frozenset()

    @property
    def active(self) -> bool:
        return bool(
            self.query.strip()
            or self.subgroup.active
            or self.status.active
            or self.stage.active
            or self.stale_only
            or self.bookmarked_only
        )


@dataclass(slots=True, frozen=True)
class SortState:
    key: str = "number"
    descending: bool = True

    def toggled(self, key: str) -> "SortState":
        """Sort state after clicking ``key``: flip direction or switch to ascending."""
        if key == self.key:
            return SortState(key, not self.descending)
        return SortState(key, False)


@dataclass(slots=True)
class Page:
    items: List[DocumentRecord]
    page: int
    total_pages: int
    total_count: int


def parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_stale(
    record: DocumentRecord,
    *,
    now: Optional[datetime] = None,
    threshold: timedelta = STALE_THRESHOLD,
) -> bool:
    """Early-stage proposal untouched (or, lacking updates, uncreated) for over a year."""
    if not record.status or record.status.lower() not in STALE_STATUSES:
        return False
    date = parse_date(record.last_updated or record.creation_date)
    if date is None:
        return False
    now = now or datetime.now(timezone.utc)
    return now - date > threshold


def matches_query(record: DocumentRecord, query: str) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    haystack = [record.title, record.number, record.slug, record.excerpt, *record.authors]
    return any(needle in value.lower() for value in haystack if value)


def matches(
    record: DocumentRecord,
    filters: FilterState,
    *,
    now: Optional[datetime] = None,
    threshold: timedelta = STALE_THRESHOLD,
) -> bool:
    if not matches_query(record, filters.query):
        return False
    if not filters.subgroup.matches(record.subgroup):
        return False
    if not filters.status.matches(record.status):
        return False
    if not filters.stage.matches(record.stage):
        return False
    if filters.stale_only and not is_stale(record, now=now, threshold=threshold):
        return False
    if filters.bookmarked_only and record.number not in filters.bookmarks:
        return False
    return True


def filter_records(
    records: Iterable[DocumentRecord],
    filters: FilterState,
    *,
    now: Optional[datetime] = None,
    threshold: timedelta = STALE_THRESHOLD,
) -> List[DocumentRecord]:
    return [record for record in records if matches(record, filters, now=now, threshold=threshold)]


def _number_key(record: DocumentRecord) -> int:
    try:
        return int(record.number)
    except ValueError:
        return -1


def _text_key(getter: Callable[[DocumentRecord], Optional[str]]) -> Callable[[DocumentRecord], str]:
    return lambda record: (getter(record) or "").lower()


SORT_KEYS: Dict[str, Callable[[DocumentRecord], object]] = {
    "number": _number_key,
    "title": _text_key(lambda record: record.title),
    "subgroup": _text_key(lambda record: record.subgroup),
    "status": _text_key(lambda record: record.status),
    "stage": _text_key(lambda record: record.stage),
    "last-updated": _text_key(lambda record: record.last_updated),
    "created": _text_key(lambda record: record.creation_date),
}


def sort_records(records: Sequence[DocumentRecord], sort: SortState) -> List[DocumentRecord]:
    key = SORT_KEYS.get(sort.key.replace("_", "-"))
    if key is None:
        raise ValueError(f"Unknown sort key '{sort.key}'")
    return sorted(records, key=key, reverse=sort.descending)


def paginate(records: Sequence[DocumentRecord], page: int = 1, page_size: int = PAGE_SIZE) -> Page:
    total_pages = max(1, math.ceil(len(records) / page_size))
    current = min(max(page, 1), total_pages)
    start = (current - 1) * page_size
    return Page(
        items=list(records[start : start + page_size]),
        page=current,
        total_pages=total_pages,
        total_count=len(records),
    )


def apply_view(
    records: Sequence[DocumentRecord],
    filters: FilterState,
    sort: SortState,
    page: int = 1,
    *,
    page_size: int = PAGE_SIZE,
    now: Optional[datetime] = None,
    threshold: timedelta = STALE_THRESHOLD,
) -> Page:
    """Filter, sort and slice ``records`` into one page."""
    filtered = filter_records(records, filters, now=now, threshold=threshold)
    return paginate(sort_records(filtered, sort), page, page_size)


def facet_values(records: Iterable[DocumentRecord], attribute: str) -> List[str]:
    """Sorted distinct non-empty values of ``attribute``, for filter choices."""
    return sorted({value for value in (getattr(record, attribute) for record in records) if value})
