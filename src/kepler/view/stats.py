"""Aggregations over a loaded collection: counts, releases, cross-references."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from kepler.models import ChangeEvent, DocumentRecord

TOP_SUBGROUPS = 20
WHATS_NEW_ITEMS = 10

_VERSION = re.compile(r"^(\d+)\.(\d+)")
_YEAR = re.compile(r"^\d{4}$")


def count_by_subgroup(records: Iterable[DocumentRecord], top: int = TOP_SUBGROUPS) -> List[Tuple[str, int]]:
    counts = Counter(record.subgroup for record in records if record.subgroup)
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)[:top]


def count_by_year(records: Iterable[DocumentRecord]) -> List[Tuple[str, int]]:
    counts: Counter[str] = Counter()
    for record in records:
        year = (record.creation_date or "")[:4]
        if _YEAR.match(year):
            counts[year] += 1
    return sorted(counts.items())


def count_by_status(records: Iterable[DocumentRecord]) -> List[Tuple[str, int]]:
    counts = Counter(record.status or "unknown" for record in records)
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)


def normalize_version(version: Optional[str]) -> Optional[str]:
    """``v1.29.0`` -> ``1.29``; anything without a major.minor prefix -> ``None``."""
    if not version:
        return None
    match = _VERSION.match(str(version).strip().lstrip("v"))
    if match is None:
        return None
    return f"{match.group(1)}.{match.group(2)}"


def _version_key(version: str) -> Tuple[int, int]:
    major, minor = version.split(".")
    return int(major), int(minor)


def release_versions(records: Iterable[DocumentRecord]) -> List[str]:
    """Every release mentioned by a milestone, oldest first."""
    versions = set()
    for record in records:
        for stage in ("alpha", "beta", "stable"):
            version = normalize_version(record.milestone.get(stage))
            if version:
                versions.add(version)
    return sorted(versions, key=_version_key)


@dataclass(slots=True)
class ReleaseGroup:
    stage: str
    label: str
    description: str
    records: List[DocumentRecord]


_RELEASE_STAGES = (
    ("stable", "Graduated to Stable", "reached stable"),
    ("beta", "Graduated to Beta", "reached beta"),
    ("alpha", "Introduced (Alpha)", "entered alpha"),
)


def release_groups(records: Sequence[DocumentRecord], version: str) -> List[ReleaseGroup]:
    """Documents whose milestones land in ``version``, grouped by stage.

    Empty groups are omitted; a document can appear in several groups.
    """
    groups = []
    for stage, label, verb in _RELEASE_STAGES:
        members = [
            record for record in records if normalize_version(record.milestone.get(stage)) == version
        ]
        if members:
            groups.append(ReleaseGroup(stage, label, f"Proposals that {verb} in v{version}", members))
    return groups


def extract_reference_number(ref: str) -> Optional[str]:
    """Number referenced by ``ref``: ``1234``, ``KEP-1234`` or a ``.../1234-slug/...`` path."""
    ref = ref.strip()
    if ref.isdigit():
        return ref
    prefixed = re.match(r"^[kg]ep-(\d+)", ref, re.IGNORECASE)
    if prefixed:
        return prefixed.group(1)
    in_path = re.search(r"(?:^|/)(\d+)-[^/]+", ref)
    if in_path:
        return in_path.group(1)
    return None


RELATION_FIELDS = ("see_also", "replaces", "superseded_by")


def related_numbers(record: DocumentRecord) -> Dict[str, List[str]]:
    """Document numbers named by each cross-reference field, unreadable references dropped."""
    related: Dict[str, List[str]] = {}
    for name in RELATION_FIELDS:
        numbers: List[str] = []
        for ref in getattr(record, name):
            number = extract_reference_number(ref)
            if number is not None and number not in numbers:
                numbers.append(number)
        related[name] = numbers
    return related


def join_changes(
    events: Iterable[ChangeEvent],
    records: Iterable[DocumentRecord],
    limit: int = WHATS_NEW_ITEMS,
) -> List[Tuple[DocumentRecord, datetime]]:
    """Pair recent changes with their records, dropping unknown numbers."""
    by_number = {record.number: record for record in records}
    joined = []
    for event in list(events)[:limit]:
        record = by_number.get(event.number)
        if record is not None:
            joined.append((record, event.date))
    return joined
