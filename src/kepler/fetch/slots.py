"""Cache slots owned by each proposal track."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from kepler.cache.manager import CacheManager, CacheSlot
from kepler.config import AppConfig
from kepler.models import ChangeEvent, DocumentRecord
from kepler.sources import DocumentSource

# Versioned keys; bump a suffix when the stored shape changes.
SLOT_KEYS: Dict[str, Dict[str, str]] = {
    "kep": {
        "tree": "kepler_tree_v2",
        "collection": "kepler_keps_v3",
        "activity": "kepler_kep_git_v1",
        "bookmarks": "kepler_bookmarks_v1",
    },
    "gep": {
        "tree": "kepler_gep_tree_v1",
        "collection": "kepler_geps_v1",
        "activity": "kepler_gep_git_v1",
        "bookmarks": "kepler_gep_bookmarks_v1",
    },
}


def _encode_records(records: List[DocumentRecord]) -> List[Dict[str, Any]]:
    return [record.to_dict() for record in records]


def _decode_records(data: List[Dict[str, Any]]) -> List[DocumentRecord]:
    return [DocumentRecord.from_dict(item) for item in data]


def _encode_activity(value: Dict[str, Any]) -> Dict[str, Any]:
    return {"limit": value["limit"], "events": [event.to_dict() for event in value["events"]]}


def _decode_activity(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "limit": int(data["limit"]),
        "events": [ChangeEvent.from_dict(item) for item in data["events"]],
    }


def _decode_paths(data: List[Any]) -> List[str]:
    if not isinstance(data, list):
        raise TypeError("tree listing must be a list")
    return [str(path) for path in data]


@dataclass(slots=True, frozen=True)
class TrackSlots:
    tree: CacheSlot[List[str]]
    collection: CacheSlot[List[DocumentRecord]]
    activity: CacheSlot[Dict[str, Any]]
    bookmarks: CacheSlot[List[str]]


def register_track_slots(
    manager: CacheManager, source: DocumentSource, config: AppConfig
) -> TrackSlots:
    keys = SLOT_KEYS[source.name]
    scope = source.name
    return TrackSlots(
        tree=manager.register(
            CacheSlot(keys["tree"], scope, config.tree_ttl_ms, decode=_decode_paths)
        ),
        collection=manager.register(
            CacheSlot(
                keys["collection"],
                scope,
                config.collection_ttl_ms,
                encode=_encode_records,
                decode=_decode_records,
                tracks_freshness=True,
            )
        ),
        activity=manager.register(
            CacheSlot(
                keys["activity"],
                scope,
                config.activity_ttl_ms,
                encode=_encode_activity,
                decode=_decode_activity,
            )
        ),
        bookmarks=manager.register(CacheSlot(keys["bookmarks"], scope, decode=_decode_paths)),
    )
